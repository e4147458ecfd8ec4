"""Webhooks blueprint — payment processor callbacks.

Routes:
- POST /pagbank/webhooks  — PagBank order/charge notifications
- POST /stripe/webhooks   — signed Stripe events

PagBank delivers at least once and retries on any non-2xx, so every
handled outcome (paid, not paid yet, unknown order, already reconciled)
is acknowledged with 200. Only unexpected failures return 500.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from storefront.decorators import rate_limited
from storefront.security import (
    get_client_ip,
    log_security_event,
    sanitize_string,
    verify_webhook_signature,
)
from storefront.services.checkout_service import is_order_reference
from storefront.services.notifications import (
    LegacyNotification,
    UnrecognizedNotification,
    parse_notification,
)
from storefront.services.purchase_service import reconcile_pending_purchase
from storefront.services import stripe_service

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


def _ack(processed, reason=None, **extra):
    body = {"received": True, "processed": processed}
    if reason:
        body["reason"] = reason
    body.update(extra)
    return jsonify(body), 200


# ──────────────────────────────────────────────
# POST /pagbank/webhooks
# ──────────────────────────────────────────────

@webhooks_bp.route("/pagbank/webhooks", methods=["POST"])
@rate_limited("pagbank-webhook", "WEBHOOK_RATE_LIMIT")
def pagbank_webhook():
    """Receive a PagBank notification and reconcile paid orders.

    1. Verify X-Webhook-Signature when PAGBANK_WEBHOOK_SECRET is set
    2. Decode JSON / form / legacy payloads (unknown shapes are acked)
    3. Ignore references that aren't ours (same reply as unknown orders)
    4. Ack and wait when the payment isn't confirmed yet
    5. Reconcile the pending purchase into purchase history
    """
    raw_body = request.get_data(as_text=True)

    # --- Signature (optional) ---
    secret = current_app.config.get("PAGBANK_WEBHOOK_SECRET")
    if secret:
        signature = request.headers.get("X-Webhook-Signature", "")
        if not verify_webhook_signature(raw_body, signature, secret):
            log_security_event("invalid_webhook_signature", {
                "endpoint": "pagbank-webhook",
                "ip": get_client_ip(request),
            })
            return _ack(False, "invalid_signature")

    # --- Decode ---
    notification = parse_notification(raw_body, request.content_type)

    if isinstance(notification, LegacyNotification):
        logger.info(f"Legacy PagBank notification {notification.notification_code}, acknowledged")
        return _ack(False, "legacy_notification", legacy=True)

    if isinstance(notification, UnrecognizedNotification):
        logger.info(f"Unrecognized webhook payload ({notification.reason}), acknowledged")
        return _ack(False, "unrecognized_payload")

    # --- Reference ---
    reference_id = sanitize_string(notification.reference_id, 100)
    if not is_order_reference(reference_id):
        logger.info("Webhook for a reference we didn't issue, ignoring")
        return _ack(False, "no_pending_purchase")

    # --- Payment status ---
    if not notification.is_paid:
        logger.info(f"Payment for {reference_id} not confirmed yet (status={notification.status!r})")
        return _ack(False, "payment_not_confirmed")

    # --- Reconcile ---
    try:
        processed, reason = reconcile_pending_purchase(reference_id)
    except Exception as e:
        logger.error(f"Webhook reconciliation failed for {reference_id}: {e}", exc_info=True)
        return jsonify({"error": "Internal error"}), 500

    return _ack(processed, reason)


# ──────────────────────────────────────────────
# POST /stripe/webhooks
# ──────────────────────────────────────────────

@webhooks_bp.route("/stripe/webhooks", methods=["POST"])
@rate_limited("stripe-webhook", "WEBHOOK_RATE_LIMIT")
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via stripe_events table)
    4. Return 200 to acknowledge receipt
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify({"error": "Missing signature"}), 400

    # --- Verify signature ---
    try:
        event = stripe_service.verify_webhook_signature(payload, sig_header)
    except Exception as e:
        log_security_event("invalid_webhook_signature", {
            "endpoint": "stripe-webhook",
            "ip": get_client_ip(request),
        })
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    # --- Process event (idempotent) ---
    success, message = stripe_service.handle_webhook_event(event)

    if success:
        return jsonify({"status": message}), 200
    else:
        logger.error(f"Webhook processing failed: {message}")
        return jsonify({"error": "Internal error"}), 500
