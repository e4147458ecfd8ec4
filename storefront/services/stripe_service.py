"""Stripe service — secondary processor for card payments.

Responsible for:
- Creating Stripe Checkout Sessions (one-off payment, BRL)
- Verifying incoming webhook signatures
- Dispatching paid checkout events to purchase reconciliation
- Idempotency via stripe_events table
"""

import logging

import stripe
from flask import current_app

from storefront.extensions import db
from storefront.models.stripe_event import StripeEvent
from storefront.services.checkout_service import (
    PaymentProviderError,
    is_order_reference,
    to_minor_units,
)
from storefront.services.purchase_service import reconcile_pending_purchase

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Checkout Sessions
# ──────────────────────────────────────────────

def create_checkout_session(reference_id, items, customer_email=None):
    """Create a Stripe Checkout Session for a validated cart.

    The order reference rides along as client_reference_id and in
    metadata, so the webhook can find the pending purchase.

    Returns (session_url, session_id).
    Raises PaymentProviderError on API failures.
    """
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    app_base_url = current_app.config["APP_BASE_URL"].rstrip("/")

    line_items = [
        {
            "price_data": {
                "currency": "brl",
                "product_data": {
                    "name": item["name"],
                    "images": [item["image"]] if item.get("image") else [],
                },
                "unit_amount": to_minor_units(item["price"]),
            },
            "quantity": item["quantity"],
        }
        for item in items
    ]

    params = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": (
            f"{app_base_url}/payment-success?reference_id={reference_id}"
            f"&session_id={{CHECKOUT_SESSION_ID}}"
        ),
        "cancel_url": f"{app_base_url}/payment-canceled",
        "locale": "pt-BR",
        "client_reference_id": reference_id,
        "metadata": {
            "reference_id": reference_id,
            "source": "storefront",
        },
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        raise PaymentProviderError(f"Stripe API error: {e}") from e

    if not session.url:
        raise PaymentProviderError("Stripe session has no hosted URL")

    logger.info(f"Stripe checkout session {session.id} created for {reference_id}")
    return session.url, session.id


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Returns the verified Stripe event object.
    Raises stripe.SignatureVerificationError on invalid signature.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Idempotency: checks stripe_events table before processing.
    If the event was already processed, returns immediately.

    Returns (success: bool, message: str).
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check ---
    existing = StripeEvent.query.filter_by(
        stripe_event_id=event_id
    ).first()
    if existing:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    # --- Route to handler ---
    handlers = {
        "checkout.session.completed": _handle_checkout_paid,
        "checkout.session.async_payment_succeeded": _handle_checkout_paid,
    }

    handler = handlers.get(event_type)
    if handler:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            return False, str(e)

    # --- Record event for idempotency ---
    stripe_event = StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
    )
    db.session.add(stripe_event)
    db.session.commit()

    return True, "processed"


def _handle_checkout_paid(event):
    """Reconcile the pending purchase behind a paid Checkout Session.

    checkout.session.completed also fires for PIX/boleto sessions that
    are still unpaid; those reconcile later on async_payment_succeeded.
    """
    session = event["data"]["object"]
    metadata = session.get("metadata") or {}
    reference_id = session.get("client_reference_id") or metadata.get("reference_id")

    if not is_order_reference(reference_id):
        logger.warning(f"{event['type']}: session without an order reference, ignoring")
        return

    if session.get("payment_status") != "paid":
        logger.info(f"{event['type']}: {reference_id} not paid yet")
        return

    processed, reason = reconcile_pending_purchase(reference_id)
    logger.info(f"Stripe reconciliation for {reference_id}: processed={processed} reason={reason}")
