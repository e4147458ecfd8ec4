"""Checkout blueprint — /api/checkout/*

Creates hosted checkouts for the storefront cart.

Routes:
- POST /api/checkout/pagbank  — PagBank hosted checkout (PIX, boleto, cards)
- POST /api/checkout/stripe   — Stripe Checkout Session (cards)

Both accept `{items, customerEmail?, customerName?}` with an optional
Supabase bearer token and return `{url, checkoutId, referenceId}`.
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from storefront.decorators import rate_limited
from storefront.extensions import db
from storefront.security import ANONYMOUS_USER_ID, get_client_ip
from storefront.services import pagbank_service, stripe_service
from storefront.services.checkout_service import (
    CartValidationError,
    PaymentProviderError,
    flag_high_value_order,
    generate_reference_id,
    parse_checkout_request,
    stage_pending_purchase,
)

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")

GENERIC_CHECKOUT_ERROR = "Could not start checkout. Please try again."


def _start_checkout(provider, create_fn):
    """Shared checkout flow; create_fn(reference_id, checkout_request) -> (url, id).

    1. Validate the whole cart (any bad item rejects the request)
    2. Resolve the caller (bearer token or anonymous sentinel)
    3. Flag high-value orders for review
    4. Stage the pending purchase BEFORE calling the processor, so the
       success redirect never arrives ahead of its record
    5. Create the hosted checkout and return its URL
    """
    try:
        checkout_request = parse_checkout_request(request.get_json(silent=True))
    except CartValidationError as e:
        return jsonify({"error": str(e)}), 400

    user_id = current_user.id if current_user.is_authenticated else ANONYMOUS_USER_ID
    client_ip = get_client_ip(request)

    flag_high_value_order(
        checkout_request.items,
        user_id,
        client_ip,
        current_app.config["HIGH_VALUE_ORDER_THRESHOLD"],
    )

    reference_id = generate_reference_id()
    stage_pending_purchase(reference_id, user_id, checkout_request.items)

    try:
        url, checkout_id = create_fn(reference_id, checkout_request)
    except PaymentProviderError as e:
        logger.error(f"{provider} checkout failed for {reference_id}: {e}")
        return jsonify({"error": GENERIC_CHECKOUT_ERROR}), 502
    except Exception as e:
        db.session.rollback()
        logger.error(f"{provider} checkout error for {reference_id}: {e}", exc_info=True)
        return jsonify({"error": GENERIC_CHECKOUT_ERROR}), 500

    return jsonify({
        "url": url,
        "checkoutId": checkout_id,
        "referenceId": reference_id,
    }), 200


# ──────────────────────────────────────────────
# POST /api/checkout/pagbank
# ──────────────────────────────────────────────

@checkout_bp.route("/pagbank", methods=["POST"])
@rate_limited("checkout", "CHECKOUT_RATE_LIMIT")
def pagbank_checkout():
    """Create a PagBank hosted checkout for the cart."""
    return _start_checkout(
        "PagBank",
        lambda reference_id, req: pagbank_service.create_checkout(
            reference_id,
            req.items,
            customer_email=req.customer_email,
            customer_name=req.customer_name,
        ),
    )


# ──────────────────────────────────────────────
# POST /api/checkout/stripe
# ──────────────────────────────────────────────

@checkout_bp.route("/stripe", methods=["POST"])
@rate_limited("checkout", "CHECKOUT_RATE_LIMIT")
def stripe_checkout():
    """Create a Stripe Checkout Session for the cart."""
    return _start_checkout(
        "Stripe",
        lambda reference_id, req: stripe_service.create_checkout_session(
            reference_id,
            req.items,
            customer_email=req.customer_email,
        ),
    )
