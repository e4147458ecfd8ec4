"""Purchases blueprint — /api/purchases, /api/bestsellers

Routes:
- POST /api/purchases/record  — success-page purchase recording (auth)
- GET  /api/purchases         — caller's purchase history (auth)
- GET  /api/bestsellers       — units sold per product handle (public)
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from storefront.decorators import rate_limited
from storefront.extensions import limiter
from storefront.services.purchase_service import (
    PurchaseRequestError,
    get_bestsellers,
    get_purchase_history,
    record_client_purchase,
)

logger = logging.getLogger(__name__)

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api")


# ──────────────────────────────────────────────
# POST /api/purchases/record
# ──────────────────────────────────────────────

@purchases_bp.route("/purchases/record", methods=["POST"])
@rate_limited("record-purchase", "RECORD_PURCHASE_RATE_LIMIT")
@login_required
def record_purchase():
    """Record the order the user just paid for.

    Called by the payment-success page with `{referenceId, items}`. The
    webhook may have recorded the order already; in that case nothing is
    written and the reply says so. The page clears the cart either way.
    """
    data = request.get_json(silent=True) or {}

    try:
        count, already_recorded = record_client_purchase(
            current_user.id,
            data.get("referenceId"),
            data.get("items"),
        )
    except PurchaseRequestError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"Failed to record purchase: {e}", exc_info=True)
        return jsonify({"error": "Failed to record purchase"}), 500

    if already_recorded:
        return jsonify({
            "success": True,
            "recordsCount": 0,
            "message": "Order already recorded",
        }), 200

    return jsonify({"success": True, "recordsCount": count}), 200


# ──────────────────────────────────────────────
# GET /api/purchases
# ──────────────────────────────────────────────

@purchases_bp.route("/purchases", methods=["GET"])
@login_required
def list_purchases():
    """Caller's purchase history, newest first."""
    purchases = get_purchase_history(current_user.id)
    return jsonify([p.to_dict() for p in purchases]), 200


# ──────────────────────────────────────────────
# GET /api/bestsellers
# ──────────────────────────────────────────────

@purchases_bp.route("/bestsellers", methods=["GET"])
@limiter.limit("60 per minute")
def bestsellers():
    return jsonify(get_bestsellers()), 200
