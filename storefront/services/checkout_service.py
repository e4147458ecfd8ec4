"""Checkout service — processor-independent half of checkout.

Responsible for:
- Validating and sanitizing the client's cart (all-or-nothing)
- Flagging high-value orders for fraud review
- Generating order reference ids
- Staging the cart in pending_purchases before the processor is called
"""

import logging
import re
import secrets
import time
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import SQLAlchemyError

from storefront.extensions import db
from storefront.models.pending_purchase import PendingPurchase
from storefront.security import (
    is_valid_email,
    is_valid_price,
    is_valid_quantity,
    log_security_event,
    sanitize_string,
)

logger = logging.getLogger(__name__)

MAX_CART_ITEMS = 50
MAX_NAME_LENGTH = 64  # PagBank item name limit
MIN_NAME_LENGTH = 2

REFERENCE_ID_RE = re.compile(r"^order_\d+_[A-Za-z0-9]+$")
HANDLE_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")

CheckoutRequest = namedtuple(
    "CheckoutRequest", ["items", "customer_email", "customer_name"]
)


class CartValidationError(ValueError):
    """The cart or customer data can't be accepted. Message is user-facing."""


class PaymentProviderError(RuntimeError):
    """The payment processor failed. Message is for logs only."""


def generate_reference_id():
    """order_<epoch millis>_<8 hex chars>."""
    return f"order_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def is_order_reference(value):
    return isinstance(value, str) and bool(REFERENCE_ID_RE.match(value))


def to_minor_units(price):
    """Reais -> centavos, rounding half up."""
    return int(
        (Decimal(str(price)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def validate_cart_items(items):
    """Validate and sanitize every cart item.

    Any invalid item rejects the whole cart; the error names the item's
    1-based position. Returns a list of clean item dicts.
    """
    if not isinstance(items, list) or not items:
        raise CartValidationError("No items provided for checkout")
    if len(items) > MAX_CART_ITEMS:
        raise CartValidationError(f"Too many items (maximum is {MAX_CART_ITEMS})")

    clean_items = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise CartValidationError(f"Item {index} is malformed")

        name = sanitize_string(item.get("name"), MAX_NAME_LENGTH)
        if len(name) < MIN_NAME_LENGTH:
            raise CartValidationError(f"Item {index} has invalid name")

        price = item.get("price")
        if not is_valid_price(price):
            raise CartValidationError(f"Item {index} has invalid price")

        quantity = item.get("quantity")
        if not is_valid_quantity(quantity):
            raise CartValidationError(f"Item {index} has invalid quantity")

        clean = {"name": name, "price": float(price), "quantity": int(quantity)}

        image = sanitize_string(item.get("image"), 2048)
        if image.startswith(("https://", "http://")):
            clean["image"] = image

        handle = sanitize_string(item.get("handle"), 255).lower()
        if HANDLE_RE.match(handle):
            clean["handle"] = handle

        clean_items.append(clean)

    return clean_items


def parse_checkout_request(data):
    """Validate the JSON body of a checkout request.

    Returns a CheckoutRequest. Raises CartValidationError.
    """
    if not isinstance(data, dict):
        raise CartValidationError("Invalid request body")

    items = validate_cart_items(data.get("items"))

    customer_email = None
    raw_email = data.get("customerEmail")
    if raw_email:
        customer_email = sanitize_string(raw_email, 254).lower()
        if not is_valid_email(customer_email):
            raise CartValidationError("Invalid customer email")

    customer_name = sanitize_string(data.get("customerName"), 100) or None

    return CheckoutRequest(items, customer_email, customer_name)


def cart_total(items):
    return sum(Decimal(str(item["price"])) * item["quantity"] for item in items)


def flag_high_value_order(items, user_id, client_ip, threshold):
    """Log a security event when the order total crosses the threshold.

    Informational only — the checkout proceeds either way.
    """
    total = cart_total(items)
    if total > Decimal(str(threshold)):
        log_security_event("high_value_order", {
            "total": str(total),
            "item_count": len(items),
            "user_id": user_id,
            "ip": client_ip,
        })
        return True
    return False


def stage_pending_purchase(reference_id, user_id, items):
    """Persist the cart snapshot for later reconciliation.

    Best-effort: a failure is logged and swallowed, since the success
    page can still record the purchase. Returns True when the row was
    written.
    """
    try:
        pending = PendingPurchase(
            reference_id=reference_id,
            user_id=user_id,
            items=items,
        )
        db.session.add(pending)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Could not stage pending purchase {reference_id}: {e}")
        return False

    logger.info(f"Staged pending purchase {reference_id} ({len(items)} items)")
    return True
