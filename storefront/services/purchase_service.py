"""Purchase service — turns paid checkouts into purchase_history rows.

Responsible for:
- Reconciling a pending purchase after a paid webhook notification
- Recording purchases reported by the success page
- Purchase history / bestseller queries
- Purging abandoned pending purchases

Exactly-once: a pending purchase is consumed with a conditional DELETE
and only the caller whose DELETE removed the row writes history. The
DELETE and the history INSERT share one transaction, so a failed insert
puts the pending row back for the processor's retry. The success-page
path claims first and checks for existing history second, so when it
races the webhook it sees the webhook's committed rows.
"""

import logging
import re

from sqlalchemy import func

from storefront.extensions import db
from storefront.models.pending_purchase import PendingPurchase
from storefront.models.purchase_history import PurchaseHistory
from storefront.security import ANONYMOUS_USER_ID, is_valid_uuid
from storefront.services.checkout_service import (
    CartValidationError,
    validate_cart_items,
)

logger = logging.getLogger(__name__)

BESTSELLERS_LIMIT = 50
STAGED_PRICE_RANGE = (0, 999999)
STAGED_QUANTITY_RANGE = (1, 100)


class PurchaseRequestError(ValueError):
    """The success-page payload can't be recorded. Message is user-facing."""


def default_handle(name):
    """Product handle fallback: lowercase, whitespace runs -> hyphens."""
    return re.sub(r"\s+", "-", (name or "").strip().lower())


def _clamp(value, bounds, cast):
    low, high = bounds
    try:
        value = cast(value)
    except (TypeError, ValueError):
        return low
    return min(max(value, low), high)


def build_history_records(user_id, order_id, items, clamp=False):
    """Map cart items to PurchaseHistory rows (not yet added).

    clamp=True re-bounds price and quantity; used for staged items, which
    were validated at checkout but are read back from storage.
    """
    records = []
    for item in items:
        if not isinstance(item, dict):
            continue
        price = item.get("price")
        quantity = item.get("quantity")
        if clamp:
            price = _clamp(price, STAGED_PRICE_RANGE, float)
            quantity = _clamp(quantity, STAGED_QUANTITY_RANGE, int)

        name = item.get("name") or ""
        records.append(PurchaseHistory(
            user_id=user_id,
            order_id=order_id,
            product_handle=item.get("handle") or default_handle(name),
            product_title=name,
            product_image=item.get("image") or None,
            product_price=price,
            quantity=quantity,
        ))
    return records


def claim_pending_purchase(reference_id, owners=None):
    """Delete the pending row for reference_id inside the current transaction.

    With owners, only a row staged by one of those user ids is claimed.
    Returns True when this call removed it. A concurrent claimer blocks on
    the row lock and then sees zero rows.
    """
    stmt = db.delete(PendingPurchase).where(PendingPurchase.reference_id == reference_id)
    if owners is not None:
        stmt = stmt.where(PendingPurchase.user_id.in_(owners))
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1


def has_recorded_order(user_id, order_id):
    return db.session.query(
        PurchaseHistory.query.filter_by(user_id=user_id, order_id=order_id).exists()
    ).scalar()


# ──────────────────────────────────────────────
# Webhook path
# ──────────────────────────────────────────────

def reconcile_pending_purchase(reference_id):
    """Convert a pending purchase into purchase history after payment.

    Returns (processed: bool, reason: str|None). Every "not processed"
    outcome is a normal, acknowledgeable result. Raises on database
    errors (the session is rolled back first) so the processor retries.
    """
    pending = PendingPurchase.query.filter_by(reference_id=reference_id).first()
    if pending is None:
        logger.info(f"No pending purchase for {reference_id}")
        return False, "no_pending_purchase"

    user_id = pending.user_id
    staged_items = list(pending.items or [])

    if user_id == ANONYMOUS_USER_ID:
        # No account to attach history to
        logger.info(f"Pending purchase {reference_id} is anonymous, skipping")
        return False, "anonymous_checkout"
    if not is_valid_uuid(user_id):
        logger.warning(f"Pending purchase {reference_id} has invalid user id")
        return False, "invalid_user"

    try:
        if not claim_pending_purchase(reference_id):
            db.session.rollback()
            logger.info(f"Pending purchase {reference_id} claimed by another path")
            return False, "already_processed"

        records = build_history_records(user_id, reference_id, staged_items, clamp=True)
        db.session.add_all(records)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Reconciled {reference_id}: {len(records)} purchase record(s) for {user_id}")
    return True, None


# ──────────────────────────────────────────────
# Success-page path
# ──────────────────────────────────────────────

def record_client_purchase(user_id, reference_id, items):
    """Record a purchase reported by the success page.

    Returns (records_count, already_recorded). Raises PurchaseRequestError
    for a malformed payload and lets database errors propagate.
    """
    if not isinstance(reference_id, str) or not reference_id.strip():
        raise PurchaseRequestError("Missing referenceId or items")
    if not isinstance(items, list) or not items:
        raise PurchaseRequestError("Missing referenceId or items")

    reference_id = reference_id.strip()
    try:
        clean_items = validate_cart_items(items)
    except CartValidationError as e:
        raise PurchaseRequestError(str(e)) from e

    try:
        # Cleanup and lock in one: drop the caller's pending row whether or
        # not the webhook already did. Another user's row stays for the webhook.
        claim_pending_purchase(reference_id, owners=(user_id, ANONYMOUS_USER_ID))

        if has_recorded_order(user_id, reference_id):
            db.session.commit()
            logger.info(f"Order {reference_id} already recorded for {user_id}")
            return 0, True

        records = build_history_records(user_id, reference_id, clean_items)
        db.session.add_all(records)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Recorded {len(records)} purchase record(s) for {reference_id}")
    return len(records), False


# ──────────────────────────────────────────────
# Queries & maintenance
# ──────────────────────────────────────────────

def get_purchase_history(user_id):
    return (
        PurchaseHistory.query
        .filter_by(user_id=user_id)
        .order_by(PurchaseHistory.purchased_at.desc())
        .all()
    )


def get_bestsellers(limit=BESTSELLERS_LIMIT):
    """Units sold per product handle, best first."""
    total_sold = func.sum(PurchaseHistory.quantity).label("total_sold")
    rows = (
        db.session.query(PurchaseHistory.product_handle, total_sold)
        .group_by(PurchaseHistory.product_handle)
        .order_by(total_sold.desc(), PurchaseHistory.product_handle)
        .limit(limit)
        .all()
    )
    return [{"handle": handle, "total_sold": int(total or 0)} for handle, total in rows]


def purge_expired_pending_purchases(cutoff, dry_run=False):
    """Delete pending purchases created before cutoff. Returns the count."""
    query = PendingPurchase.query.filter(PendingPurchase.created_at < cutoff)
    if dry_run:
        return query.count()

    count = query.delete(synchronize_session=False)
    db.session.commit()
    logger.info(f"Purged {count} abandoned pending purchase(s)")
    return count
