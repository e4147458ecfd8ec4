"""Pending purchase model (checkout staging table).

One row per checkout attempt, keyed by the order reference_id that is
threaded through the payment processor. Holds the validated cart
snapshot until payment is confirmed.

Lifecycle: written by the checkout endpoint before the processor is
called, consumed (deleted) by whichever of the webhook or the
success-page recorder reconciles the order first. Rows from abandoned
checkouts are removed by `flask purge-pending-purchases`.
"""

import uuid

from storefront.extensions import db


class PendingPurchase(db.Model):
    __tablename__ = "pending_purchases"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    reference_id = db.Column(
        db.String(64), unique=True, nullable=False
    )  # e.g. "order_1718031234567_9f86d081"
    user_id = db.Column(
        db.String(36), nullable=False
    )  # Supabase auth user id, or the anonymous sentinel
    items = db.Column(db.JSON, nullable=False, default=list)  # [CartItem]
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<PendingPurchase {self.reference_id}>"
