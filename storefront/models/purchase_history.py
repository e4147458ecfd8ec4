"""Purchase history model.

One row per cart line item of a completed order. Column names are read
directly by the storefront profile page and the admin back-office.
"""

import uuid

from storefront.extensions import db


class PurchaseHistory(db.Model):
    __tablename__ = "purchase_history"
    __table_args__ = (
        db.Index("ix_purchase_history_user_order", "user_id", "order_id"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), nullable=False)
    order_id = db.Column(db.String(64), nullable=False)  # = pending reference_id
    product_handle = db.Column(db.String(255), nullable=False)
    product_title = db.Column(db.String(255), nullable=False)
    product_image = db.Column(db.Text, nullable=True)
    product_price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    purchased_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "product_handle": self.product_handle,
            "product_title": self.product_title,
            "product_image": self.product_image,
            "product_price": float(self.product_price),
            "quantity": self.quantity,
            "purchased_at": (
                self.purchased_at.isoformat() if self.purchased_at else None
            ),
        }

    def __repr__(self):
        return f"<PurchaseHistory {self.order_id} {self.product_handle} x{self.quantity}>"
