from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Refund(db.Model):
    """
    Customer request to reverse payment for one product of a delivered order.

    LIFECYCLE:
    1. pending: requested by the customer within the refund window
    2. approved | rejected: staff decision
    3. processed: money movement completed (approved refunds only)

    IDEMPOTENCY FLAGS:
    - stock_added_back: set in the same transaction as the stock credit,
      so the credit happens at most once
    - email_notification_sent: stays False when the approval email fails
    """
    __tablename__ = "refunds"
    __table_args__ = (
        db.Index("ix_refunds_order_product_status", "order_id", "product_id", "status"),
        db.Index("ix_refunds_status_requested", "status", "request_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "RFD-000042")
    refund_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False)
    refund_amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    request_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    product_returned = db.Column(db.Boolean, nullable=False, default=False)
    stock_added_back = db.Column(db.Boolean, nullable=False, default=False)
    email_notification_sent = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("User", foreign_keys=[customer_id])
    order = db.relationship("Order", backref=db.backref("refunds", lazy=True))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_number": self.refund_number,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "purchase_price_cents": self.purchase_price_cents,
            "refund_amount_cents": self.refund_amount_cents,
            "reason": self.reason,
            "status": self.status,
            "request_date": to_utc_z(self.request_date),
            "approval_date": to_utc_z(self.approval_date) if self.approval_date else None,
            "processed_date": to_utc_z(self.processed_date) if self.processed_date else None,
            "approved_by_user_id": self.approved_by_user_id,
            "rejection_reason": self.rejection_reason,
            "product_returned": self.product_returned,
            "stock_added_back": self.stock_added_back,
            "email_notification_sent": self.email_notification_sent,
            "version_id": self.version_id,
        }
