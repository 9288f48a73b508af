from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Customer purchase (aggregate over its line items).

    LIFECYCLE:
    - Created once per paid checkout session with status "processing"
    - `status` is DERIVED from sibling deliveries (delivery_service), except
      "cancelled" which only the owning customer can set
    - `payment_status` is owned by the payment-completion flow
    - Never deleted

    `version_id` turns concurrent full-row rewrites into StaleDataError
    instead of last-writer-wins.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_date", "customer_id", "order_date"),
        db.Index("ix_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "ORD-000123")
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Money (cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    delivery_address = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="processing", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(32), nullable=True)

    # Idempotency key for order completion: one order per payment session
    payment_session_key = db.Column(db.String(64), nullable=True, unique=True)
    coupon_code = db.Column(db.String(64), nullable=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("User", foreign_keys=[customer_id], backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "delivery_address": self.delivery_address,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "coupon_code": self.coupon_code,
            "order_date": to_utc_z(self.order_date),
            "delivery_date": to_utc_z(self.delivery_date) if self.delivery_date else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "updated_by_user_id": self.updated_by_user_id,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item captured at purchase time. A product appears at most once per order."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Delivery(db.Model):
    """
    Fulfillment record for exactly one order line item.

    Created in bulk right after the order; updated only by fulfillment staff;
    never deleted. Its status is the input the order status is derived from.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("order_item_id", name="uq_deliveries_order_item"),
        db.Index("ix_deliveries_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Copied from the order at creation time
    delivery_address = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("deliveries", lazy=True, order_by="Delivery.id"))
    order_item = db.relationship("OrderItem", backref=db.backref("delivery", uselist=False))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "order_item_id": self.order_item_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "customer_id": self.customer_id,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "delivery_address": self.delivery_address,
            "status": self.status,
            "delivery_date": to_utc_z(self.delivery_date) if self.delivery_date else None,
            "tracking_number": self.tracking_number,
            "notes": self.notes,
            "processed_by_user_id": self.processed_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
