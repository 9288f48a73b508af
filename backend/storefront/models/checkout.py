from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Coupon(db.Model):
    """Percentage discount code applied to the cart subtotal at checkout."""
    __tablename__ = "coupons"
    __table_args__ = (
        db.CheckConstraint(
            "discount_rate >= 1 AND discount_rate <= 100",
            name="ck_coupons_discount_rate_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored upper-case; lookups are case-insensitive
    code = db.Column(db.String(64), nullable=False, unique=True)

    # Percent off (1-100)
    discount_rate = db.Column(db.Integer, nullable=False)
    min_subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount_rate": self.discount_rate,
            "min_subtotal_cents": self.min_subtotal_cents,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "is_active": self.is_active,
        }


class CheckoutSession(db.Model):
    """
    Payment session handed to the payment processor.

    The processor is trusted for `paid` and for the agreed monetary breakdown;
    order completion copies these values verbatim. `session_key` is what the
    client receives and later presents to complete the order.
    """
    __tablename__ = "checkout_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    session_key = db.Column(db.String(64), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False)

    delivery_address = db.Column(db.Text, nullable=False)
    coupon_code = db.Column(db.String(64), nullable=True)

    # Agreed breakdown (cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("User")
    cart = db.relationship("Cart")
    items = db.relationship(
        "CheckoutSessionItem",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CheckoutSessionItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_key": self.session_key,
            "customer_id": self.customer_id,
            "cart_id": self.cart_id,
            "delivery_address": self.delivery_address,
            "coupon_code": self.coupon_code,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "shipping_cents": self.shipping_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class CheckoutSessionItem(db.Model):
    """
    Cart line as it was priced into the session.

    Order completion only proceeds while the cart still holds exactly these
    lines, so an order never contains goods the payment did not cover.
    """
    __tablename__ = "checkout_session_items"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", name="uq_checkout_session_items_session_product"),
        db.CheckConstraint("quantity >= 1", name="ck_checkout_session_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("checkout_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    session = db.relationship("CheckoutSession", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
