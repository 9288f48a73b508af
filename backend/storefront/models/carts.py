from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Cart(db.Model):
    """
    Shopping cart owned by a user or by an anonymous guest session.

    A cart created as a guest keeps its guest_session_id after the shopper
    logs in, so checkout can clear it through either identity.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.CheckConstraint(
            "user_id IS NOT NULL OR guest_session_id IS NOT NULL",
            name="ck_carts_has_owner",
        ),
        db.Index("ix_carts_user_active", "user_id", "is_active"),
        db.Index("ix_carts_guest_active", "guest_session_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    guest_session_id = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "CartItem",
        backref="cart",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def subtotal_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "guest_session_id": self.guest_session_id,
            "is_active": self.is_active,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class CartItem(db.Model):
    """One line per product; price captured when the product was added."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
