from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product with its available stock.

    `quantity` is only ever changed through inventory_service, which issues
    conditional atomic deltas and appends a StockMovement for each change.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)

    # Available stock
    quantity = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every stock change.

    REASONS:
    - ORDER: stock taken by a completed order (negative)
    - CANCEL: stock restored by an order cancellation (positive)
    - REFUND: stock credited back by an approved refund (positive)
    - ADJUST: manual staff correction (either sign)

    The unique constraint means one (reason, source) pair can move a given
    product at most once; for REFUND this is the at-most-one-credit guarantee.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint(
            "reason", "source_type", "source_id", "product_id",
            name="uq_stock_movements_source",
        ),
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(16), nullable=False, index=True)

    # What caused the movement ("order", "refund", "adjustment"); ADJUST rows use a fresh id each time
    source_type = db.Column(db.String(32), nullable=False)
    source_id = db.Column(db.String(64), nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class DocumentSequence(db.Model):
    """Per-type counters for human-readable numbers (ORD-000001, RFD-000001)."""
    __tablename__ = "document_sequences"

    document_type = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
