# Overview: Product stock changes as conditional atomic deltas plus an append-only movement log.

"""
Storefront Stock Invariants (authoritative)

- Product.quantity is the available stock and is never negative.
- Every change is a single UPDATE expressed as a delta
  (quantity = quantity +/- n), never read-modify-write in Python, so
  concurrent decrements cannot oversell.
- Decrements are conditional (WHERE quantity >= n); zero affected rows means
  the fresh stock was insufficient.
- Every change appends a StockMovement in the same DB transaction.
- (reason, source_type, source_id, product_id) is unique, so a given source
  (one refund, one order cancellation, one checkout session) moves a given
  product at most once.

Functions here never commit; the calling service owns the transaction.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

REASON_ORDER = "ORDER"
REASON_CANCEL = "CANCEL"
REASON_REFUND = "REFUND"
REASON_ADJUST = "ADJUST"


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(*, include_inactive: bool = False, search: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        query = query.filter(Product.name.ilike(f"%{search}%"))
    return query.order_by(Product.name.asc()).all()


def _refresh_product(product_id: int) -> None:
    """Reload a product the session may hold with a pre-UPDATE quantity."""
    product = db.session.get(Product, product_id)
    if product is not None:
        db.session.refresh(product)


def _record_movement(
    *,
    product_id: int,
    delta: int,
    reason: str,
    source_type: str,
    source_id: str,
    actor_user_id: int | None,
    note: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        quantity_delta=delta,
        reason=reason,
        source_type=source_type,
        source_id=str(source_id),
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def decrement_stock(
    product_id: int,
    quantity: int,
    *,
    source_type: str,
    source_id: str,
    actor_user_id: int | None = None,
    reason: str = REASON_ORDER,
    note: str | None = None,
) -> StockMovement:
    """
    Take `quantity` units out of stock, failing if fewer are available right now.

    Raises:
        ValidationError: quantity is not positive
        InsufficientStockError: the conditional update matched no row
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", failed=["quantity_not_positive"])

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.quantity >= quantity)
        .values(quantity=Product.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        db.session.refresh(product)
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product_id,
                "requested_quantity": quantity,
                "available_quantity": product.quantity,
            },
        )

    _refresh_product(product_id)

    return _record_movement(
        product_id=product_id,
        delta=-quantity,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
        actor_user_id=actor_user_id,
        note=note,
    )


def credit_stock(
    product_id: int,
    quantity: int,
    *,
    reason: str,
    source_type: str,
    source_id: str,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """Put `quantity` units back into stock."""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", failed=["quantity_not_positive"])

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFoundError(f"Product {product_id} not found")

    _refresh_product(product_id)

    return _record_movement(
        product_id=product_id,
        delta=quantity,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
        actor_user_id=actor_user_id,
        note=note,
    )


def adjust_stock(product_id: int, delta: int, *, actor_user_id: int | None, note: str | None = None) -> Product:
    """
    Manual stock correction by staff (either sign). Commits.

    Negative adjustments use the same conditional decrement, so stock can
    never be adjusted below zero.
    """
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer", failed=["invalid_delta"])

    source_id = uuid.uuid4().hex
    try:
        if delta > 0:
            credit_stock(
                product_id, delta,
                reason=REASON_ADJUST, source_type="adjustment", source_id=source_id,
                actor_user_id=actor_user_id, note=note,
            )
        else:
            decrement_stock(
                product_id, -delta,
                reason=REASON_ADJUST, source_type="adjustment", source_id=source_id,
                actor_user_id=actor_user_id, note=note,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    product = get_product(product_id)
    logger.info("Stock adjusted for product %s by %+d (now %s)", product_id, delta, product.quantity)
    return product


def get_stock_movements(product_id: int, limit: int = 50) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
