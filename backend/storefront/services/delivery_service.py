# Overview: Delivery status updates and the order status they drive.

"""
Delivery Status Synchronization

WHY: An order ships as independent line-item deliveries. The order status is
not transitioned on its own; it is recomputed from the statuses of all its
deliveries every time one of them changes, so the two never drift apart.

DERIVATION (derive_order_status):
- every delivery delivered  -> order "delivered" (completion time stamped)
- else any delivery in transit -> order "in-transit"
- else any delivery pending    -> order "processing"
- otherwise (e.g. only failed/delivered mixes) -> order status unchanged

A failed delivery never moves the order on its own, and a cancelled order is
never re-derived.

CONCURRENCY:
- The delivery write and the sibling read + order write run in ONE
  transaction with the parent order row locked (SELECT ... FOR UPDATE).
- Order and Delivery carry version columns; a concurrent writer loses with
  StaleDataError and the whole unit is retried from fresh reads.
- The delivery is flushed before siblings are read, so the aggregation always
  sees its new status.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Delivery, Order
from ..statuses import (
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_IN_TRANSIT,
    DELIVERY_STATUS_PENDING,
    DELIVERY_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_IN_TRANSIT,
    ORDER_STATUS_PROCESSING,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def derive_order_status(delivery_statuses: Iterable[str]) -> str | None:
    """
    Pure reducer from sibling delivery statuses to the order status.

    Returns None when no rule applies (the order keeps its current status).
    """
    present = set(delivery_statuses)
    if not present:
        return None
    if present == {DELIVERY_STATUS_DELIVERED}:
        return ORDER_STATUS_DELIVERED
    if DELIVERY_STATUS_IN_TRANSIT in present:
        return ORDER_STATUS_IN_TRANSIT
    if DELIVERY_STATUS_PENDING in present:
        return ORDER_STATUS_PROCESSING
    return None


def synchronize_order_status(order: Order, actor_user_id: int | None) -> Order:
    """
    Recompute `order.status` from its deliveries. Does not commit.

    Caller must hold the order row lock and have flushed delivery changes.
    """
    if order.status == ORDER_STATUS_CANCELLED:
        return order

    statuses = [
        status for (status,) in
        db.session.query(Delivery.status).filter(Delivery.order_id == order.id).all()
    ]
    derived = derive_order_status(statuses)
    if derived is None:
        logger.info("Order %s status unchanged (%s) for deliveries %s", order.order_number, order.status, sorted(set(statuses)))
        return order

    if derived == ORDER_STATUS_DELIVERED and (order.status != ORDER_STATUS_DELIVERED or order.delivery_date is None):
        order.delivery_date = utcnow()

    if order.status != derived:
        logger.info("Order %s status %s -> %s", order.order_number, order.status, derived)

    order.status = derived
    order.updated_by_user_id = actor_user_id
    return order


def update_delivery_status(
    delivery_id: int,
    status: str,
    *,
    actor_user_id: int,
    tracking_number: str | None = None,
    notes: str | None = None,
) -> tuple[Delivery, Order]:
    """
    Set one delivery's status and re-derive its order in the same transaction.

    Raises:
        ValidationError: status not one of pending/in-transit/delivered/failed,
            or a tracking number or notes value that is not text
        NotFoundError: unknown delivery id

    Returns:
        (delivery, order) after commit
    """
    if status not in DELIVERY_STATUSES:
        raise ValidationError(
            f"Invalid delivery status: {status}",
            failed=["invalid_status"],
            details={"allowed": list(DELIVERY_STATUSES)},
        )

    # Carrier numbers often arrive as JSON numbers
    if isinstance(tracking_number, int) and not isinstance(tracking_number, bool):
        tracking_number = str(tracking_number)
    if tracking_number is not None and not isinstance(tracking_number, str):
        raise ValidationError("Tracking number must be a string", failed=["invalid_tracking_number"])
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("Notes must be a string", failed=["invalid_notes"])

    def _unit():
        delivery = db.session.get(Delivery, delivery_id)
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found")

        # Lock the parent first so sibling updates serialize on the order row
        order = lock_for_update(db.session.query(Order).filter(Order.id == delivery.order_id)).one()

        delivery.status = status
        if status == DELIVERY_STATUS_DELIVERED:
            delivery.delivery_date = utcnow()
        if tracking_number is not None:
            delivery.tracking_number = tracking_number.strip() or None
        if notes is not None:
            delivery.notes = notes
        delivery.processed_by_user_id = actor_user_id
        db.session.flush()

        synchronize_order_status(order, actor_user_id)
        db.session.commit()
        return delivery, order

    delivery, order = run_with_retry(_unit)
    logger.info(
        "Delivery %s set to %s by user %s (order %s now %s)",
        delivery.id, status, actor_user_id, order.order_number, order.status,
    )
    return delivery, order


def list_deliveries(
    *,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Paginated staff view of deliveries, newest first."""
    if page < 1:
        raise ValidationError("page must be >= 1", failed=["invalid_page"])
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", failed=["invalid_limit"])
    if status is not None and status not in DELIVERY_STATUSES:
        raise ValidationError(f"Invalid delivery status: {status}", failed=["invalid_status"])

    query = db.session.query(Delivery)
    if status:
        query = query.filter(Delivery.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Delivery.delivery_address.ilike(pattern), Delivery.tracking_number.ilike(pattern))
        )

    total = query.count()
    deliveries = (
        query.order_by(Delivery.created_at.desc(), Delivery.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "deliveries": [d.to_dict() for d in deliveries],
        "page": page,
        "limit": limit,
        "total": total,
    }
