# Overview: Order completion, cancellation, customer queries and staff management.

"""
Order Service

WHY: An order is the point where money, stock and fulfillment meet. It has
to be created exactly once per paid checkout session, and every unit it
takes out of stock has to come back if the order is cancelled.

COMPLETION (complete_order), all in ONE transaction:
0. The cart must still hold exactly the lines frozen on the paid session
1. Conditional stock decrement per line (fresh re-check, no oversell)
2. Order row with status "processing" and the session's agreed totals
3. One pending Delivery per order line, address copied from the order
4. Source cart emptied and deactivated through every lookup path

IDEMPOTENCY:
- The payment session key is stored on the order (unique). A repeated call
  returns the existing order before touching stock.
- A concurrent duplicate loses on the unique key and also returns the
  winner's order.

CANCELLATION (cancel_order):
- Owner only, and only while the order is still "processing".
- Stock for every line is credited back and the order becomes "cancelled".
- Deliveries are left as they are.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import EmptyCartError, NotFoundError, PaymentError, ValidationError
from ..extensions import db
from ..models import CheckoutSession, Delivery, Order, OrderItem, Refund
from ..statuses import (
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_IN_TRANSIT,
    DELIVERY_STATUS_PENDING,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_IN_TRANSIT,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUSES,
    PAYMENT_STATUS_COMPLETED,
)
from ..time_utils import utcnow
from . import cart_service, inventory_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import ORDER_DOCUMENT, next_document_number

logger = logging.getLogger(__name__)

PAYMENT_METHOD_CARD = "card"
MAX_PAGE_SIZE = 50

# Staff override target -> status cascaded to every delivery of the order
OVERRIDE_DELIVERY_STATUS = {
    ORDER_STATUS_PROCESSING: DELIVERY_STATUS_PENDING,
    ORDER_STATUS_IN_TRANSIT: DELIVERY_STATUS_IN_TRANSIT,
    ORDER_STATUS_DELIVERED: DELIVERY_STATUS_DELIVERED,
}


def _find_order_for_session(session_key: str) -> Order | None:
    return db.session.query(Order).filter_by(payment_session_key=session_key).first()


def _check_owner(order: Order, customer_id: int) -> None:
    if order.customer_id != customer_id:
        raise ValidationError("Order belongs to another customer", failed=["not_owner"])


def _check_cart_matches_session(session: CheckoutSession, lines) -> None:
    """The cart must still hold exactly the lines that were priced and paid."""
    paid = {(i.product_id, i.quantity, i.unit_price_cents) for i in session.items}
    current = {(line.product_id, line.quantity, line.unit_price_cents) for line in lines}
    if paid != current:
        raise ValidationError(
            "Cart changed after payment; start a new checkout",
            failed=["cart_changed"],
            details={"paid_items": [i.to_dict() for i in session.items]},
        )


# =============================================================================
# COMPLETION
# =============================================================================

def complete_order(
    session_key: str,
    customer_id: int,
    *,
    guest_session_id: str | None = None,
) -> Order:
    """
    Turn a paid checkout session into an order.

    Args:
        session_key: Payment session reference returned at checkout
        customer_id: Authenticated customer completing the purchase
        guest_session_id: Guest identity of the same browser, if any, so a
            cart started anonymously is cleared too

    Returns:
        The created order, or the existing one for a repeated session key

    Raises:
        PaymentError: unknown or unpaid session
        ValidationError: session or order belongs to another customer, or the
            cart no longer matches the lines that were paid (cart_changed)
        EmptyCartError: the session's cart has no lines
        InsufficientStockError: stock dropped below a line's quantity
    """
    if not session_key:
        raise PaymentError("Payment session is required")

    existing = _find_order_for_session(session_key)
    if existing is not None:
        _check_owner(existing, customer_id)
        return existing

    session = db.session.query(CheckoutSession).filter_by(session_key=session_key).first()
    if session is None:
        raise PaymentError("Payment session not found")
    if session.customer_id != customer_id:
        raise ValidationError("Checkout session belongs to another customer", failed=["not_owner"])
    if not session.paid:
        raise PaymentError("Payment has not been completed for this session")

    def _unit():
        cart = session.cart
        lines = list(cart.items) if cart else []
        if not lines:
            raise EmptyCartError("Cart is empty")
        _check_cart_matches_session(session, lines)

        for line in lines:
            inventory_service.decrement_stock(
                line.product_id,
                line.quantity,
                source_type="checkout_session",
                source_id=session_key,
                actor_user_id=customer_id,
            )

        now = utcnow()
        order = Order(
            order_number=next_document_number(ORDER_DOCUMENT),
            customer_id=customer_id,
            subtotal_cents=session.subtotal_cents,
            shipping_cents=session.shipping_cents,
            discount_amount_cents=session.discount_cents,
            tax_cents=session.tax_cents,
            total_cents=session.total_cents,
            delivery_address=session.delivery_address,
            status=ORDER_STATUS_PROCESSING,
            payment_status=PAYMENT_STATUS_COMPLETED,
            payment_method=PAYMENT_METHOD_CARD,
            payment_session_key=session_key,
            coupon_code=session.coupon_code,
            order_date=now,
        )
        for line in lines:
            order.items.append(OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.unit_price_cents * line.quantity,
            ))
        db.session.add(order)
        db.session.flush()

        for item in order.items:
            db.session.add(Delivery(
                order_id=order.id,
                order_item_id=item.id,
                product_id=item.product_id,
                customer_id=customer_id,
                quantity=item.quantity,
                line_total_cents=item.line_total_cents,
                delivery_address=order.delivery_address,
                status=DELIVERY_STATUS_PENDING,
            ))

        cart_service.deactivate_carts(
            cart_id=session.cart_id,
            user_id=customer_id,
            guest_session_id=guest_session_id or (cart.guest_session_id if cart else None),
        )
        db.session.commit()
        return order

    try:
        order = run_with_retry(_unit)
    except IntegrityError:
        # Lost a race with a concurrent completion of the same session
        order = _find_order_for_session(session_key)
        if order is None:
            raise
        _check_owner(order, customer_id)
        return order

    logger.info(
        "Order %s created for customer %s (%d lines, total %s)",
        order.order_number, customer_id, len(order.items), order.total_cents,
    )
    return order


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_order(order_id: int, customer_id: int) -> Order:
    """
    Cancel the customer's own order while it is still processing.

    Raises:
        NotFoundError: unknown order
        ValidationError: not_owner, or not_cancellable once fulfillment started
    """
    def _unit():
        order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        _check_owner(order, customer_id)

        if order.status != ORDER_STATUS_PROCESSING:
            raise ValidationError(
                f"Only processing orders can be cancelled (order is {order.status})",
                failed=["not_cancellable"],
            )

        for item in order.items:
            inventory_service.credit_stock(
                item.product_id,
                item.quantity,
                reason=inventory_service.REASON_CANCEL,
                source_type="order",
                source_id=str(order.id),
                actor_user_id=customer_id,
            )

        order.status = ORDER_STATUS_CANCELLED
        order.cancelled_at = utcnow()
        order.updated_by_user_id = customer_id
        db.session.commit()
        return order

    order = run_with_retry(_unit)
    logger.info("Order %s cancelled by customer %s", order.order_number, customer_id)
    return order


# =============================================================================
# CUSTOMER QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_customer_order(order_id: int, customer_id: int) -> Order:
    order = get_order(order_id)
    _check_owner(order, customer_id)
    return order


def list_customer_orders(customer_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter_by(customer_id=customer_id)
        .order_by(Order.order_date.desc(), Order.id.desc())
        .all()
    )


def list_order_refunds(order_id: int, customer_id: int) -> list[Refund]:
    get_customer_order(order_id, customer_id)
    return (
        db.session.query(Refund)
        .filter_by(order_id=order_id)
        .order_by(Refund.request_date.desc(), Refund.id.desc())
        .all()
    )


# =============================================================================
# STAFF MANAGEMENT
# =============================================================================

def list_orders(
    *,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    if page < 1:
        raise ValidationError("page must be >= 1", failed=["invalid_page"])
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", failed=["invalid_limit"])
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}", failed=["invalid_status"])

    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Order.order_number.ilike(pattern), Order.delivery_address.ilike(pattern)))

    total = query.count()
    orders = (
        query.order_by(Order.order_date.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "orders": [o.to_dict(include_items=False) for o in orders],
        "page": page,
        "limit": limit,
        "total": total,
    }


def get_overview() -> dict:
    """Order counts per status plus revenue from completed payments."""
    counts = {status: 0 for status in ORDER_STATUSES}
    rows = db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    for status, count in rows:
        counts[status] = count

    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.payment_status == PAYMENT_STATUS_COMPLETED)
        .scalar()
    )
    return {
        "counts": counts,
        "total_orders": sum(counts.values()),
        "revenue_cents": int(revenue or 0),
    }


def set_order_status(order_id: int, status: str, *, actor_user_id: int) -> Order:
    """
    Staff override: force an order to processing/in-transit/delivered and
    cascade the matching status to every one of its deliveries.

    Raises:
        ValidationError: invalid target, or the order is cancelled
        NotFoundError: unknown order
    """
    delivery_status = OVERRIDE_DELIVERY_STATUS.get(status) if isinstance(status, str) else None
    if delivery_status is None:
        raise ValidationError(
            f"Invalid order status: {status}",
            failed=["invalid_status"],
            details={"allowed": list(OVERRIDE_DELIVERY_STATUS)},
        )

    def _unit():
        order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status == ORDER_STATUS_CANCELLED:
            raise ValidationError("Cancelled orders cannot be updated", failed=["order_cancelled"])

        now = utcnow()
        for delivery in order.deliveries:
            delivery.status = delivery_status
            delivery.processed_by_user_id = actor_user_id
            if delivery_status == DELIVERY_STATUS_DELIVERED:
                delivery.delivery_date = now

        order.status = status
        if status == ORDER_STATUS_DELIVERED:
            order.delivery_date = now
        order.updated_by_user_id = actor_user_id
        db.session.commit()
        return order

    order = run_with_retry(_unit)
    logger.info("Order %s set to %s by user %s", order.order_number, status, actor_user_id)
    return order
