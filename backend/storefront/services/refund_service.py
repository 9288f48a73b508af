# Overview: Refund requests on delivered orders and the staff decision workflow.

"""
Refund Service

WHY: A refund reverses money for a quantity of one purchased product. It
has to be tied to a delivered order inside the refund window, it must not
be requested twice while a request is still live, and approving it must put
the units back into stock exactly once.

REQUEST RULES (request_refund), all checked before anything is written:
- caller owns the order (not_owner, reported on its own)
- order status is "delivered" (not_delivered)
- order_date >= now - REFUND_WINDOW_DAYS, boundary inclusive (window_expired)
- every requested product is a line of the order (unknown_product), at most
  once per request (duplicate_item), with 1 <= quantity <= line quantity
  (invalid_quantity)
- no pending/approved refund for the same (order, product)
  (duplicate_active_refund); a rejected refund does not block

LIFECYCLE (decide_refund):
    pending --approve--> approved --process--> processed
    pending --reject---> rejected

STOCK CREDIT ON APPROVAL:
- Runs in the approval transaction with the refund row locked.
- Guarded by stock_added_back; the REFUND stock movement is unique per
  (refund, product), so a second credit cannot be committed even if the
  flag were bypassed.
- Refund rows carry a version column; a concurrent decision loses with
  StaleDataError and is retried from fresh reads, where it then fails the
  status precondition.

Notification happens after commit and is best effort.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, Refund
from ..statuses import (
    ACTIVE_REFUND_STATUSES,
    ORDER_STATUS_DELIVERED,
    REFUND_STATUS_APPROVED,
    REFUND_STATUS_PENDING,
    REFUND_STATUS_PROCESSED,
    REFUND_STATUS_REJECTED,
    REFUND_STATUSES,
)
from ..time_utils import utcnow
from . import inventory_service, notification_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import REFUND_DOCUMENT, next_document_number

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
DECISION_PROCESS = "process"

DEFAULT_REFUND_REASON = "Customer requested refund"
DEFAULT_REJECTION_REASON = "Not specified"

# decision -> (required current status, resulting status)
_TRANSITIONS = {
    DECISION_APPROVE: (REFUND_STATUS_PENDING, REFUND_STATUS_APPROVED),
    DECISION_REJECT: (REFUND_STATUS_PENDING, REFUND_STATUS_REJECTED),
    DECISION_PROCESS: (REFUND_STATUS_APPROVED, REFUND_STATUS_PROCESSED),
}


def refund_window_cutoff(now: datetime | None = None) -> datetime:
    """Earliest order_date still eligible for a refund."""
    now = now or utcnow()
    return now - timedelta(days=current_app.config["REFUND_WINDOW_DAYS"])


def _parse_items(order: Order, items) -> tuple[list[tuple[object, int]], list[str]]:
    """Match requested items to order lines; returns (line, quantity) pairs and failure codes."""
    failed: list[str] = []
    if not isinstance(items, list) or not items:
        return [], ["no_items"]

    lines_by_product = {line.product_id: line for line in order.items}
    selected = []
    seen = set()
    for entry in items:
        product_id = entry.get("product_id") if isinstance(entry, dict) else None
        line = lines_by_product.get(product_id) if isinstance(product_id, int) else None
        if line is None:
            failed.append("unknown_product")
            continue

        if product_id in seen:
            failed.append("duplicate_item")
            continue
        seen.add(product_id)

        quantity = entry.get("quantity", line.quantity)
        if quantity is None:
            quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= line.quantity:
            failed.append("invalid_quantity")
            continue

        selected.append((line, quantity))
    return selected, failed


def _has_active_refund(order_id: int, product_id: int) -> bool:
    return db.session.query(Refund.id).filter(
        Refund.order_id == order_id,
        Refund.product_id == product_id,
        Refund.status.in_(ACTIVE_REFUND_STATUSES),
    ).first() is not None


def request_refund(
    order_id: int,
    customer_id: int,
    items,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> list[Refund]:
    """
    Create one pending refund per requested order line.

    Args:
        items: [{"product_id": int, "quantity": int (optional, default full line)}]
        now: evaluation time for the refund window (defaults to current time)

    Raises:
        NotFoundError: unknown order
        ValidationError: failed lists every precondition that did not hold
    """
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("Reason must be a string", failed=["invalid_reason"])
    now = now or utcnow()
    reason = (reason or "").strip() or DEFAULT_REFUND_REASON

    def _unit():
        # Locking the order serializes concurrent requests for its lines
        order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.customer_id != customer_id:
            raise ValidationError("Order belongs to another customer", failed=["not_owner"])

        failed = []
        if order.status != ORDER_STATUS_DELIVERED:
            failed.append("not_delivered")
        if order.order_date < refund_window_cutoff(now):
            failed.append("window_expired")

        selected, item_failures = _parse_items(order, items)
        failed.extend(item_failures)

        for line, _ in selected:
            if _has_active_refund(order.id, line.product_id):
                failed.append("duplicate_active_refund")
                break

        if failed:
            raise ValidationError(
                "Refund request is not allowed",
                failed=list(dict.fromkeys(failed)),
            )

        refunds = []
        for line, quantity in selected:
            refund = Refund(
                refund_number=next_document_number(REFUND_DOCUMENT),
                customer_id=customer_id,
                order_id=order.id,
                product_id=line.product_id,
                quantity=quantity,
                purchase_price_cents=line.unit_price_cents,
                refund_amount_cents=line.unit_price_cents * quantity,
                reason=reason,
                status=REFUND_STATUS_PENDING,
                request_date=now,
            )
            db.session.add(refund)
            refunds.append(refund)

        db.session.commit()
        return refunds

    refunds = run_with_retry(_unit)
    for refund in refunds:
        logger.info("Refund %s requested for order %s by customer %s", refund.refund_number, order_id, customer_id)
    return refunds


def decide_refund(
    refund_id: int,
    decision: str,
    *,
    actor_user_id: int,
    rejection_reason: str | None = None,
    product_returned: bool | None = None,
) -> Refund:
    """
    Apply a staff decision to a refund.

    Args:
        decision: "approve", "reject" or "process"
        rejection_reason: stored on reject (defaulted when blank)
        product_returned: optional flag recorded on approve

    Raises:
        ValidationError: unknown decision, malformed product_returned or
            rejection_reason, or refund not in the required status
        NotFoundError: unknown refund
    """
    transition = _TRANSITIONS.get(decision) if isinstance(decision, str) else None
    if transition is None:
        raise ValidationError(
            f"Invalid decision: {decision}",
            failed=["invalid_decision"],
            details={"allowed": list(_TRANSITIONS)},
        )
    required_status, new_status = transition
    if product_returned is not None and not isinstance(product_returned, bool):
        raise ValidationError("product_returned must be true or false", failed=["invalid_product_returned"])
    if rejection_reason is not None and not isinstance(rejection_reason, str):
        raise ValidationError("Rejection reason must be a string", failed=["invalid_rejection_reason"])

    def _unit():
        refund = lock_for_update(db.session.query(Refund).filter(Refund.id == refund_id)).first()
        if refund is None:
            raise NotFoundError(f"Refund {refund_id} not found")

        if refund.status != required_status:
            raise ValidationError(
                f"Only {required_status} refunds can be {new_status} (refund is {refund.status})",
                failed=["invalid_transition"],
                details={"current_status": refund.status},
            )

        now = utcnow()
        refund.status = new_status

        if decision == DECISION_APPROVE:
            refund.approved_by_user_id = actor_user_id
            refund.approval_date = now
            if product_returned is not None:
                refund.product_returned = product_returned
            if not refund.stock_added_back:
                inventory_service.credit_stock(
                    refund.product_id,
                    refund.quantity,
                    reason=inventory_service.REASON_REFUND,
                    source_type="refund",
                    source_id=str(refund.id),
                    actor_user_id=actor_user_id,
                    note=refund.refund_number,
                )
                refund.stock_added_back = True

        elif decision == DECISION_REJECT:
            refund.approved_by_user_id = actor_user_id
            refund.approval_date = now
            refund.rejection_reason = (rejection_reason or "").strip() or DEFAULT_REJECTION_REASON

        else:
            refund.processed_date = now

        db.session.commit()
        return refund

    refund = run_with_retry(_unit)
    logger.info("Refund %s %s by user %s", refund.refund_number, refund.status, actor_user_id)

    notification_service.send_refund_status(refund)
    return refund


def get_refund(refund_id: int) -> Refund:
    refund = db.session.get(Refund, refund_id)
    if refund is None:
        raise NotFoundError(f"Refund {refund_id} not found")
    return refund


def list_refunds(*, status: str | None = None) -> list[Refund]:
    """Staff queue, oldest request first so pending work is handled in order."""
    if status is not None and status not in REFUND_STATUSES:
        raise ValidationError(f"Invalid refund status: {status}", failed=["invalid_status"])

    query = db.session.query(Refund)
    if status:
        query = query.filter(Refund.status == status)
    return query.order_by(Refund.request_date.asc(), Refund.id.asc()).all()


def list_customer_refunds(customer_id: int) -> list[Refund]:
    return (
        db.session.query(Refund)
        .filter_by(customer_id=customer_id)
        .order_by(Refund.request_date.desc(), Refund.id.desc())
        .all()
    )
