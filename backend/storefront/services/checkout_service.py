# Overview: Checkout pricing, coupons, and payment sessions consumed by order completion.

"""
Checkout Service

WHY: The payment processor is handed one agreed monetary breakdown and
later reports whether it was paid. Order completion trusts that breakdown
verbatim, so it is computed exactly once here and frozen on the
CheckoutSession row together with the cart lines it was computed from.

PRICING (integer cents, no floats):
- subtotal  = sum(unit_price_cents * quantity)
- discount  = subtotal * coupon rate / 100, rounded half-up
- shipping  = 0 if (subtotal - discount) >= FREE_SHIPPING_THRESHOLD_CENTS
              else FLAT_SHIPPING_CENTS
- tax       = (subtotal - discount + shipping) * TAX_RATE_BPS / 10000,
              rounded half-up
- total     = subtotal - discount + shipping + tax
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime

from flask import current_app

from ..errors import EmptyCartError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Cart, CheckoutSession, CheckoutSessionItem, Coupon
from ..time_utils import utcnow
from .cart_service import UserOwner, get_active_cart

logger = logging.getLogger(__name__)


def _round_half_up_div(numerator: int, denominator: int) -> int:
    return (numerator + denominator // 2) // denominator


# =============================================================================
# COUPONS
# =============================================================================

def normalize_coupon_code(code: str | None) -> str:
    if code is None:
        return ""
    return str(code).strip().upper()


def find_coupon(code: str | None) -> Coupon | None:
    normalized = normalize_coupon_code(code)
    if not normalized:
        return None
    return db.session.query(Coupon).filter_by(code=normalized).first()


def coupon_failures(coupon: Coupon | None, subtotal_cents: int, now: datetime | None = None) -> list[str]:
    """Reasons a coupon cannot be applied to a subtotal (empty list = applicable)."""
    if coupon is None:
        return ["unknown_coupon"]

    now = now or utcnow()
    failed = []
    if not coupon.is_active:
        failed.append("coupon_inactive")
    if coupon.expires_at is not None and coupon.expires_at < now:
        failed.append("coupon_expired")
    if subtotal_cents < (coupon.min_subtotal_cents or 0):
        failed.append("coupon_minimum_not_met")
    return failed


def create_coupon(
    code: str,
    discount_rate: int,
    *,
    min_subtotal_cents: int = 0,
    expires_at: datetime | None = None,
) -> Coupon:
    normalized = normalize_coupon_code(code)
    failed = []
    if not normalized:
        failed.append("missing_code")
    if isinstance(discount_rate, bool) or not isinstance(discount_rate, int) or not 1 <= discount_rate <= 100:
        failed.append("invalid_discount_rate")
    if isinstance(min_subtotal_cents, bool) or not isinstance(min_subtotal_cents, int) or min_subtotal_cents < 0:
        failed.append("invalid_min_subtotal")
    if normalized and find_coupon(normalized):
        failed.append("duplicate_code")
    if failed:
        raise ValidationError("Invalid coupon", failed=failed)

    coupon = Coupon(
        code=normalized,
        discount_rate=discount_rate,
        min_subtotal_cents=min_subtotal_cents,
        expires_at=expires_at,
        is_active=True,
    )
    db.session.add(coupon)
    db.session.commit()

    logger.info("Coupon %s created (%s%% off)", coupon.code, coupon.discount_rate)
    return coupon


def list_coupons() -> list[Coupon]:
    return db.session.query(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


# =============================================================================
# QUOTES
# =============================================================================

def quote_cart(cart: Cart | None, coupon_code: str | None = None) -> dict:
    """
    Price a cart. A supplied coupon code that cannot be applied is an error,
    not a silent full-price quote.

    Raises:
        EmptyCartError: no cart or no lines
        ValidationError: coupon not applicable (failed lists why)
    """
    if cart is None or not cart.items:
        raise EmptyCartError("Cart is empty")

    config = current_app.config
    subtotal = sum(item.unit_price_cents * item.quantity for item in cart.items)

    discount = 0
    applied_code = None
    if normalize_coupon_code(coupon_code):
        coupon = find_coupon(coupon_code)
        failed = coupon_failures(coupon, subtotal)
        if failed:
            raise ValidationError("Coupon cannot be applied", failed=failed)
        discount = _round_half_up_div(subtotal * coupon.discount_rate, 100)
        applied_code = coupon.code

    discounted = subtotal - discount
    if discounted >= config["FREE_SHIPPING_THRESHOLD_CENTS"]:
        shipping = 0
    else:
        shipping = config["FLAT_SHIPPING_CENTS"]

    tax = _round_half_up_div((discounted + shipping) * config["TAX_RATE_BPS"], 10000)

    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "shipping_cents": shipping,
        "tax_cents": tax,
        "total_cents": discounted + shipping + tax,
        "coupon_code": applied_code,
    }


# =============================================================================
# PAYMENT SESSIONS
# =============================================================================

def _check_cart_stock(cart: Cart) -> None:
    for item in cart.items:
        product = item.product
        if product is None or not product.is_active or item.quantity > product.quantity:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name if product else item.product_id}",
                details={
                    "product_id": item.product_id,
                    "requested_quantity": item.quantity,
                    "available_quantity": product.quantity if product else 0,
                },
            )


def create_checkout_session(
    customer_id: int,
    *,
    delivery_address: str | None,
    coupon_code: str | None = None,
) -> CheckoutSession:
    """
    Freeze a quote for the customer's active cart into a payment session.

    Raises:
        ValidationError: missing delivery address, coupon not applicable
        EmptyCartError: no active cart or no lines
        InsufficientStockError: a line exceeds current stock
    """
    address = delivery_address.strip() if isinstance(delivery_address, str) else ""
    if not address:
        raise ValidationError("Delivery address is required", failed=["missing_delivery_address"])

    cart = get_active_cart(UserOwner(customer_id))
    quote = quote_cart(cart, coupon_code)
    _check_cart_stock(cart)

    session = CheckoutSession(
        session_key=f"cs_{secrets.token_urlsafe(24)}",
        customer_id=customer_id,
        cart_id=cart.id,
        delivery_address=address,
        coupon_code=quote["coupon_code"],
        subtotal_cents=quote["subtotal_cents"],
        discount_cents=quote["discount_cents"],
        shipping_cents=quote["shipping_cents"],
        tax_cents=quote["tax_cents"],
        total_cents=quote["total_cents"],
        paid=False,
    )
    for item in cart.items:
        session.items.append(CheckoutSessionItem(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
        ))
    db.session.add(session)
    db.session.commit()

    logger.info("Checkout session %s created for customer %s (total %s)", session.id, customer_id, session.total_cents)
    return session


def get_checkout_session(session_key: str) -> CheckoutSession:
    session = db.session.query(CheckoutSession).filter_by(session_key=session_key).first()
    if session is None:
        raise NotFoundError("Checkout session not found")
    return session


def confirm_payment(session_key: str, customer_id: int) -> CheckoutSession:
    """Record the processor's payment-succeeded callback. Idempotent."""
    session = get_checkout_session(session_key)
    if session.customer_id != customer_id:
        raise ValidationError("Checkout session belongs to another customer", failed=["not_owner"])

    if not session.paid:
        session.paid = True
        session.paid_at = utcnow()
        db.session.commit()
        logger.info("Checkout session %s marked paid", session.id)

    return session
