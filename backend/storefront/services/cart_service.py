# Overview: Shopping carts for signed-in users and anonymous guest sessions.

"""
Cart Service

OWNERSHIP:
A cart belongs to exactly one Owner, which is either a signed-in user
(UserOwner) or an anonymous browser session (GuestOwner). When a request
carries both identities the user wins; the guest cart is folded into the
user's cart on login (merge_guest_cart).

PRICING:
unit_price_cents is captured when a product is first added. Checkout quotes
and orders use the captured price.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Cart, CartItem, Product
from .inventory_service import get_product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserOwner:
    user_id: int


@dataclass(frozen=True)
class GuestOwner:
    session_id: str


Owner = Union[UserOwner, GuestOwner]


def resolve_owner(user_id: int | None, guest_session_id: str | None) -> Owner | None:
    """Prefer the signed-in user; fall back to the guest session."""
    if user_id is not None:
        return UserOwner(user_id)
    if guest_session_id:
        return GuestOwner(guest_session_id)
    return None


def _active_cart_query(owner: Owner):
    query = db.session.query(Cart).filter(Cart.is_active.is_(True))
    if isinstance(owner, UserOwner):
        return query.filter(Cart.user_id == owner.user_id)
    # Guest carts adopted by a user are no longer reachable anonymously
    return query.filter(Cart.guest_session_id == owner.session_id, Cart.user_id.is_(None))


def get_active_cart(owner: Owner) -> Cart | None:
    return _active_cart_query(owner).order_by(Cart.id.desc()).first()


def get_or_create_cart(owner: Owner) -> Cart:
    cart = get_active_cart(owner)
    if cart is not None:
        return cart

    if isinstance(owner, UserOwner):
        cart = Cart(user_id=owner.user_id, is_active=True)
    else:
        cart = Cart(guest_session_id=owner.session_id, is_active=True)
    db.session.add(cart)
    db.session.flush()
    return cart


def _find_item(cart: Cart, product_id: int) -> CartItem | None:
    for item in cart.items:
        if item.product_id == product_id:
            return item
    return None


def _check_available(product: Product, quantity: int) -> None:
    if not product.is_active:
        raise ValidationError(f"{product.name} is not available", failed=["product_inactive"])
    if quantity > product.quantity:
        raise ValidationError(
            f"Only {product.quantity} of {product.name} in stock",
            failed=["exceeds_stock"],
            details={"product_id": product.id, "available_quantity": product.quantity},
        )


def _parse_quantity(quantity, *, allow_zero: bool) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", failed=["invalid_quantity"])
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValidationError("quantity must be positive", failed=["invalid_quantity"])
    return quantity


def add_item(owner: Owner, product_id: int, quantity: int = 1) -> Cart:
    """Add units of a product; an existing line for the product grows."""
    quantity = _parse_quantity(quantity, allow_zero=False)
    product = get_product(product_id)

    cart = get_or_create_cart(owner)
    item = _find_item(cart, product.id)
    new_quantity = quantity + (item.quantity if item else 0)
    _check_available(product, new_quantity)

    if item:
        item.quantity = new_quantity
    else:
        cart.items.append(CartItem(
            product_id=product.id,
            quantity=new_quantity,
            unit_price_cents=product.price_cents,
        ))

    db.session.commit()
    return cart


def set_item_quantity(owner: Owner, product_id: int, quantity: int) -> Cart:
    """Set a line's quantity; 0 removes the line."""
    quantity = _parse_quantity(quantity, allow_zero=True)
    if quantity == 0:
        return remove_item(owner, product_id)

    cart = get_active_cart(owner)
    item = _find_item(cart, product_id) if cart else None
    if item is None:
        raise NotFoundError(f"Product {product_id} is not in the cart")

    _check_available(get_product(product_id), quantity)
    item.quantity = quantity
    db.session.commit()
    return cart


def remove_item(owner: Owner, product_id: int) -> Cart:
    cart = get_active_cart(owner)
    item = _find_item(cart, product_id) if cart else None
    if item is None:
        raise NotFoundError(f"Product {product_id} is not in the cart")

    cart.items.remove(item)
    db.session.commit()
    return cart


def clear_cart(owner: Owner) -> Cart | None:
    cart = get_active_cart(owner)
    if cart is None:
        return None
    cart.items.clear()
    db.session.commit()
    return cart


def merge_guest_cart(user_id: int, guest_session_id: str | None) -> Cart | None:
    """
    Fold the guest's active cart into the user's active cart. Commits.

    With no user cart the guest cart is adopted as is (it keeps its
    guest_session_id). Otherwise quantities are summed per product and the
    guest cart is deactivated.
    """
    if not guest_session_id:
        return None

    guest_cart = get_active_cart(GuestOwner(guest_session_id))
    if guest_cart is None:
        return None

    user_cart = get_active_cart(UserOwner(user_id))
    if user_cart is None:
        guest_cart.user_id = user_id
        db.session.commit()
        logger.info("Guest cart %s adopted by user %s", guest_cart.id, user_id)
        return guest_cart

    for guest_item in list(guest_cart.items):
        existing = _find_item(user_cart, guest_item.product_id)
        if existing:
            existing.quantity += guest_item.quantity
        else:
            user_cart.items.append(CartItem(
                product_id=guest_item.product_id,
                quantity=guest_item.quantity,
                unit_price_cents=guest_item.unit_price_cents,
            ))
    guest_cart.items.clear()
    guest_cart.is_active = False
    db.session.commit()

    logger.info("Guest cart %s merged into cart %s for user %s", guest_cart.id, user_cart.id, user_id)
    return user_cart


def deactivate_carts(
    *,
    cart_id: int | None = None,
    user_id: int | None = None,
    guest_session_id: str | None = None,
) -> int:
    """
    Empty and deactivate every active cart reachable by id, user or guest session.

    A shopper may have started as a guest and signed in mid-checkout, so the
    paid cart can be reachable through any of the three. Does not commit.
    Returns the number of carts deactivated.
    """
    conditions = []
    if cart_id is not None:
        conditions.append(Cart.id == cart_id)
    if user_id is not None:
        conditions.append(Cart.user_id == user_id)
    if guest_session_id:
        conditions.append(Cart.guest_session_id == guest_session_id)
    if not conditions:
        return 0

    carts = (
        db.session.query(Cart)
        .filter(Cart.is_active.is_(True), db.or_(*conditions))
        .all()
    )
    for cart in carts:
        cart.items.clear()
        cart.is_active = False
    db.session.flush()
    return len(carts)
