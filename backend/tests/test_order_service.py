"""
Order completion, cancellation and staff management.

Verifies:
- Completion decrements stock, creates one pending delivery per line and
  clears the cart
- Completion is idempotent per payment session
- Stock is re-checked at completion (InsufficientStockError, nothing written)
- Cancellation restores stock exactly (stock conservation)
"""

import pytest

from storefront.errors import EmptyCartError, InsufficientStockError, NotFoundError, PaymentError, ValidationError
from storefront.extensions import db
from storefront.models import Cart, Delivery, Order, StockMovement
from storefront.services import cart_service, checkout_service, delivery_service, inventory_service, order_service


def _paid_session(user, lines, address="1 Main St"):
    owner = cart_service.UserOwner(user.id)
    for product, quantity in lines:
        cart_service.add_item(owner, product.id, quantity)
    session = checkout_service.create_checkout_session(user.id, delivery_address=address)
    return checkout_service.confirm_payment(session.session_key, user.id)


# =============================================================================
# COMPLETION
# =============================================================================


class TestCompleteOrder:

    def test_creates_order_deliveries_and_decrements_stock(self, customer, product_a, product_b):
        session = _paid_session(customer, [(product_a, 3), (product_b, 1)])

        order = order_service.complete_order(session.session_key, customer.id)

        assert order.status == "processing"
        assert order.payment_status == "completed"
        assert order.payment_method == "card"
        assert order.order_number == "ORD-000001"
        assert order.total_cents == session.total_cents
        assert order.subtotal_cents == 3 * 2500 + 8000

        assert product_a.quantity == 7
        assert product_b.quantity == 4

        deliveries = order.deliveries
        assert len(deliveries) == 2
        assert {d.status for d in deliveries} == {"pending"}
        assert {d.order_item_id for d in deliveries} == {item.id for item in order.items}
        assert all(d.delivery_address == "1 Main St" for d in deliveries)

    def test_clears_source_cart(self, customer, product_a):
        session = _paid_session(customer, [(product_a, 1)])
        order_service.complete_order(session.session_key, customer.id)

        cart = db.session.get(Cart, session.cart_id)
        assert cart.is_active is False
        assert cart.items == []
        assert cart_service.get_active_cart(cart_service.UserOwner(customer.id)) is None

    def test_clears_cart_started_as_guest(self, customer, product_a):
        guest = cart_service.GuestOwner("guest-abc")
        cart_service.add_item(guest, product_a.id, 2)
        cart_service.merge_guest_cart(customer.id, "guest-abc")

        session = checkout_service.create_checkout_session(customer.id, delivery_address="1 Main St")
        checkout_service.confirm_payment(session.session_key, customer.id)
        order_service.complete_order(session.session_key, customer.id, guest_session_id="guest-abc")

        assert db.session.query(Cart).filter_by(guest_session_id="guest-abc", is_active=True).count() == 0

    def test_repeat_returns_same_order(self, customer, product_a):
        session = _paid_session(customer, [(product_a, 2)])

        first = order_service.complete_order(session.session_key, customer.id)
        second = order_service.complete_order(session.session_key, customer.id)

        assert first.id == second.id
        assert db.session.query(Order).count() == 1
        assert product_a.quantity == 8
        assert db.session.query(StockMovement).filter_by(reason="ORDER").count() == 1

    def test_insufficient_stock_writes_nothing(self, customer, product_manager, product_a):
        session = _paid_session(customer, [(product_a, 3)])
        inventory_service.adjust_stock(product_a.id, -9, actor_user_id=product_manager.id)

        with pytest.raises(InsufficientStockError) as exc:
            order_service.complete_order(session.session_key, customer.id)

        assert exc.value.details["available_quantity"] == 1
        assert exc.value.details["requested_quantity"] == 3
        assert product_a.quantity == 1
        assert db.session.query(Order).count() == 0
        assert db.session.get(Cart, session.cart_id).is_active is True

    def test_unpaid_session_rejected(self, customer, product_a):
        cart_service.add_item(cart_service.UserOwner(customer.id), product_a.id, 1)
        session = checkout_service.create_checkout_session(customer.id, delivery_address="1 Main St")

        with pytest.raises(PaymentError):
            order_service.complete_order(session.session_key, customer.id)
        assert product_a.quantity == 10

    def test_unknown_session_rejected(self, customer):
        with pytest.raises(PaymentError):
            order_service.complete_order("cs_missing", customer.id)

    def test_session_of_other_customer_rejected(self, customer, other_customer, product_a):
        session = _paid_session(customer, [(product_a, 1)])

        with pytest.raises(ValidationError) as exc:
            order_service.complete_order(session.session_key, other_customer.id)
        assert exc.value.failed == ["not_owner"]

    def test_emptied_cart_rejected(self, customer, product_a):
        session = _paid_session(customer, [(product_a, 1)])
        cart_service.clear_cart(cart_service.UserOwner(customer.id))

        with pytest.raises(EmptyCartError):
            order_service.complete_order(session.session_key, customer.id)

    def test_items_added_after_payment_rejected(self, customer, product_a, product_b):
        session = _paid_session(customer, [(product_a, 1)])
        cart_service.add_item(cart_service.UserOwner(customer.id), product_b.id, 3)

        with pytest.raises(ValidationError) as exc:
            order_service.complete_order(session.session_key, customer.id)

        assert exc.value.failed == ["cart_changed"]
        assert db.session.query(Order).count() == 0
        assert product_a.quantity == 10
        assert product_b.quantity == 5

    def test_quantity_raised_after_payment_rejected(self, customer, product_a):
        session = _paid_session(customer, [(product_a, 1)])
        cart_service.set_item_quantity(cart_service.UserOwner(customer.id), product_a.id, 4)

        with pytest.raises(ValidationError) as exc:
            order_service.complete_order(session.session_key, customer.id)

        assert exc.value.failed == ["cart_changed"]
        assert product_a.quantity == 10

    def test_order_lines_match_paid_subtotal(self, customer, product_a, product_b):
        session = _paid_session(customer, [(product_a, 2), (product_b, 1)])

        order = order_service.complete_order(session.session_key, customer.id)

        assert [(i.product_id, i.quantity) for i in session.items] == [(product_a.id, 2), (product_b.id, 1)]
        assert sum(item.line_total_cents for item in order.items) == order.subtotal_cents == session.subtotal_cents


# =============================================================================
# CANCELLATION
# =============================================================================


class TestCancelOrder:

    def test_stock_conservation(self, customer, product_a, place_order):
        before = product_a.quantity
        order = place_order(customer, [(product_a, 3)])
        assert product_a.quantity == before - 3

        cancelled = order_service.cancel_order(order.id, customer.id)

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert product_a.quantity == before

    def test_deliveries_left_untouched(self, customer, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])
        order_service.cancel_order(order.id, customer.id)

        assert [d.status for d in db.session.query(Delivery).filter_by(order_id=order.id)] == ["pending"]

    def test_only_owner_can_cancel(self, customer, other_customer, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])

        with pytest.raises(ValidationError) as exc:
            order_service.cancel_order(order.id, other_customer.id)
        assert exc.value.failed == ["not_owner"]
        assert db.session.get(Order, order.id).status == "processing"

    def test_not_cancellable_once_in_transit(self, customer, product_manager, product_a, place_order):
        order = place_order(customer, [(product_a, 2)])
        delivery_service.update_delivery_status(
            order.deliveries[0].id, "in-transit", actor_user_id=product_manager.id,
        )

        with pytest.raises(ValidationError) as exc:
            order_service.cancel_order(order.id, customer.id)
        assert exc.value.failed == ["not_cancellable"]
        assert product_a.quantity == 8

    def test_second_cancel_rejected(self, customer, product_a, place_order):
        order = place_order(customer, [(product_a, 2)])
        order_service.cancel_order(order.id, customer.id)

        with pytest.raises(ValidationError):
            order_service.cancel_order(order.id, customer.id)
        assert product_a.quantity == 10

    def test_unknown_order(self, customer):
        with pytest.raises(NotFoundError):
            order_service.cancel_order(9999, customer.id)


# =============================================================================
# QUERIES AND MANAGEMENT
# =============================================================================


class TestOrderQueries:

    def test_customer_sees_only_own_orders(self, customer, other_customer, product_a, product_b, place_order):
        mine = place_order(customer, [(product_a, 1)])
        place_order(other_customer, [(product_b, 1)])

        orders = order_service.list_customer_orders(customer.id)
        assert [o.id for o in orders] == [mine.id]

        with pytest.raises(ValidationError):
            order_service.get_customer_order(mine.id, other_customer.id)

    def test_list_orders_pagination_bounds(self, customer, product_a, place_order):
        place_order(customer, [(product_a, 1)])

        result = order_service.list_orders(page=1, limit=50)
        assert result["total"] == 1

        with pytest.raises(ValidationError):
            order_service.list_orders(limit=51)
        with pytest.raises(ValidationError):
            order_service.list_orders(page=0)

    def test_list_orders_filters(self, customer, product_a, product_b, place_order):
        first = place_order(customer, [(product_a, 1)], address="12 Elm Road")
        place_order(customer, [(product_b, 1)], address="7 Oak Lane")
        order_service.cancel_order(first.id, customer.id)

        by_status = order_service.list_orders(status="cancelled")
        assert [o["id"] for o in by_status["orders"]] == [first.id]

        by_search = order_service.list_orders(search="oak")
        assert by_search["total"] == 1
        assert by_search["orders"][0]["delivery_address"] == "7 Oak Lane"

    def test_overview(self, customer, product_a, product_b, place_order):
        first = place_order(customer, [(product_a, 1)])
        second = place_order(customer, [(product_b, 1)])
        order_service.cancel_order(first.id, customer.id)

        overview = order_service.get_overview()
        assert overview["counts"]["processing"] == 1
        assert overview["counts"]["cancelled"] == 1
        assert overview["total_orders"] == 2
        assert overview["revenue_cents"] == first.total_cents + second.total_cents


class TestStatusOverride:

    def test_delivered_cascades_to_deliveries(self, customer, product_manager, product_a, product_b, place_order):
        order = place_order(customer, [(product_a, 1), (product_b, 1)])

        updated = order_service.set_order_status(order.id, "delivered", actor_user_id=product_manager.id)

        assert updated.status == "delivered"
        assert updated.delivery_date is not None
        assert {d.status for d in updated.deliveries} == {"delivered"}
        assert all(d.delivery_date is not None for d in updated.deliveries)

    def test_in_transit_cascades(self, customer, product_manager, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])
        updated = order_service.set_order_status(order.id, "in-transit", actor_user_id=product_manager.id)
        assert [d.status for d in updated.deliveries] == ["in-transit"]

    def test_cancelled_not_reachable(self, customer, product_manager, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])
        with pytest.raises(ValidationError) as exc:
            order_service.set_order_status(order.id, "cancelled", actor_user_id=product_manager.id)
        assert exc.value.failed == ["invalid_status"]

    def test_cancelled_order_cannot_be_overridden(self, customer, product_manager, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])
        order_service.cancel_order(order.id, customer.id)

        with pytest.raises(ValidationError) as exc:
            order_service.set_order_status(order.id, "delivered", actor_user_id=product_manager.id)
        assert exc.value.failed == ["order_cancelled"]
