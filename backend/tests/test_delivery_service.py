"""
Delivery status updates and order status synchronization.

Verifies:
- The just-updated delivery is included in the aggregation
- delivered on every sibling -> order delivered with a completion timestamp
- A failed delivery alone does not move the order
- Bad input is rejected before anything is written
"""

import pytest

from storefront.errors import NotFoundError, ValidationError
from storefront.extensions import db
from storefront.models import Delivery, Order
from storefront.services import delivery_service, order_service


@pytest.fixture
def two_line_order(customer, product_a, product_b, place_order):
    return place_order(customer, [(product_a, 2), (product_b, 1)])


def _deliveries(order):
    return db.session.query(Delivery).filter_by(order_id=order.id).order_by(Delivery.id).all()


class TestUpdateDeliveryStatus:

    def test_partial_delivery_keeps_order_processing(self, two_line_order, product_manager):
        first, _second = _deliveries(two_line_order)

        delivery, order = delivery_service.update_delivery_status(
            first.id, "delivered", actor_user_id=product_manager.id,
        )

        assert delivery.status == "delivered"
        assert delivery.delivery_date is not None
        assert delivery.processed_by_user_id == product_manager.id
        assert order.status == "processing"
        assert order.delivery_date is None

    def test_all_delivered_marks_order_delivered(self, two_line_order, product_manager):
        for delivery in _deliveries(two_line_order):
            _, order = delivery_service.update_delivery_status(
                delivery.id, "delivered", actor_user_id=product_manager.id,
            )

        assert order.status == "delivered"
        assert order.delivery_date is not None
        assert order.updated_by_user_id == product_manager.id

    def test_in_transit_wins_over_pending(self, two_line_order, product_manager):
        first, _second = _deliveries(two_line_order)

        _, order = delivery_service.update_delivery_status(
            first.id, "in-transit", actor_user_id=product_manager.id, tracking_number="1Z999",
        )

        assert order.status == "in-transit"
        assert db.session.get(Delivery, first.id).tracking_number == "1Z999"

    def test_reverting_to_pending_moves_order_back(self, two_line_order, product_manager):
        first, _second = _deliveries(two_line_order)
        delivery_service.update_delivery_status(first.id, "in-transit", actor_user_id=product_manager.id)

        _, order = delivery_service.update_delivery_status(first.id, "pending", actor_user_id=product_manager.id)

        assert order.status == "processing"

    def test_failed_delivery_alone_leaves_order_unchanged(self, customer, product_a, place_order, product_manager):
        order = place_order(customer, [(product_a, 1)])
        delivery = _deliveries(order)[0]
        delivery_service.update_delivery_status(delivery.id, "in-transit", actor_user_id=product_manager.id)

        _, order = delivery_service.update_delivery_status(delivery.id, "failed", actor_user_id=product_manager.id)

        assert order.status == "in-transit"

    def test_failed_sibling_blocks_delivered(self, two_line_order, product_manager):
        first, second = _deliveries(two_line_order)
        delivery_service.update_delivery_status(first.id, "failed", actor_user_id=product_manager.id)

        _, order = delivery_service.update_delivery_status(second.id, "delivered", actor_user_id=product_manager.id)

        # {failed, delivered} matches no rule
        assert order.status == "processing"

    def test_cancelled_order_is_not_rederived(self, customer, product_a, place_order, product_manager):
        order = place_order(customer, [(product_a, 1)])
        order_service.cancel_order(order.id, customer.id)

        _, order = delivery_service.update_delivery_status(
            _deliveries(order)[0].id, "delivered", actor_user_id=product_manager.id,
        )

        assert order.status == "cancelled"

    def test_invalid_status_rejected_without_mutation(self, two_line_order, product_manager):
        first, _second = _deliveries(two_line_order)

        with pytest.raises(ValidationError) as exc:
            delivery_service.update_delivery_status(first.id, "lost", actor_user_id=product_manager.id)

        assert exc.value.failed == ["invalid_status"]
        assert db.session.get(Delivery, first.id).status == "pending"
        assert db.session.get(Order, two_line_order.id).status == "processing"

    def test_unknown_delivery(self, product_manager, db_session):
        with pytest.raises(NotFoundError):
            delivery_service.update_delivery_status(12345, "delivered", actor_user_id=product_manager.id)

    def test_versions_advance(self, two_line_order, product_manager):
        first, _second = _deliveries(two_line_order)
        before = first.version_id

        delivery, _ = delivery_service.update_delivery_status(first.id, "in-transit", actor_user_id=product_manager.id)

        assert delivery.version_id == before + 1


class TestListDeliveries:

    def test_filters_and_pagination(self, two_line_order, product_manager):
        first, _second = _deliveries(two_line_order)
        delivery_service.update_delivery_status(
            first.id, "in-transit", actor_user_id=product_manager.id, tracking_number="TRACK-42",
        )

        assert delivery_service.list_deliveries()["total"] == 2
        assert delivery_service.list_deliveries(status="in-transit")["total"] == 1
        assert delivery_service.list_deliveries(search="track-42")["deliveries"][0]["id"] == first.id
        assert len(delivery_service.list_deliveries(limit=1)["deliveries"]) == 1

    def test_limit_bounds(self, db_session):
        with pytest.raises(ValidationError):
            delivery_service.list_deliveries(limit=101)
        with pytest.raises(ValidationError):
            delivery_service.list_deliveries(limit=0)
