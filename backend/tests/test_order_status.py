"""
Order status derivation from sibling delivery statuses.

derive_order_status is a pure function; these tests need no database.
"""

import pytest

from storefront.services.delivery_service import derive_order_status


@pytest.mark.parametrize(
    "statuses,expected",
    [
        (["delivered", "delivered"], "delivered"),
        (["delivered"], "delivered"),
        (["pending", "in-transit"], "in-transit"),
        (["delivered", "in-transit"], "in-transit"),
        (["failed", "in-transit"], "in-transit"),
        (["pending", "pending"], "processing"),
        (["delivered", "pending"], "processing"),
        (["failed", "pending"], "processing"),
    ],
)
def test_derivation_precedence(statuses, expected):
    assert derive_order_status(statuses) == expected


@pytest.mark.parametrize(
    "statuses",
    [
        ["failed"],
        ["failed", "failed"],
        ["delivered", "failed"],
        [],
    ],
)
def test_no_rule_leaves_order_unchanged(statuses):
    # Failed deliveries never drive the order on their own
    assert derive_order_status(statuses) is None


def test_order_of_inputs_does_not_matter():
    assert derive_order_status(["in-transit", "pending", "delivered"]) == \
        derive_order_status(["delivered", "pending", "in-transit"])


def test_accepts_any_iterable():
    assert derive_order_status(s for s in ("delivered", "delivered")) == "delivered"
