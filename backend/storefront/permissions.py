# Overview: Role and permission definitions.
# Each permission is defined as: (code, name, description)

from __future__ import annotations

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
ROLE_SALES_MANAGER = "sales_manager"
ROLE_PRODUCT_MANAGER = "product_manager"
ROLE_SUPPORT_AGENT = "support_agent"

ALL_ROLES = (
    ROLE_CUSTOMER,
    ROLE_ADMIN,
    ROLE_SALES_MANAGER,
    ROLE_PRODUCT_MANAGER,
    ROLE_SUPPORT_AGENT,
)

STAFF_ROLES = tuple(role for role in ALL_ROLES if role != ROLE_CUSTOMER)


PERMISSION_DEFINITIONS = [
    # -- CUSTOMER --
    ("PLACE_ORDER", "Place Order", "Create checkout sessions and complete orders"),
    ("REQUEST_REFUND", "Request Refund", "Request refunds on own delivered orders"),
    # -- FULFILLMENT --
    ("VIEW_ORDERS", "View Orders", "View all orders and the order overview"),
    ("MANAGE_ORDERS", "Manage Orders", "Override order status for all deliveries of an order"),
    ("MANAGE_DELIVERIES", "Manage Deliveries", "Update delivery status and tracking numbers"),
    ("MANAGE_STOCK", "Manage Stock", "Adjust product stock"),
    # -- REFUNDS --
    ("VIEW_REFUNDS", "View Refunds", "View refund requests"),
    ("DECIDE_REFUNDS", "Decide Refunds", "Approve, reject and process refunds"),
    # -- PRICING --
    ("MANAGE_COUPONS", "Manage Coupons", "Create and list coupon codes"),
]


def get_all_permission_codes() -> set[str]:
    return {code for code, _, _ in PERMISSION_DEFINITIONS}


DEFAULT_ROLE_PERMISSIONS: dict[str, set[str]] = {
    ROLE_CUSTOMER: {"PLACE_ORDER", "REQUEST_REFUND"},
    ROLE_PRODUCT_MANAGER: {
        "VIEW_ORDERS",
        "MANAGE_ORDERS",
        "MANAGE_DELIVERIES",
        "MANAGE_STOCK",
        "VIEW_REFUNDS",
        "DECIDE_REFUNDS",
    },
    ROLE_SALES_MANAGER: {"VIEW_ORDERS", "VIEW_REFUNDS", "MANAGE_COUPONS"},
    ROLE_SUPPORT_AGENT: {"VIEW_ORDERS"},
    ROLE_ADMIN: get_all_permission_codes(),
}


def get_role_permissions(role: str | None) -> set[str]:
    """Permission codes granted to a role (empty for unknown roles)."""
    return set(DEFAULT_ROLE_PERMISSIONS.get(role or "", set()))
