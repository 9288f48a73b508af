# Overview: Flask API routes for orders: completion, customer views, cancellation, refunds and staff management.

# backend/storefront/routes/orders.py
"""
Order API Routes

SECURITY:
- Customers only see and act on their own orders (not_owner otherwise)
- PLACE_ORDER required to complete an order
- REQUEST_REFUND required to request refunds
- VIEW_ORDERS / MANAGE_ORDERS required for the management views
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import order_service, refund_service
from ..decorators import require_auth, require_permission


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# CUSTOMER
# =============================================================================

@orders_bp.post("/complete")
@require_auth
@require_permission("PLACE_ORDER")
def complete_order_route():
    """
    Turn a paid checkout session into an order. Repeating the call with the
    same session key returns the same order.

    Request body:
    {
        "session_key": "cs_..."
    }

    Returns:
        200: order with items
        400: empty cart, session of another customer
        402: unknown or unpaid session
        409: insufficient stock
    """
    try:
        data = request.get_json(silent=True) or {}
        session_key = data.get("session_key")
        if not session_key:
            return jsonify({"error": "session_key required"}), 400

        order = order_service.complete_order(
            session_key,
            g.current_user.id,
            guest_session_id=g.guest_session_id,
        )
        return jsonify({"order": order.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_my_orders_route():
    orders = order_service.list_customer_orders(g.current_user.id)
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_my_order_route(order_id: int):
    try:
        order = order_service.get_customer_order(order_id, g.current_user.id)
        data = order.to_dict()
        data["deliveries"] = [d.to_dict() for d in order.deliveries]
        return jsonify({"order": data}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(order_id, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/refunds")
@require_auth
def list_order_refunds_route(order_id: int):
    try:
        refunds = order_service.list_order_refunds(order_id, g.current_user.id)
        return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/refunds")
@require_auth
@require_permission("REQUEST_REFUND")
def request_refund_route(order_id: int):
    """
    Request body:
    {
        "items": [{"product_id": 3, "quantity": 1}],   (quantity optional: full line)
        "reason": "Arrived damaged"                     (optional)
    }

    Returns:
        201: created refunds (pending)
        400: failed lists every unmet precondition
    """
    try:
        data = request.get_json(silent=True) or {}
        refunds = refund_service.request_refund(
            order_id,
            g.current_user.id,
            data.get("items"),
            data.get("reason"),
        )
        return jsonify({"refunds": [r.to_dict() for r in refunds]}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to request refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MANAGEMENT
# =============================================================================

@orders_bp.get("/management")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    """Query params: status, search, page (>= 1), limit (1-50)."""
    try:
        result = order_service.list_orders(
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
        )
        return jsonify(result), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/management/overview")
@require_auth
@require_permission("VIEW_ORDERS")
def orders_overview_route():
    return jsonify({"overview": order_service.get_overview()}), 200


@orders_bp.patch("/management/<int:order_id>/status")
@require_auth
@require_permission("MANAGE_ORDERS")
def set_order_status_route(order_id: int):
    """
    Override the order status and cascade it to every delivery.

    Request body: {"status": "in-transit"}   (processing | in-transit | delivered)
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        order = order_service.set_order_status(order_id, status, actor_user_id=g.current_user.id)
        result = order.to_dict()
        result["deliveries"] = [d.to_dict() for d in order.deliveries]
        return jsonify({"order": result}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
