# Overview: Flask API routes for the shopper's cart (signed-in user or guest session).

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import cart_service
from ..decorators import resolve_shopper


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _owner():
    user_id = g.current_user.id if g.current_user else None
    return cart_service.resolve_owner(user_id, g.guest_session_id)


def _cart_payload(cart) -> dict:
    if cart is None:
        return {"cart": {"items": [], "subtotal_cents": 0}}
    return {"cart": cart.to_dict()}


@cart_bp.get("")
@resolve_shopper
def get_cart_route():
    return jsonify(_cart_payload(cart_service.get_active_cart(_owner()))), 200


@cart_bp.post("/items")
@resolve_shopper
def add_item_route():
    """
    Request body:
    {
        "product_id": 12,
        "quantity": 2   (optional, default: 1)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        if not isinstance(product_id, int):
            return jsonify({"error": "product_id required"}), 400

        cart = cart_service.add_item(_owner(), product_id, data.get("quantity", 1))
        return jsonify(_cart_payload(cart)), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("/items/<int:product_id>")
@resolve_shopper
def set_item_quantity_route(product_id: int):
    """Request body: {"quantity": 3}  (0 removes the line)"""
    try:
        data = request.get_json(silent=True) or {}
        if "quantity" not in data:
            return jsonify({"error": "quantity required"}), 400

        cart = cart_service.set_item_quantity(_owner(), product_id, data.get("quantity"))
        return jsonify(_cart_payload(cart)), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:product_id>")
@resolve_shopper
def remove_item_route(product_id: int):
    try:
        cart = cart_service.remove_item(_owner(), product_id)
        return jsonify(_cart_payload(cart)), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@resolve_shopper
def clear_cart_route():
    try:
        cart = cart_service.clear_cart(_owner())
        return jsonify(_cart_payload(cart)), 200
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500
