# Overview: Flask API routes for checkout quotes and payment sessions.

# backend/storefront/routes/checkout.py
"""
Checkout API Routes

FLOW:
1. POST /api/checkout/quote                    price the cart (optional coupon)
2. POST /api/checkout/sessions                 freeze the quote into a payment session
3. POST /api/checkout/sessions/<key>/confirm   payment processor reports success
4. POST /api/orders/complete                   turn the paid session into an order
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import cart_service, checkout_service
from ..decorators import require_auth, require_permission


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/quote")
@require_auth
def quote_route():
    """Request body: {"coupon_code": "SPRING10"}  (optional)"""
    try:
        data = request.get_json(silent=True) or {}
        cart = cart_service.get_active_cart(cart_service.UserOwner(g.current_user.id))
        quote = checkout_service.quote_cart(cart, data.get("coupon_code"))
        return jsonify({"quote": quote}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote cart")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/sessions")
@require_auth
@require_permission("PLACE_ORDER")
def create_session_route():
    """
    Request body:
    {
        "delivery_address": "1 Main St, Springfield",
        "coupon_code": "SPRING10"   (optional)
    }

    Returns:
        201: session with its key and agreed breakdown
        400: empty cart, missing address, coupon not applicable
        409: a line exceeds current stock
    """
    try:
        data = request.get_json(silent=True) or {}
        session = checkout_service.create_checkout_session(
            g.current_user.id,
            delivery_address=data.get("delivery_address"),
            coupon_code=data.get("coupon_code"),
        )
        return jsonify({"session": session.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create checkout session")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/sessions/<string:session_key>/confirm")
@require_auth
@require_permission("PLACE_ORDER")
def confirm_session_route(session_key: str):
    try:
        session = checkout_service.confirm_payment(session_key, g.current_user.id)
        return jsonify({"session": session.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm checkout session")
        return jsonify({"error": "Internal server error"}), 500
