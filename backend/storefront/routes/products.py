# Overview: Flask API routes for catalog browsing and staff stock adjustment.

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import inventory_service
from ..decorators import require_auth, require_permission


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """Active products, optionally filtered by `?search=`."""
    products = inventory_service.list_products(search=request.args.get("search"))
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
        if not product.is_active:
            return jsonify({"error": f"Product {product_id} not found", "kind": "not_found"}), 404
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_permission("MANAGE_STOCK")
def adjust_stock_route(product_id: int):
    """
    Manual stock correction.

    Request body:
    {
        "quantity_delta": -3,
        "note": "Damaged in warehouse"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product = inventory_service.adjust_stock(
            product_id,
            data.get("quantity_delta"),
            actor_user_id=g.current_user.id,
            note=data.get("note"),
        )
        movements = inventory_service.get_stock_movements(product_id, limit=10)
        return jsonify({
            "product": product.to_dict(),
            "movements": [m.to_dict() for m in movements],
        }), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
