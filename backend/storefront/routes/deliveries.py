# Overview: Flask API routes for fulfillment staff to list and update deliveries.

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import delivery_service
from ..decorators import require_auth, require_permission


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.get("")
@require_auth
@require_permission("MANAGE_DELIVERIES")
def list_deliveries_route():
    """Query params: status, search (address / tracking number), page, limit (1-100)."""
    try:
        result = delivery_service.list_deliveries(
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
        )
        return jsonify(result), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@deliveries_bp.patch("/<int:delivery_id>/status")
@require_auth
@require_permission("MANAGE_DELIVERIES")
def update_delivery_status_route(delivery_id: int):
    """
    Update one delivery and re-derive its order's status.

    Request body:
    {
        "status": "in-transit",           (pending | in-transit | delivered | failed)
        "tracking_number": "1Z999...",    (optional)
        "notes": "Left at reception"      (optional)
    }

    Returns:
        200: {"delivery": ..., "order": ...}
        400: invalid status
        404: unknown delivery
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        delivery, order = delivery_service.update_delivery_status(
            delivery_id,
            status,
            actor_user_id=g.current_user.id,
            tracking_number=data.get("tracking_number"),
            notes=data.get("notes"),
        )
        return jsonify({
            "delivery": delivery.to_dict(),
            "order": order.to_dict(include_items=False),
        }), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update delivery status")
        return jsonify({"error": "Internal server error"}), 500
