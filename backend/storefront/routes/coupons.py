# Overview: Flask API routes for coupon administration.

from flask import Blueprint, request, jsonify, current_app

from ..errors import StorefrontError
from ..services import checkout_service
from ..decorators import require_auth, require_permission
from ..time_utils import parse_iso_datetime


coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.get("")
@require_auth
@require_permission("MANAGE_COUPONS")
def list_coupons_route():
    coupons = checkout_service.list_coupons()
    return jsonify({"coupons": [c.to_dict() for c in coupons]}), 200


@coupons_bp.post("")
@require_auth
@require_permission("MANAGE_COUPONS")
def create_coupon_route():
    """
    Request body:
    {
        "code": "SPRING10",
        "discount_rate": 10,
        "min_subtotal_cents": 5000,          (optional)
        "expires_at": "2026-06-01T00:00Z"    (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            expires_at = parse_iso_datetime(data.get("expires_at"))
        except (TypeError, ValueError):
            return jsonify({"error": "expires_at must be an ISO-8601 datetime"}), 400

        coupon = checkout_service.create_coupon(
            data.get("code"),
            data.get("discount_rate"),
            min_subtotal_cents=data.get("min_subtotal_cents", 0),
            expires_at=expires_at,
        )
        return jsonify({"coupon": coupon.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create coupon")
        return jsonify({"error": "Internal server error"}), 500
