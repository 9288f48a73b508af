# Overview: Flask API routes for refund queues and staff decisions.

# backend/storefront/routes/refunds.py
"""
Refund API Routes

Customers request refunds through /api/orders/<id>/refunds; this blueprint
serves the customer's own list and the staff decision workflow.

SECURITY:
- VIEW_REFUNDS or DECIDE_REFUNDS required to see the queue
- DECIDE_REFUNDS required for approve/reject/process
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import refund_service
from ..decorators import require_auth, require_permission, require_any_permission


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


@refunds_bp.get("/mine")
@require_auth
def list_my_refunds_route():
    refunds = refund_service.list_customer_refunds(g.current_user.id)
    return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200


@refunds_bp.get("")
@require_auth
@require_any_permission("VIEW_REFUNDS", "DECIDE_REFUNDS")
def list_refunds_route():
    """Query params: status (pending | approved | rejected | processed)."""
    try:
        refunds = refund_service.list_refunds(status=request.args.get("status") or None)
        return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@refunds_bp.get("/<int:refund_id>")
@require_auth
@require_any_permission("VIEW_REFUNDS", "DECIDE_REFUNDS")
def get_refund_route(refund_id: int):
    try:
        refund = refund_service.get_refund(refund_id)
        return jsonify({"refund": refund.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@refunds_bp.patch("/<int:refund_id>/status")
@require_auth
@require_permission("DECIDE_REFUNDS")
def decide_refund_route(refund_id: int):
    """
    Request body:
    {
        "decision": "approve",            (approve | reject | process)
        "rejection_reason": "...",        (optional, reject only)
        "product_returned": true          (optional, approve only)
    }

    Returns:
        200: updated refund
        400: invalid decision or refund not in the required status
        404: unknown refund
    """
    try:
        data = request.get_json(silent=True) or {}
        decision = data.get("decision")
        if not decision:
            return jsonify({"error": "decision required"}), 400

        refund = refund_service.decide_refund(
            refund_id,
            decision,
            actor_user_id=g.current_user.id,
            rejection_reason=data.get("rejection_reason"),
            product_returned=data.get("product_returned"),
        )
        return jsonify({"refund": refund.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to decide refund")
        return jsonify({"error": "Internal server error"}), 500
