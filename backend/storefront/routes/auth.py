# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

- Self-registration creates customer accounts only
- Login returns an opaque bearer token and folds any guest cart into the
  user's cart
- Logout revokes the presented token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..services import auth_service, cart_service, permission_service, session_service
from ..decorators import require_auth, GUEST_SESSION_HEADER


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(user) -> dict:
    payload = user.to_dict()
    payload["permissions"] = sorted(permission_service.get_user_permissions(user))
    return payload


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account.

    Request body:
    {
        "email": "jane@example.com",
        "password": "secret123",
        "first_name": "Jane",   (optional)
        "last_name": "Doe"      (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.create_user(
            email=email,
            password=password,
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
        )
        return jsonify({"user": _user_payload(user)}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Token must be included as `Authorization: Bearer <token>` on protected
    routes. A guest cart identified by the X-Guest-Session header is merged
    into the user's cart.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        _session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        guest_session_id = (request.headers.get(GUEST_SESSION_HEADER) or "").strip() or None
        cart_service.merge_guest_cart(user.id, guest_session_id)

        return jsonify({"user": _user_payload(user), "token": token}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": _user_payload(g.current_user)}), 200
