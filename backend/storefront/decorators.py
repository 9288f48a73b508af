# Overview: Request and permission decorators for API routes.

from __future__ import annotations

from functools import wraps
from flask import request, jsonify, g

from .errors import PermissionDeniedError
from .services import permission_service, session_service

GUEST_SESSION_HEADER = "X-Guest-Session"


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def _guest_session_id() -> str | None:
    value = (request.headers.get(GUEST_SESSION_HEADER) or "").strip()
    return value[:64] or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.auth_token: The plaintext token (for logout)
    - g.guest_session_id: X-Guest-Session header value, if any

    Returns 401 if the header is missing, or the token is invalid, expired,
    idle, or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.auth_token = token
        g.guest_session_id = _guest_session_id()

        return f(*args, **kwargs)

    return decorated_function


def resolve_shopper(f):
    """
    Accept either a signed-in user or an anonymous guest session.

    A present but invalid bearer token is still rejected with 401 rather than
    silently falling back to the guest identity. Routes build the Owner from
    g.current_user (may be None) and g.guest_session_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        g.guest_session_id = _guest_session_id()

        token = _bearer_token()
        if token:
            user = session_service.validate_session(token)
            if not user:
                return jsonify({"error": "Invalid or expired token"}), 401
            g.current_user = user
            g.auth_token = token

        if g.current_user is None and not g.guest_session_id:
            return jsonify({
                "error": f"Authentication or {GUEST_SESSION_HEADER} header required"
            }), 401

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission (use after @require_auth)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_permission(g.current_user, permission_code, resource=request.path)
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": e.message,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permission_codes):
    """Require any of the specified permissions (use after @require_auth)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user_permissions = permission_service.get_user_permissions(g.current_user)
            if not any(code in user_permissions for code in permission_codes):
                return jsonify({
                    "error": "Permission denied",
                    "required_permissions": list(permission_codes),
                    "message": f"Requires one of: {', '.join(permission_codes)}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
