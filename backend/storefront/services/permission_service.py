# Overview: Role-based permission checks for the API guards.

"""
Permission Checking

Roles map to permission codes through the static table in permissions.py.
Fail closed: unknown roles and inactive users hold no permissions.
"""

from __future__ import annotations

import logging

from ..errors import PermissionDeniedError
from ..models import User
from ..permissions import get_role_permissions

logger = logging.getLogger(__name__)


def get_user_permissions(user: User | None) -> set[str]:
    if user is None or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user: User | None, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(user: User | None, permission_code: str, resource: str | None = None) -> None:
    """Raises PermissionDeniedError (and logs the denial) if the user lacks the permission."""
    if user_has_permission(user, permission_code):
        return

    logger.warning(
        "Permission denied: user=%s role=%s permission=%s resource=%s",
        user.id if user else None,
        user.role if user else None,
        permission_code,
        resource,
    )
    raise PermissionDeniedError(
        f"Missing permission: {permission_code}",
        details={"required_permission": permission_code},
    )
