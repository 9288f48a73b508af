# Overview: Account creation and credential checks.

"""
Authentication Service

WHY: Every order and staff decision must be attributable. Uses bcrypt for
password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
- Self-registration only ever creates customer accounts
"""

from __future__ import annotations

import logging
import re

import bcrypt

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..permissions import ALL_ROLES, ROLE_CUSTOMER
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, failed=["weak_password"])


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str | None) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def _clean_name(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def create_user(
    email: str,
    password: str,
    *,
    first_name: str = "",
    last_name: str = "",
    role: str = ROLE_CUSTOMER,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad email, unknown role, duplicate email
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email address is required", failed=["invalid_email"])

    if role not in ALL_ROLES:
        raise ValidationError(f"Unknown role: {role}", failed=["invalid_role"])

    if db.session.query(User).filter_by(email=email).first():
        raise ValidationError("An account with this email already exists", failed=["duplicate_email"])

    user = User(
        email=email,
        first_name=_clean_name(first_name),
        last_name=_clean_name(last_name),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()

    logger.info("Created %s account %s", role, email)
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user matching the credentials, or None."""
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user or not user.is_active:
        return None

    if not isinstance(password, str) or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
