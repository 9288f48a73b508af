# Overview: Domain error taxonomy shared by services and routes.

"""
Storefront domain errors.

Services raise these; routes translate them into JSON responses using
`to_dict()` and the class-level `status_code`. Anything that is not a
StorefrontError is treated as an infrastructure failure (HTTP 500).
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400
    kind = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        payload.update(self.details)
        return payload


class NotFoundError(StorefrontError):
    """Referenced record does not exist (or the id is malformed)."""

    status_code = 404
    kind = "not_found"


class ValidationError(StorefrontError):
    """
    A precondition on input or state was violated.

    `failed` lists machine-readable codes for every precondition that did not
    hold, e.g. ["not_owner"] or ["not_delivered", "window_expired"].
    """

    status_code = 400
    kind = "validation_error"

    def __init__(self, message: str, failed: list[str] | None = None, details: dict | None = None):
        merged = dict(details or {})
        merged["failed"] = list(failed or [])
        super().__init__(message, merged)

    @property
    def failed(self) -> list[str]:
        return self.details["failed"]


class InsufficientStockError(StorefrontError):
    """Stock re-check at order completion found less than requested."""

    status_code = 409
    kind = "insufficient_stock"


class EmptyCartError(StorefrontError):
    status_code = 400
    kind = "empty_cart"


class PaymentError(StorefrontError):
    """Payment session missing, unpaid, or otherwise unusable."""

    status_code = 402
    kind = "payment_error"


class PermissionDeniedError(StorefrontError):
    status_code = 403
    kind = "permission_denied"


class AuthenticationError(StorefrontError):
    status_code = 401
    kind = "authentication_error"
