from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass pins an HTTP ``status_code``, a stable wire ``error_code``
    and a ``default_message`` used when no message is given:

    - VALIDATION_ERROR (400)
    - BUSINESS_RULE_ERROR (400)
    - UNAUTHORIZED (401)
    - FORBIDDEN (403)
    - NOT_FOUND (404)
    - CONFLICT (409)
    - DATABASE_ERROR (500)
    - INTERNAL_SERVER_ERROR (500)
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict | list] = None,
        error_code: Optional[str] = None,
    ) -> None:
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Request validation failed"


class BusinessRuleError(ServiceError):
    """The persistence layer rejected the request on a business rule (400)."""
    status_code = 400
    error_code = "BUSINESS_RULE_ERROR"
    default_message = "Business rule violation"


class UnauthorizedError(ServiceError):
    """Authentication missing or invalid (401)."""
    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Authentication required"


class ForbiddenError(ServiceError):
    """Authenticated, but not permitted (403)."""
    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "Access denied"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(ServiceError):
    """Resource conflict, e.g. duplicate creation (409)."""
    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource conflict"


class DatabaseError(ServiceError):
    """Database operation failed (500)."""
    status_code = 500
    error_code = "DATABASE_ERROR"
    default_message = "Database operation failed"


class InternalServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"
    default_message = "An unexpected error occurred"


ERROR_CODES = frozenset(
    cls.error_code
    for cls in (
        ValidationError,
        BusinessRuleError,
        UnauthorizedError,
        ForbiddenError,
        NotFoundError,
        ConflictError,
        DatabaseError,
        InternalServerError,
    )
)


__all__ = [
    "ServiceError",
    "ValidationError",
    "BusinessRuleError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "DatabaseError",
    "InternalServerError",
    "ERROR_CODES",
]
