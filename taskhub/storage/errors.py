from __future__ import annotations

from typing import Any, Dict, Optional


class StorageError(Exception):
    """Base class for classified persistence-layer failures.

    ``code`` carries the provider error code (e.g. a SQLSTATE) when one is
    known; callers should match on the exception type rather than the code.
    """

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        *,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.detail = detail or None
        self.code = code


class BusinessRuleViolation(StorageError):
    """Raised when a stored procedure rejects a request on a business rule."""


class RecordNotFound(StorageError):
    """Raised when the addressed row does not exist for the caller's account."""


class ConstraintViolation(StorageError):
    """Raised when a storage-layer uniqueness or FK constraint is violated."""


__all__ = [
    "StorageError",
    "BusinessRuleViolation",
    "RecordNotFound",
    "ConstraintViolation",
]
