"""
Typed failures raised by the project store and its services.

Each carries a short stable ``code`` and a human ``message``; ``status_code``
is only a hint for the HTTP adapter (main.py renders the error envelope).
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class StoreError(Exception):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class NotFoundError(StoreError):
    status_code = 404
    default_code = "NOT_FOUND"


class InvalidReferenceError(StoreError):
    status_code = 400
    default_code = "INVALID_REFERENCE"


class UnsafePathError(StoreError):
    status_code = 400
    default_code = "UNSAFE_PATH"


class ValidationFailed(StoreError):
    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        fields: Iterable[str] = (),
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        fields = list(fields)
        if fields:
            merged["fields"] = fields
        super().__init__(message, code=code, details=merged)
        self.fields = fields


class ResourceTooLargeError(StoreError):
    status_code = 413
    default_code = "RESOURCE_TOO_LARGE"


class StorageFailure(StoreError):
    status_code = 500
    default_code = "STORAGE_FAILURE"


class ConflictError(StoreError):
    status_code = 409
    default_code = "VERSION_CONFLICT"


def not_found(entity: str) -> NotFoundError:
    return NotFoundError(f"{entity} not found", code=f"{entity.upper()}_NOT_FOUND")
