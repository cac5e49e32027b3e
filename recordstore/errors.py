"""
Error taxonomy for recordstore.

Every error raised by the store core derives from `StoreError` and carries the
HTTP status an outer REST surface would map it to. Storage failures raised by
psycopg are not wrapped; they propagate unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class StoreError(Exception):
    """Base class for all store errors."""

    status_code: int = 500
    default_message: str = "Store error"

    def __init__(self, message: Optional[str] = None, *, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        self.message = message or self.default_message
        self.errors: List[Dict[str, Any]] = list(errors or [])
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status_code, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ConfigurationError(StoreError, ValueError):
    """A store or plugin was constructed with missing or invalid options."""

    default_message = "Invalid configuration"


class BadRequestError(StoreError):
    status_code = 400
    default_message = "Bad request"


class UnauthorizedError(StoreError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(StoreError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(StoreError):
    status_code = 404
    default_message = "Not found"


class PreconditionFailedError(StoreError):
    status_code = 412
    default_message = "Precondition failed"


class UnprocessableEntityError(StoreError):
    status_code = 422
    default_message = "Unprocessable entity"


class MethodNotImplementedError(StoreError):
    status_code = 501
    default_message = "Not implemented"


class ServiceUnavailableError(StoreError):
    status_code = 503
    default_message = "Service unavailable"


__all__ = [
    "StoreError",
    "ConfigurationError",
    "BadRequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "PreconditionFailedError",
    "UnprocessableEntityError",
    "MethodNotImplementedError",
    "ServiceUnavailableError",
]
