# Overview: Service-level error taxonomy mapped to HTTP status codes by the app factory.

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors surfaced to the HTTP layer."""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError, ValueError):
    """400-level input problem (missing or malformed fields)."""
    status_code = 400
    code = "VALIDATION_ERROR"


class ForbiddenError(ServiceError):
    """Caller is authenticated but may not act on this resource."""
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ServiceError):
    """Referenced event, delivery, request or item does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ServiceError, ValueError):
    """409-level state conflict: the request was already approved or rejected."""
    status_code = 409
    code = "ALREADY_PROCESSED"


class InsufficientStockError(ServiceError):
    """The movement would drive an item's quantity below zero."""
    status_code = 409
    code = "INSUFFICIENT_STOCK"
