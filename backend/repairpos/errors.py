# Overview: Service error taxonomy shared by services, routes and the CLI.

"""
Every business-rule failure raised by the service layer derives from
ServiceError. Routes translate them into JSON responses using the
status_code carried on the class; nothing here is fatal to the process.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures returned to the caller as structured errors."""

    status_code = 400
    error_type = "SERVICE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "type": self.error_type}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    """Missing or malformed input."""
    status_code = 400
    error_type = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    status_code = 404
    error_type = "NOT_FOUND"


class StateConflictError(ServiceError):
    """Operation is not valid for the entity's current state."""
    status_code = 409
    error_type = "STATE_CONFLICT"


class InsufficientStockError(StateConflictError):
    error_type = "INSUFFICIENT_STOCK"

    def __init__(self, *, product_id: int, available: int, requested: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: available {available}, requested {requested}",
            {"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class AuthorizationError(ServiceError):
    status_code = 403
    error_type = "AUTHORIZATION_ERROR"

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message, {"missing_permissions": list(missing or [])})
        self.missing = list(missing or [])


class InvariantViolation(ServiceError):
    """Internal consistency failure. Seeing one means a bug in the ledger code."""
    status_code = 500
    error_type = "INVARIANT_VIOLATION"


class InvalidAdjustmentType(ValidationError):
    error_type = "INVALID_ADJUSTMENT_TYPE"
