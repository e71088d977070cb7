"""
Error taxonomy shared by the services and the HTTP layer.

Every error a request can surface derives from ``ApiError`` and carries the
HTTP status it maps to. Startup-only failures (bad environment, bad service
account) derive from ``ConfigurationError`` instead and never reach a client.
"""

from __future__ import annotations

from typing import Optional


class ApiError(Exception):
    """Base class for errors rendered into the response envelope."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(ApiError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class DuplicateTransactionError(ConflictError):
    default_message = "Invalid transaction ID. This transaction ID already exists."


class InvalidTransitionError(ApiError):
    status_code = 400
    default_message = "Invalid order status transition"


class AlreadyCancelledError(InvalidTransitionError):
    default_message = "Order is already cancelled"


class TerminalStateError(ApiError):
    status_code = 400
    default_message = "Cannot modify an order in a terminal state"


class StorageError(ApiError):
    status_code = 500
    default_message = "Storage operation failed"


class AggregationError(ApiError):
    status_code = 500
    default_message = "Failed to get dashboard statistics"


class ConfigurationError(Exception):
    """Raised at startup when the environment is unusable."""


class FirebaseValidationError(ConfigurationError):
    """Raised when the Firebase service account document is unusable."""
