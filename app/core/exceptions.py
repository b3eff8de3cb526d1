"""Custom exceptions for the order fulfillment engine."""

from __future__ import annotations

from typing import Any


class OrderEngineError(Exception):
    """Base exception for the order fulfillment engine."""

    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class Unauthorized(OrderEngineError):
    """Raised when no valid session is present."""

    status_code = 401


class Forbidden(OrderEngineError):
    """Raised when the session is valid but lacks ownership or role."""

    status_code = 403


class NotFound(OrderEngineError):
    """Raised when an order, group, line item or domain is missing."""

    status_code = 404


class InvalidStateTransition(OrderEngineError):
    """Raised when an operation is illegal for the order's current status."""

    status_code = 400


class AlreadyAssigned(OrderEngineError):
    """Raised when a line item or submission is already bound to a domain."""

    status_code = 409


class ConcurrentUpdate(OrderEngineError):
    """Raised when an optimistic version check fails."""

    status_code = 409


class ValidationError(OrderEngineError):
    """Raised when request content is semantically invalid."""

    status_code = 422


class ExternalDependencyDegraded(OrderEngineError):
    """Raised by collaborators when a lookup fails; callers fall back to defaults."""

    status_code = 503


class ConfigurationError(OrderEngineError):
    """Raised when configuration is invalid."""
