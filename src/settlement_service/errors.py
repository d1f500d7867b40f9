"""
Error taxonomy for the settlement service.

Pure Python, no FastAPI imports. Every client-facing failure is a
ServiceError carrying a machine-readable code, a message, the HTTP status
and a details dict. The subclasses fix the status code for each category.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Client-facing error rendered as {"error", "message", "details"}."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details: dict[str, Any] = details if details is not None else {}


class ValidationError(ServiceError):
    """Bad input shape or range."""

    def __init__(self, error: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(error, message, 400, details)


class Forbidden(ServiceError):
    """Caller is not the party allowed to perform the action."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("FORBIDDEN", message, 403, details)


class NotFound(ServiceError):
    """Referenced entity does not exist."""

    def __init__(self, error: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(error, message, 404, details)


class Conflict(ServiceError):
    """State was already resolved differently."""

    def __init__(self, error: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(error, message, 409, details)


class InvalidStateTransition(ServiceError):
    """Task status change not permitted by the lifecycle."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            "INVALID_STATE_TRANSITION",
            f"Cannot move task from '{current}' to '{target}'",
            409,
            {"current_status": current, "target_status": target},
        )
        self.current = current
        self.target = target


class PaymentDeclined(ServiceError):
    """Processor refused to capture or authorize the held funds."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("PAYMENT_CAPTURE_FAILED", message, 402, details)


class PaymentProcessorError(ServiceError):
    """Processor stayed unavailable after the local retry budget was spent."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("PAYMENT_PROCESSOR_UNAVAILABLE", message, 502, details)


class ConfigurationError(Exception):
    """Missing or inconsistent money configuration (rates, fee bounds)."""
