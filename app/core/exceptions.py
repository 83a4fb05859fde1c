"""
Base exception classes for application-wide error handling.

Every domain error raised by a service carries a human-readable message, a
machine-readable error code and optional details, and knows which HTTP status
an API view should answer with.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input, rejected before any write
    ├── NotFoundError - Resource not found (or not visible to the caller)
    ├── PermissionDeniedError - Actor is not allowed to perform the action
    ├── ConflictError - State conflicts (illegal or raced transitions, duplicates)
    ├── RateLimitError - Too many attempts
    └── ExternalServiceError - Third-party service failures

Usage:
    from core.exceptions import ConflictError, NotFoundError

    raise NotFoundError(
        f"Shipment request {request_id} not found",
        error_code="REQUEST_NOT_FOUND",
        details={"request_id": str(request_id)},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, identifiers, etc.)
        http_status: Status code API views answer with
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Request is disputed",
                "error_code": "DISPUTE_PENDING",
                "details": {"request_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for service-layer validation (weights, capacities, ratings). Request
    body shape is validated by DRF serializers before services are called.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the acting user may not perform an operation.

    For authentication failures (missing/invalid token) DRF answers 401 on
    its own; this is for authorization of an authenticated actor.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions
    - Concurrent modification (lost compare-and-swap)
    - Duplicate entries (unique constraint violations)
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class RateLimitError(BaseApplicationError):
    """
    Raised when an action is attempted too often.

    Include retry_after (seconds) in details when it is known.
    """

    default_error_code: str = "RATE_LIMIT_EXCEEDED"
    http_status: int = 429


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging; never put raw provider payloads
    in the message returned to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
