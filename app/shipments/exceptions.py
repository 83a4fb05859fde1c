"""
Shipment lifecycle exceptions.

Exception Hierarchy:
    ValidationError
    ├── InvalidConfirmationCodeError - Submitted code does not match
    NotFoundError
    └── RequestNotFoundError - Request missing or not visible to the actor
    PermissionDeniedError
    └── ActionNotAllowedError - Actor has no role for this action
    ConflictError
    ├── InvalidTransitionError - Status is not a legal source for the action
    ├── TransitionConflictError - Lost a concurrent compare-and-swap
    ├── TerminalStateError - Request is confirmed or cancelled
    ├── DisputePendingError - Request is frozen by an open dispute
    ├── AlreadyDisputedError - A dispute already exists for the request
    ├── NotConfirmedError - Review attempted before confirmation
    └── AlreadyReviewedError - Reviewer already reviewed this request
    RateLimitError
    └── ConfirmationRateLimitedError - Too many wrong confirmation codes
    PaymentProcessingError
    ├── PaymentFailedError - Escrow charge failed (402)
    ├── PayoutFailedError - Payout release failed (502)
    └── RefundFailedError - Refund failed (502)

TerminalStateError and DisputePendingError are distinct so callers can tell
"over" from "wait".
"""

from __future__ import annotations

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from payments.exceptions import PaymentProcessingError


class RequestNotFoundError(NotFoundError):
    default_error_code: str = "REQUEST_NOT_FOUND"


class ActionNotAllowedError(PermissionDeniedError):
    default_error_code: str = "NOT_ALLOWED"


class InvalidTransitionError(ConflictError):
    default_error_code: str = "INVALID_TRANSITION"


class TransitionConflictError(ConflictError):
    """Another actor changed the request between read and write."""

    default_error_code: str = "TRANSITION_CONFLICT"


class TerminalStateError(ConflictError):
    default_error_code: str = "TERMINAL_STATE"


class DisputePendingError(ConflictError):
    default_error_code: str = "DISPUTE_PENDING"


class AlreadyDisputedError(ConflictError):
    default_error_code: str = "ALREADY_DISPUTED"


class NotConfirmedError(ConflictError):
    default_error_code: str = "NOT_CONFIRMED"


class AlreadyReviewedError(ConflictError):
    default_error_code: str = "ALREADY_REVIEWED"


class InvalidConfirmationCodeError(ValidationError):
    default_error_code: str = "INVALID_CONFIRMATION_CODE"


class ConfirmationRateLimitedError(RateLimitError):
    default_error_code: str = "CONFIRMATION_RATE_LIMITED"


class PaymentFailedError(PaymentProcessingError):
    """
    The escrow charge did not go through; the request stays accepted.

    details["retryable"] tells the caller whether paying again may succeed.
    """

    default_error_code: str = "PAYMENT_FAILED"


class PayoutFailedError(PaymentProcessingError):
    """The payout release failed; the request keeps its previous status."""

    default_error_code: str = "PAYOUT_FAILED"
    http_status: int = 502


class RefundFailedError(PaymentProcessingError):
    default_error_code: str = "REFUND_FAILED"
    http_status: int = 502


__all__ = [
    "ActionNotAllowedError",
    "AlreadyDisputedError",
    "AlreadyReviewedError",
    "ConfirmationRateLimitedError",
    "DisputePendingError",
    "InvalidConfirmationCodeError",
    "InvalidTransitionError",
    "NotConfirmedError",
    "PaymentFailedError",
    "PayoutFailedError",
    "RefundFailedError",
    "RequestNotFoundError",
    "TerminalStateError",
    "TransitionConflictError",
]
