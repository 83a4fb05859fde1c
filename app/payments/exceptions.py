"""
Payment-specific exceptions for escrow operations.

Exception Hierarchy:
    PaymentError (base for payment domain)
    └── PaymentProcessingError - Charge, payout or refund failures
        └── StripeError - Base for all translated Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient funds (permanent)
            ├── StripeInvalidAccountError - Invalid Connect account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeRateLimitError - Rate limited (transient, retry)
            ├── StripeAPIUnavailableError - API unavailable (transient, retry)
            └── StripeTimeoutError - Request timeout (transient, retry)

    LockAcquisitionError - Distributed lock contention (inherits ConflictError)

Transient errors mean the outcome at Stripe is unknown: the operation may
have succeeded. Callers must retry with the same idempotency key rather than
treat them as a failure.

Usage:
    from payments.exceptions import StripeError, LockAcquisitionError

    try:
        StripeAdapter.create_transfer(params, idempotency_key=key)
    except StripeError as e:
        if e.is_retryable:
            ...  # keep the intent marker, retry later with the same key
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Inherits from BaseApplicationError for consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentProcessingError(PaymentError):
    """
    Raised when a charge, payout or refund cannot be completed.

    Example:
        result = EscrowService.authorize_and_capture(request, "pm_card_visa")
        if not result:
            raise PaymentProcessingError(
                "Payment could not be completed",
                error_code="PAYMENT_FAILED",
                details=result.details,
            )
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 402


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
        is_retryable: Whether the outcome is unknown and a retry is safe

    Example:
        try:
            StripeAdapter.create_payment_intent(...)
        except StripeError as e:
            if e.is_retryable:
                schedule_retry(e, backoff=exponential)
            else:
                record_definitive_failure(e)
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    Permanent for this payment method. The decline_code attribute holds the
    issuer's reason (generic_decline, expired_card, incorrect_cvc, ...).
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    """
    Insufficient funds on the payment method.

    Kept apart from StripeCardDeclinedError for clearer user messaging.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidAccountError(StripeError):
    """
    Invalid Stripe Connect account.

    The destination account for a transfer is missing, restricted or not
    able to receive payouts. Needs manual intervention.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    The request will never succeed with the same parameters (unknown
    PaymentIntent, refund larger than the captured amount, ...). Usually a
    bug on our side, so these are logged for investigation.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with the same idempotency key)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network connectivity issues and Stripe server errors (5xx).
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    The request was sent but no response arrived within
    STRIPE_API_TIMEOUT_SECONDS. The operation may have succeeded on Stripe's
    side; retrying with the same idempotency key returns the original result.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another process holds the lock, which for escrow operations means a
    provider call for the same request is already in flight.

    Example:
        lock = DistributedLock("escrow:release:<request-id>", blocking=False)
        with lock:
            ...
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    "PaymentError",
    "PaymentProcessingError",
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    "LockAcquisitionError",
]
