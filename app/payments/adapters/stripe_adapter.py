"""
Stripe API adapter for escrow operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency keys on every mutating call

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries done by the SDK (default: 2)

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    # Charge the sender and hold the funds (manual capture)
    intent = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_cents=4000,
            currency="eur",
            payment_method="pm_card_visa",
            idempotency_key="escrow_charge:<request-id>:1:ab12cd34",
        )
    )

    # Capture the held funds into escrow
    StripeAdapter.capture_payment_intent(intent.id, idempotency_key="...")
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Callable


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for creating a Stripe PaymentIntent.

    Attributes:
        amount_cents: Payment amount in smallest currency unit (e.g., cents)
        currency: ISO 4217 currency code, lower case
        idempotency_key: Unique key for idempotent creation
        payment_method: PaymentMethod to charge (pm_xxx)
        confirm: Confirm the intent in the same call
        capture_method: 'manual' holds the funds until captured
        metadata: Key-value pairs to attach to the PaymentIntent
        payment_method_types: Allowed payment methods (default: ['card'])
    """

    amount_cents: int
    currency: str
    idempotency_key: str
    payment_method: str | None = None
    confirm: bool = True
    capture_method: str = "manual"
    metadata: dict[str, str] = field(default_factory=dict)
    payment_method_types: list[str] = field(default_factory=lambda: ["card"])

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")
        if self.confirm and not self.payment_method:
            raise ValueError("payment_method is required when confirm=True")


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent operations.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: requires_capture, succeeded, requires_action, canceled, ...
        amount_cents: Amount in cents
        currency: Currency code
        amount_received_cents: Amount actually captured
        metadata: Attached metadata
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    amount_received_cents: int = 0
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def captured(self) -> bool:
        return self.status == "succeeded"

    @property
    def requires_capture(self) -> bool:
        return self.status == "requires_capture"


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in cents
        currency: Currency code
        destination_account: Destination Stripe account ID
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in cents
        currency: Currency code
        status: succeeded, pending, requires_action, failed or canceled
        payment_intent_id: Original PaymentIntent ID
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class AccountResult:
    """
    Result from Stripe Connect account operations.

    Attributes:
        id: Connected account ID (acct_xxx)
        details_submitted: Whether the holder finished the onboarding form
        charges_enabled: Whether Stripe has enabled charges
        payouts_enabled: Whether Stripe has enabled payouts
        requirements_due: Currently due and past due requirement names
        disabled_reason: Why Stripe disabled the account, if it did
    """

    id: str
    details_submitted: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    requirements_due: list[str] = field(default_factory=list)
    disabled_reason: str | None = None


@dataclass
class AccountLinkResult:
    """
    Result from Stripe AccountLink creation.

    Attributes:
        url: Hosted onboarding URL, single use
        expires_at: Unix timestamp after which the link stops working
    """

    url: str
    expires_at: int


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity, attempt) always yields the same key, so a
    retry after an unknown outcome replays the original Stripe response
    instead of charging or paying out twice. Bump the attempt only after a
    definitive failure.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="escrow_release",
            entity_id=shipment_request.id,
            attempt=escrow.release_attempt,
        )
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter (0-25% of the delay).

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Every call is timed and logged, and every Stripe SDK error is translated
    into a payments.exceptions.StripeError subclass.

    Usage:
        result = StripeAdapter.create_payment_intent(params)
        result = StripeAdapter.capture_payment_intent(pi_id, idem_key)
        result = StripeAdapter.create_transfer(4000, "acct_xxx", idem_key)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and SDK retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 2)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _call(
        cls,
        log_context: dict[str, Any],
        func: Callable[[], Any],
        level: int = logging.INFO,
    ) -> Any:
        """
        Run one Stripe SDK call with timing, logging and error translation.

        Raises:
            StripeError: Translated from any Stripe SDK error
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        start_time = time.time()
        logger.log(level, "Starting Stripe operation", extra=log_context)

        try:
            response = func()
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.log(
            level,
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_id": getattr(response, "id", None),
                "status": getattr(response, "status", None),
                "duration_ms": duration_ms,
            },
        )
        return response

    @staticmethod
    def _intent_result(intent: Any) -> PaymentIntentResult:
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            amount_received_cents=intent.amount_received or 0,
            metadata=dict(intent.metadata or {}),
        )

    # =========================================================================
    # PaymentIntents
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        params: CreatePaymentIntentParams,
    ) -> PaymentIntentResult:
        """
        Create (and by default confirm) a PaymentIntent.

        With capture_method='manual' a successful confirmation leaves the
        intent in requires_capture: the funds are held but not yet taken.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
            StripeTimeoutError: Request timed out
        """
        log_context = {
            "operation": "create_payment_intent",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "idempotency_key": params.idempotency_key,
        }

        create_params: dict[str, Any] = {
            "amount": params.amount_cents,
            "currency": params.currency,
            "metadata": params.metadata,
            "payment_method_types": params.payment_method_types,
            "capture_method": params.capture_method,
        }
        if params.payment_method:
            create_params["payment_method"] = params.payment_method
            create_params["confirm"] = params.confirm

        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.create(
                idempotency_key=params.idempotency_key,
                **create_params,
            ),
        )
        return cls._intent_result(intent)

    @classmethod
    def capture_payment_intent(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_to_capture: int | None = None,
    ) -> PaymentIntentResult:
        """
        Capture a held PaymentIntent.

        Raises:
            StripeInvalidRequestError: PaymentIntent not capturable
            StripeAPIUnavailableError: Stripe service unavailable
        """
        log_context = {
            "operation": "capture_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
            "amount_to_capture": amount_to_capture,
        }

        capture_params: dict[str, Any] = {}
        if amount_to_capture is not None:
            capture_params["amount_to_capture"] = amount_to_capture

        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                payment_intent_id,
                idempotency_key=idempotency_key,
                **capture_params,
            ),
        )
        return cls._intent_result(intent)

    @classmethod
    def cancel_payment_intent(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """Cancel an uncaptured PaymentIntent, releasing the hold on the card."""
        log_context = {
            "operation": "cancel_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
        }

        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.cancel(
                payment_intent_id,
                idempotency_key=idempotency_key,
            ),
        )
        return cls._intent_result(intent)

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id: str) -> PaymentIntentResult:
        """
        Retrieve a PaymentIntent by ID.

        Used by reconciliation to settle authorized escrows whose capture
        outcome is unknown.

        Raises:
            StripeInvalidRequestError: PaymentIntent not found
        """
        log_context = {
            "operation": "retrieve_payment_intent",
            "payment_intent_id": payment_intent_id,
        }

        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.retrieve(payment_intent_id),
            level=logging.DEBUG,
        )
        return cls._intent_result(intent)

    # =========================================================================
    # Transfers and Refunds
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "eur",
        metadata: dict[str, str] | None = None,
        source_transaction: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected Stripe account.

        Args:
            amount_cents: Amount to transfer in cents
            destination_account: Stripe Connect account ID (acct_xxx)
            idempotency_key: Unique key for idempotent transfer
            currency: Currency code
            metadata: Optional metadata dict
            source_transaction: Charge the transfer is funded from

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        transfer_params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "destination": destination_account,
            "metadata": metadata or {},
        }
        if source_transaction:
            transfer_params["source_transaction"] = source_transaction

        transfer = cls._call(
            log_context,
            lambda: stripe.Transfer.create(
                idempotency_key=idempotency_key,
                **transfer_params,
            ),
        )
        return TransferResult(
            id=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
        )

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund a captured PaymentIntent.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            idempotency_key: Unique key for idempotent refund
            amount_cents: Amount to refund (None for full refund)
            reason: duplicate, fraudulent or requested_by_customer

        Raises:
            StripeInvalidRequestError: Refund not possible
        """
        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        refund_params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "metadata": metadata or {},
        }
        if amount_cents is not None:
            refund_params["amount"] = amount_cents
        if reason:
            refund_params["reason"] = reason

        refund = cls._call(
            log_context,
            lambda: stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            ),
        )
        return RefundResult(
            id=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=refund.payment_intent,
            metadata=dict(refund.metadata or {}),
        )

    # =========================================================================
    # Connect Accounts
    # =========================================================================

    @staticmethod
    def _account_result(account: Any) -> AccountResult:
        requirements = account.requirements or {}
        due = list(requirements.get("currently_due") or []) + list(
            requirements.get("past_due") or []
        )
        return AccountResult(
            id=account.id,
            details_submitted=bool(account.details_submitted),
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
            requirements_due=due,
            disabled_reason=requirements.get("disabled_reason"),
        )

    @classmethod
    def create_connected_account(
        cls,
        email: str,
        idempotency_key: str,
        country: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> AccountResult:
        """
        Create an Express connected account able to receive transfers.

        Raises:
            StripeInvalidRequestError: Invalid country or email
        """
        log_context = {
            "operation": "create_connected_account",
            "idempotency_key": idempotency_key,
        }

        account_params: dict[str, Any] = {
            "type": "express",
            "email": email,
            "capabilities": {"transfers": {"requested": True}},
            "metadata": metadata or {},
        }
        if country:
            account_params["country"] = country

        account = cls._call(
            log_context,
            lambda: stripe.Account.create(
                idempotency_key=idempotency_key,
                **account_params,
            ),
        )
        return cls._account_result(account)

    @classmethod
    def create_account_link(
        cls,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> AccountLinkResult:
        """
        Create a single-use hosted onboarding link for a connected account.

        Links expire after a few minutes, so a new one is created per call.
        """
        log_context = {
            "operation": "create_account_link",
            "account_id": account_id,
        }

        link = cls._call(
            log_context,
            lambda: stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            ),
        )
        return AccountLinkResult(url=link.url, expires_at=link.expires_at)

    @classmethod
    def retrieve_account(cls, account_id: str) -> AccountResult:
        """
        Retrieve a connected account's capabilities and requirements.

        Raises:
            StripeInvalidAccountError: Account not found or not connected
        """
        log_context = {
            "operation": "retrieve_account",
            "account_id": account_id,
        }

        account = cls._call(
            log_context,
            lambda: stripe.Account.retrieve(account_id),
            level=logging.DEBUG,
        )
        return cls._account_result(account)

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable or unexpected error
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error.user_message or "Invalid connected account"),
                    stripe_code=error.code,
                ) from error

            raise StripeInvalidRequestError(
                str(error.user_message or "Invalid request to Stripe"),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeAPIUnavailableError(
            "Unexpected Stripe error. Please retry.",
            stripe_code="unknown_error",
        ) from error
