"""
Payment adapters for external services.

All Stripe calls go through StripeAdapter so that timeouts, idempotency keys,
error translation and logging are handled in one place.

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams
"""

from payments.adapters.stripe_adapter import (
    AccountLinkResult,
    AccountResult,
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
)

__all__ = [
    "AccountLinkResult",
    "AccountResult",
    "CreatePaymentIntentParams",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
    "backoff_delay",
]
