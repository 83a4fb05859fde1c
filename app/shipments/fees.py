"""
Platform fee calculation.

Splits a shipment's total price into the platform's commission and the
traveler's payout. Money is always Decimal with two places; integer cents
appear only at the Stripe boundary (see to_cents).

Usage:
    from shipments.fees import calculate_fee

    breakdown = calculate_fee(Decimal("49.99"))
    breakdown.platform_fee   # Decimal("5.00")
    breakdown.payout_amount  # Decimal("44.99")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

CENT = Decimal("0.01")

DEFAULT_PLATFORM_FEE_PERCENT = Decimal("10")


@dataclass(frozen=True)
class FeeBreakdown:
    """platform_fee + payout_amount == total, always."""

    total: Decimal
    platform_fee: Decimal
    payout_amount: Decimal


def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def get_fee_percent() -> Decimal:
    return Decimal(
        str(getattr(settings, "PLATFORM_FEE_PERCENT", DEFAULT_PLATFORM_FEE_PERCENT))
    )


def calculate_fee(total: Decimal, fee_percent: Decimal | None = None) -> FeeBreakdown:
    """
    Split a total into platform fee and payout.

    The fee is rounded to cents and the payout is the remainder, so the two
    parts always add back up to the total.

    Args:
        total: Amount charged to the sender (non-negative)
        fee_percent: Commission in percent, defaults to PLATFORM_FEE_PERCENT

    Raises:
        ValueError: If total is negative or fee_percent outside [0, 100]
    """
    total = quantize_money(total)
    if total < 0:
        raise ValueError("total must not be negative")

    percent = get_fee_percent() if fee_percent is None else Decimal(str(fee_percent))
    if not Decimal("0") <= percent <= Decimal("100"):
        raise ValueError("fee_percent must be between 0 and 100")

    platform_fee = quantize_money(total * percent / Decimal("100"))
    return FeeBreakdown(
        total=total,
        platform_fee=platform_fee,
        payout_amount=total - platform_fee,
    )


def to_cents(amount: Decimal) -> int:
    """Convert a Decimal amount to integer minor units for Stripe."""
    return int(quantize_money(amount) * 100)


def from_cents(cents: int) -> Decimal:
    return quantize_money(Decimal(cents) / Decimal(100))
