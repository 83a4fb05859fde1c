"""
Delivery confirmation codes.

A 6-digit numeric secret is issued once, when the sender's payment is
captured. Only the sender can see it; the traveler must obtain it from the
sender (or the recipient) at handover, so a wrong submission is treated as a
guess and counted.

Usage:
    from shipments.confirmation import generate_code, codes_match

    shipment_request.confirmation_code = generate_code()
    if not codes_match(shipment_request.confirmation_code, submitted):
        ...
"""

from __future__ import annotations

import hmac
import math
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

if TYPE_CHECKING:
    from datetime import datetime

CODE_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LOCKOUT_MINUTES = 15


def generate_code() -> str:
    """Return a uniformly random 6-digit string; leading zeros are kept."""
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


def codes_match(expected: str | None, submitted: str | None) -> bool:
    """
    Compare codes in constant time.

    A missing stored code never matches. Surrounding whitespace in the
    submission is ignored.
    """
    if not expected or submitted is None:
        return False
    return hmac.compare_digest(
        expected.encode("utf-8"),
        str(submitted).strip().encode("utf-8"),
    )


def get_max_attempts() -> int:
    return getattr(settings, "CONFIRMATION_CODE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)


def get_lockout() -> timedelta:
    return timedelta(
        minutes=getattr(settings, "CONFIRMATION_CODE_LOCKOUT_MINUTES", DEFAULT_LOCKOUT_MINUTES)
    )


def lockout_remaining(failed_attempts: int, last_failed_at: datetime | None) -> int:
    """
    Seconds until confirmation attempts are allowed again, 0 if allowed now.

    Attempts lock once failed_attempts reaches the configured maximum and
    unlock when the lockout period has passed since the last failure.
    """
    if failed_attempts < get_max_attempts() or last_failed_at is None:
        return 0
    unlock_at = last_failed_at + get_lockout()
    remaining = (unlock_at - timezone.now()).total_seconds()
    return max(0, math.ceil(remaining))


__all__ = [
    "CODE_LENGTH",
    "codes_match",
    "generate_code",
    "get_lockout",
    "get_max_attempts",
    "lockout_remaining",
]
