"""
State enums for payment models.

These are Django TextChoices for database storage and admin integration.

EscrowTransaction States:
    pending → authorized → captured → releasing → released
                                   └→ refunding → refunded
    pending/authorized → failed → pending (retry with a new attempt)
    releasing → captured (definitive payout failure)
    refunding → captured (definitive refund failure)

pending, releasing and refunding are intent markers: they are written before
the Stripe call so that a crash or timeout leaves a resumable trace.
"""

from django.db import models


class EscrowStatus(models.TextChoices):
    """
    States for the EscrowTransaction lifecycle.

    Terminal states: RELEASED, REFUNDED
    """

    PENDING = "pending", "Pending"
    AUTHORIZED = "authorized", "Authorized"
    CAPTURED = "captured", "Captured"
    RELEASING = "releasing", "Releasing"
    RELEASED = "released", "Released"
    REFUNDING = "refunding", "Refunding"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class OnboardingStatus(models.TextChoices):
    """
    Stripe Connect onboarding status for ConnectedAccount.

    Only COMPLETE allows receiving payouts.
    """

    NOT_STARTED = "not_started", "Not Started"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETE = "complete", "Complete"
    REJECTED = "rejected", "Rejected"


__all__ = [
    "EscrowStatus",
    "OnboardingStatus",
]
