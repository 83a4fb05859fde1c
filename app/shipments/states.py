"""
State enums for shipment models.

These are Django TextChoices for database storage and admin integration.

ShipmentRequest States:
    pending → accepted → paid → collected → in_transit → delivered → confirmed
    pending/accepted → cancelled
    paid/collected/in_transit/delivered → disputed → confirmed | cancelled

collected and in_transit are tracking markers only: paid → delivered is a
legal edge.
"""

from django.db import models


class RequestStatus(models.TextChoices):
    """
    States for the ShipmentRequest lifecycle.

    Terminal states: CONFIRMED, CANCELLED
    """

    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    PAID = "paid", "Paid"
    COLLECTED = "collected", "Collected"
    IN_TRANSIT = "in_transit", "In Transit"
    DELIVERED = "delivered", "Delivered"
    CONFIRMED = "confirmed", "Confirmed"
    CANCELLED = "cancelled", "Cancelled"
    DISPUTED = "disputed", "Disputed"


TERMINAL_STATUSES = frozenset({RequestStatus.CONFIRMED, RequestStatus.CANCELLED})

# Statuses from which a dispute may be opened
DISPUTABLE_STATUSES = frozenset(
    {
        RequestStatus.PAID,
        RequestStatus.COLLECTED,
        RequestStatus.IN_TRANSIT,
        RequestStatus.DELIVERED,
    }
)


class CancellationReason(models.TextChoices):
    """Why a request ended up cancelled."""

    REJECTED = "rejected", "Rejected by traveler"
    CANCELLED_BY_SENDER = "cancelled_by_sender", "Cancelled by sender"
    CANCELLED_BY_TRAVELER = "cancelled_by_traveler", "Cancelled by traveler"
    EXPIRED = "expired", "Expired without answer"
    DISPUTE_REFUND = "dispute_refund", "Refunded after dispute"


class ListingStatus(models.TextChoices):
    """
    States for a traveler's Listing.

    FULL is reversible: capacity returned by a cancelled request makes the
    listing ACTIVE again.
    """

    ACTIVE = "active", "Active"
    FULL = "full", "Full"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class DisputeStatus(models.TextChoices):
    OPEN = "open", "Open"
    RESOLVED = "resolved", "Resolved"


class DisputeResolution(models.TextChoices):
    """Administrator's outcome: refund the sender or release to the traveler."""

    REFUND = "refund", "Refund sender"
    RELEASE = "release", "Release to traveler"


__all__ = [
    "DISPUTABLE_STATUSES",
    "TERMINAL_STATUSES",
    "CancellationReason",
    "DisputeResolution",
    "DisputeStatus",
    "ListingStatus",
    "RequestStatus",
]
