"""
Read-side queries for shipments.

Selectors never write. Reads of a single request are scoped to the people
allowed to see it: the sender, the traveler and staff. Anyone else gets
RequestNotFoundError rather than a permission error, so request ids cannot
be enumerated.

Usage:
    from shipments import selectors

    shipment_request = selectors.get_request_for_participant(request_id, request.user)
    queryset = selectors.requests_for_user(request.user, role="traveler")
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q, QuerySet

from core.exceptions import NotFoundError, ValidationError

from shipments.exceptions import RequestNotFoundError
from shipments.models import Dispute, Listing, Review, ShipmentRequest
from shipments.states import DisputeStatus, RequestStatus

ROLE_SENDER = "sender"
ROLE_TRAVELER = "traveler"


def _request_queryset() -> QuerySet[ShipmentRequest]:
    return ShipmentRequest.objects.select_related("listing", "listing__traveler", "sender")


def get_request(request_id) -> ShipmentRequest:
    """Load a request with its listing and participants, or raise RequestNotFoundError."""
    try:
        return _request_queryset().get(pk=request_id)
    except (ShipmentRequest.DoesNotExist, DjangoValidationError):
        raise RequestNotFoundError(
            f"Shipment request {request_id} not found",
            details={"request_id": str(request_id)},
        ) from None


def check_visible(shipment_request: ShipmentRequest, user) -> None:
    """Raise RequestNotFoundError unless the user is a participant or staff."""
    if user.is_staff or shipment_request.is_participant(user):
        return
    raise RequestNotFoundError(
        f"Shipment request {shipment_request.pk} not found",
        details={"request_id": str(shipment_request.pk)},
    )


def get_request_for_participant(request_id, user) -> ShipmentRequest:
    shipment_request = get_request(request_id)
    check_visible(shipment_request, user)
    return shipment_request


def get_user(user_id):
    User = get_user_model()
    try:
        return User.objects.get(pk=user_id, is_active=True)
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(
            f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            details={"user_id": str(user_id)},
        ) from None


def get_listing(listing_id) -> Listing:
    try:
        return Listing.objects.select_related("traveler").get(pk=listing_id)
    except (Listing.DoesNotExist, DjangoValidationError):
        raise NotFoundError(
            f"Listing {listing_id} not found",
            error_code="LISTING_NOT_FOUND",
            details={"listing_id": str(listing_id)},
        ) from None


def requests_for_user(
    user,
    role: str | None = None,
    status: str | None = None,
) -> QuerySet[ShipmentRequest]:
    """
    Requests the user takes part in, newest first.

    Args:
        user: The participant
        role: "sender", "traveler" or None for both
        status: Optional RequestStatus value to filter on
    """
    if role == ROLE_SENDER:
        condition = Q(sender=user)
    elif role == ROLE_TRAVELER:
        condition = Q(listing__traveler=user)
    elif role is None:
        condition = Q(sender=user) | Q(listing__traveler=user)
    else:
        raise ValidationError(
            f"Unknown role '{role}'",
            details={"role": role, "allowed": [ROLE_SENDER, ROLE_TRAVELER]},
        )

    queryset = _request_queryset().filter(condition)
    if status is not None:
        if status not in RequestStatus.values:
            raise ValidationError(f"Unknown status '{status}'", details={"status": status})
        queryset = queryset.filter(status=status)
    return queryset.order_by("-created_at")


def listings_for_traveler(user) -> QuerySet[Listing]:
    return Listing.objects.filter(traveler=user).order_by("departure_date", "-created_at")


def open_disputes() -> QuerySet[Dispute]:
    """Administrator queue: unresolved disputes, oldest first."""
    return (
        Dispute.objects.filter(status=DisputeStatus.OPEN)
        .select_related("shipment_request", "shipment_request__listing", "raised_by")
        .order_by("created_at")
    )


def reviews_for_user(user) -> QuerySet[Review]:
    """Reviews the user received, newest first."""
    return (
        Review.objects.filter(reviewee=user)
        .select_related("reviewer")
        .order_by("-created_at")
    )
