"""
Listing service: traveler capacity and its bookkeeping.

available_kg is only ever changed with conditional UPDATEs so that two
accepts racing for the last kilograms cannot both succeed.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from core.services import BaseService

from shipments.models import Listing
from shipments.models.shipment_request import MAX_WEIGHT_KG
from shipments.states import ListingStatus

MAX_DESCRIPTION_LENGTH = 1000


def parse_kg(value, field: str = "weight_kg") -> Decimal:
    """Parse a kilogram amount to a Decimal with two places, or raise ValidationError."""
    try:
        kg = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(
            f"{field} must be a number",
            details={field: str(value)},
        ) from None
    max_kg = getattr(settings, "MAX_WEIGHT_KG", MAX_WEIGHT_KG)
    if kg <= 0 or kg > max_kg:
        raise ValidationError(
            f"{field} must be greater than 0 and at most {max_kg}",
            details={field: str(kg), "max_kg": max_kg},
        )
    return kg


class ListingService(BaseService):
    """
    Create and cancel listings; consume and return capacity.

    Usage:
        listing = ListingService.create_listing(traveler, ...)
        ListingService.consume_capacity(listing.id, Decimal("5.00"))
    """

    @classmethod
    def create_listing(
        cls,
        traveler,
        *,
        departure_city: str,
        departure_country: str,
        arrival_city: str,
        arrival_country: str,
        departure_date,
        arrival_date,
        available_kg,
        price_per_kg,
        currency: str = "EUR",
        description: str = "",
    ) -> Listing:
        kg = parse_kg(available_kg, field="available_kg")

        try:
            price = Decimal(str(price_per_kg)).quantize(Decimal("0.01"))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(
                "price_per_kg must be a number",
                details={"price_per_kg": str(price_per_kg)},
            ) from None
        if price <= 0:
            raise ValidationError(
                "price_per_kg must be positive",
                details={"price_per_kg": str(price)},
            )
        if arrival_date < departure_date:
            raise ValidationError(
                "arrival_date cannot be before departure_date",
                details={
                    "departure_date": str(departure_date),
                    "arrival_date": str(arrival_date),
                },
            )
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                details={"length": len(description)},
            )

        listing = Listing.objects.create(
            traveler=traveler,
            departure_city=departure_city,
            departure_country=departure_country,
            arrival_city=arrival_city,
            arrival_country=arrival_country,
            departure_date=departure_date,
            arrival_date=arrival_date,
            available_kg=kg,
            price_per_kg=price,
            currency=currency.upper(),
            description=description,
        )
        cls.get_logger().info(
            "Listing created",
            extra={"listing_id": str(listing.id), "traveler_id": traveler.pk},
        )
        return listing

    @classmethod
    def cancel_listing(cls, listing_id, traveler) -> Listing:
        """
        Withdraw a listing. Requests already on it keep their status.

        Raises:
            NotFoundError: Unknown listing
            PermissionDeniedError: Caller does not own it
            ValidationError: Listing is already completed or cancelled
        """
        updated = Listing.objects.filter(
            pk=listing_id,
            traveler=traveler,
            status__in=[ListingStatus.ACTIVE, ListingStatus.FULL],
        ).update(status=ListingStatus.CANCELLED, updated_at=timezone.now())

        listing = Listing.objects.filter(pk=listing_id).first()
        if listing is None:
            raise NotFoundError(
                f"Listing {listing_id} not found",
                error_code="LISTING_NOT_FOUND",
                details={"listing_id": str(listing_id)},
            )
        if not updated:
            if listing.traveler_id != traveler.pk:
                raise PermissionDeniedError(
                    "Only the traveler can cancel this listing",
                    error_code="NOT_ALLOWED",
                )
            raise ValidationError(
                f"Cannot cancel a listing in status '{listing.status}'",
                error_code="LISTING_UNAVAILABLE",
                details={"status": listing.status},
            )

        cls.get_logger().info("Listing cancelled", extra={"listing_id": str(listing_id)})
        return listing

    @classmethod
    def consume_capacity(cls, listing_id, weight_kg: Decimal) -> None:
        """
        Take weight_kg from the listing's remaining capacity.

        Must run inside the transaction that accepts the request. A listing
        left with no capacity becomes FULL.

        Raises:
            ValidationError: INSUFFICIENT_CAPACITY or LISTING_UNAVAILABLE
        """
        now = timezone.now()
        updated = Listing.objects.filter(
            pk=listing_id,
            status=ListingStatus.ACTIVE,
            available_kg__gte=weight_kg,
        ).update(available_kg=F("available_kg") - weight_kg, updated_at=now)

        if not updated:
            listing = Listing.objects.get(pk=listing_id)
            if listing.status != ListingStatus.ACTIVE:
                raise ValidationError(
                    "This listing no longer accepts shipments",
                    error_code="LISTING_UNAVAILABLE",
                    details={"listing_id": str(listing_id), "status": listing.status},
                )
            raise ValidationError(
                "Not enough capacity left on this listing",
                error_code="INSUFFICIENT_CAPACITY",
                details={
                    "listing_id": str(listing_id),
                    "available_kg": str(listing.available_kg),
                    "requested_kg": str(weight_kg),
                },
            )

        Listing.objects.filter(
            pk=listing_id,
            status=ListingStatus.ACTIVE,
            available_kg__lte=0,
        ).update(status=ListingStatus.FULL, updated_at=now)

    @classmethod
    def restore_capacity(cls, listing_id, weight_kg: Decimal) -> None:
        """Give weight_kg back to the listing; a FULL listing becomes ACTIVE again."""
        now = timezone.now()
        Listing.objects.filter(pk=listing_id).update(
            available_kg=F("available_kg") + weight_kg, updated_at=now
        )
        Listing.objects.filter(
            pk=listing_id,
            status=ListingStatus.FULL,
            available_kg__gt=0,
        ).update(status=ListingStatus.ACTIVE, updated_at=now)
