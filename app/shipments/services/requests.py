"""
Request creation.
"""

from __future__ import annotations

from core.exceptions import ValidationError
from core.services import BaseService

from shipments import selectors
from shipments.fees import quantize_money
from shipments.models import ShipmentRequest
from shipments.services.listings import parse_kg
from shipments.signals import send_transitioned_on_commit
from shipments.states import ListingStatus, RequestStatus

MIN_DESCRIPTION_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 500
MAX_INSTRUCTIONS_LENGTH = 500


class RequestService(BaseService):
    @classmethod
    def create_request(
        cls,
        sender_id,
        listing_id,
        weight_kg,
        description: str,
        instructions: str = "",
    ) -> ShipmentRequest:
        """
        Create a pending request against a listing.

        total_price is weight_kg * listing.price_per_kg, rounded to cents,
        and never recomputed afterwards. Capacity is checked here but only
        consumed when the traveler accepts.

        Raises:
            ValidationError: Bad weight or text, own listing, listing not
                open, or not enough capacity (INSUFFICIENT_CAPACITY)
            NotFoundError: Unknown sender or listing
        """
        weight = parse_kg(weight_kg)
        description = (description or "").strip()
        instructions = (instructions or "").strip()

        if not MIN_DESCRIPTION_LENGTH <= len(description) <= MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"description must be {MIN_DESCRIPTION_LENGTH} to "
                f"{MAX_DESCRIPTION_LENGTH} characters",
                details={"length": len(description)},
            )
        if len(instructions) > MAX_INSTRUCTIONS_LENGTH:
            raise ValidationError(
                f"instructions must be at most {MAX_INSTRUCTIONS_LENGTH} characters",
                details={"length": len(instructions)},
            )

        sender = selectors.get_user(sender_id)
        listing = selectors.get_listing(listing_id)

        if listing.traveler_id == sender.pk:
            raise ValidationError(
                "You cannot book your own listing",
                error_code="OWN_LISTING",
            )
        if listing.status != ListingStatus.ACTIVE:
            raise ValidationError(
                "This listing no longer accepts shipments",
                error_code="LISTING_UNAVAILABLE",
                details={"status": listing.status},
            )
        if weight > listing.available_kg:
            raise ValidationError(
                "Not enough capacity left on this listing",
                error_code="INSUFFICIENT_CAPACITY",
                details={
                    "available_kg": str(listing.available_kg),
                    "requested_kg": str(weight),
                },
            )

        with cls.atomic():
            shipment_request = ShipmentRequest.objects.create(
                listing=listing,
                sender=sender,
                weight_kg=weight,
                item_description=description,
                special_instructions=instructions,
                total_price=quantize_money(weight * listing.price_per_kg),
                currency=listing.currency,
            )
            send_transitioned_on_commit(
                shipment_request,
                action="create",
                from_status="",
                to_status=RequestStatus.PENDING,
                actor_id=sender.pk,
            )

        cls.get_logger().info(
            "Shipment request created",
            extra={
                "request_id": str(shipment_request.id),
                "listing_id": str(listing.id),
                "weight_kg": str(weight),
                "total_price": str(shipment_request.total_price),
            },
        )
        return shipment_request
