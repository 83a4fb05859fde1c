"""
Serializers for the shipments API.

Input serializers only check shape; business rules (weights against
capacity, allowed transitions) are enforced by the services, which raise
core.exceptions errors rendered by ApplicationErrorMixin.

The confirmation code is included in request payloads only when the
serializer context's request user is the sender.
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import PublicUserSerializer
from payments.models import EscrowTransaction
from shipments.models import Dispute, Listing, Review, ShipmentRequest
from shipments.services.lifecycle import ACTIONS
from shipments.states import DisputeResolution

# =============================================================================
# Listings
# =============================================================================


class ListingSerializer(serializers.ModelSerializer):
    traveler = PublicUserSerializer(read_only=True)

    class Meta:
        model = Listing
        fields = [
            "id",
            "traveler",
            "departure_city",
            "departure_country",
            "arrival_city",
            "arrival_country",
            "departure_date",
            "arrival_date",
            "available_kg",
            "price_per_kg",
            "currency",
            "description",
            "status",
            "created_at",
        ]
        read_only_fields = fields


class ListingCreateSerializer(serializers.Serializer):
    departure_city = serializers.CharField(max_length=100)
    departure_country = serializers.CharField(max_length=100)
    arrival_city = serializers.CharField(max_length=100)
    arrival_country = serializers.CharField(max_length=100)
    departure_date = serializers.DateField()
    arrival_date = serializers.DateField()
    available_kg = serializers.DecimalField(max_digits=5, decimal_places=2)
    price_per_kg = serializers.DecimalField(max_digits=8, decimal_places=2)
    currency = serializers.CharField(max_length=3, default="EUR")
    description = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# Requests
# =============================================================================


class EscrowSummarySerializer(serializers.ModelSerializer):
    """Escrow state without Stripe references."""

    class Meta:
        model = EscrowTransaction
        fields = [
            "status",
            "amount",
            "platform_fee",
            "payout_amount",
            "currency",
            "captured_amount",
            "released_amount",
            "refunded_amount",
        ]
        read_only_fields = fields


class ShipmentRequestSerializer(serializers.ModelSerializer):
    """
    Request detail as seen by one of its participants.

    confirmation_code is None for everyone but the sender.
    """

    listing = ListingSerializer(read_only=True)
    sender = PublicUserSerializer(read_only=True)
    confirmation_code = serializers.SerializerMethodField()
    escrow = serializers.SerializerMethodField()

    class Meta:
        model = ShipmentRequest
        fields = [
            "id",
            "listing",
            "sender",
            "weight_kg",
            "item_description",
            "special_instructions",
            "total_price",
            "currency",
            "platform_fee",
            "payout_amount",
            "status",
            "cancellation_reason",
            "confirmation_code",
            "escrow",
            "accepted_at",
            "paid_at",
            "collected_at",
            "in_transit_at",
            "delivered_at",
            "confirmed_at",
            "cancelled_at",
            "disputed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_confirmation_code(self, obj) -> str | None:
        request = self.context.get("request")
        if request is not None and obj.is_sender(request.user):
            return obj.confirmation_code
        return None

    def get_escrow(self, obj) -> dict | None:
        escrow = EscrowTransaction.objects.filter(shipment_request=obj).first()
        if escrow is None:
            return None
        return EscrowSummarySerializer(escrow).data


class ShipmentRequestCreateSerializer(serializers.Serializer):
    listing_id = serializers.UUIDField()
    weight_kg = serializers.DecimalField(max_digits=5, decimal_places=2)
    description = serializers.CharField(max_length=500)
    instructions = serializers.CharField(
        max_length=500, required=False, allow_blank=True, default=""
    )


class TransitionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=sorted(ACTIONS))
    payment_method_id = serializers.CharField(required=False, max_length=255)
    code = serializers.CharField(required=False, max_length=6)


class ConfirmDeliverySerializer(serializers.Serializer):
    code = serializers.CharField(max_length=6)


# =============================================================================
# Disputes
# =============================================================================


class DisputeSerializer(serializers.ModelSerializer):
    raised_by = PublicUserSerializer(read_only=True)
    request_id = serializers.UUIDField(source="shipment_request_id", read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "request_id",
            "raised_by",
            "reason",
            "previous_status",
            "status",
            "resolution",
            "resolved_at",
            "resolution_note",
            "created_at",
        ]
        read_only_fields = fields


class OpenDisputeSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class ResolveDisputeSerializer(serializers.Serializer):
    resolution = serializers.ChoiceField(choices=DisputeResolution.choices)
    note = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# Reviews
# =============================================================================


class ReviewSerializer(serializers.ModelSerializer):
    reviewer = PublicUserSerializer(read_only=True)
    request_id = serializers.UUIDField(source="shipment_request_id", read_only=True)

    class Meta:
        model = Review
        fields = ["id", "request_id", "reviewer", "rating", "comment", "created_at"]
        read_only_fields = fields


class ReviewCreateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(
        max_length=1000, required=False, allow_blank=True, default=""
    )
