"""
Shipment admin configuration.

Status fields are read-only: requests move only through the lifecycle
services, and disputes are resolved through the API so the escrow action
runs.
"""

from django.contrib import admin

from shipments.models import Dispute, Listing, Review, ShipmentRequest


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "traveler",
        "departure_city",
        "arrival_city",
        "departure_date",
        "available_kg",
        "price_per_kg",
        "status",
    ]
    list_filter = ["status", "departure_country", "arrival_country"]
    search_fields = ["id", "traveler__email", "departure_city", "arrival_city"]
    readonly_fields = ["id", "available_kg", "created_at", "updated_at"]
    date_hierarchy = "departure_date"


@admin.register(ShipmentRequest)
class ShipmentRequestAdmin(admin.ModelAdmin):
    """
    Admin configuration for ShipmentRequest.

    The confirmation code is the sender's secret and is never displayed.
    """

    list_display = [
        "id",
        "sender",
        "listing",
        "weight_kg",
        "total_price",
        "status",
        "created_at",
    ]
    list_filter = ["status", "cancellation_reason", "created_at"]
    search_fields = ["id", "sender__email", "listing__traveler__email"]
    exclude = ["confirmation_code"]
    readonly_fields = [
        "id",
        "listing",
        "sender",
        "weight_kg",
        "total_price",
        "currency",
        "platform_fee",
        "payout_amount",
        "status",
        "cancellation_reason",
        "failed_confirmation_attempts",
        "last_failed_confirmation_at",
        "accepted_at",
        "paid_at",
        "collected_at",
        "in_transit_at",
        "delivered_at",
        "confirmed_at",
        "cancelled_at",
        "disputed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ["id", "shipment_request", "raised_by", "status", "resolution", "created_at"]
    list_filter = ["status", "resolution"]
    search_fields = ["id", "shipment_request__id", "raised_by__email"]
    readonly_fields = [
        "id",
        "shipment_request",
        "raised_by",
        "reason",
        "previous_status",
        "status",
        "resolution",
        "resolved_by",
        "resolved_at",
        "created_at",
        "updated_at",
    ]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ["id", "shipment_request", "reviewer", "reviewee", "rating", "created_at"]
    list_filter = ["rating"]
    search_fields = ["id", "reviewer__email", "reviewee__email"]
    readonly_fields = ["id", "shipment_request", "reviewer", "reviewee", "created_at", "updated_at"]
