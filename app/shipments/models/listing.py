"""
Listing model: a traveler's offered luggage capacity on a route.

available_kg is the remaining capacity. It is consumed when a request is
accepted and returned when an accepted request is cancelled, always through
conditional UPDATEs (see shipments.services.listings) so concurrent accepts
cannot over-book.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from shipments.states import ListingStatus


class Listing(UUIDPrimaryKeyMixin, BaseModel):
    """
    Capacity a traveler offers between two cities on given dates.

    Fields:
        traveler: Owner of the listing
        departure_* / arrival_*: Route and dates
        available_kg: Remaining capacity
        price_per_kg: Price charged per kilogram
        currency: ISO 4217 code (uppercase)
        status: active, full, completed or cancelled
    """

    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="listings",
    )

    departure_city = models.CharField(max_length=100)
    departure_country = models.CharField(max_length=100)
    arrival_city = models.CharField(max_length=100)
    arrival_country = models.CharField(max_length=100)
    departure_date = models.DateField()
    arrival_date = models.DateField()

    available_kg = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Remaining capacity in kilograms",
    )
    price_per_kg = models.DecimalField(max_digits=8, decimal_places=2)
    currency = models.CharField(max_length=3, default="EUR")

    description = models.TextField(blank=True, default="", max_length=1000)

    status = models.CharField(
        max_length=20,
        choices=ListingStatus.choices,
        default=ListingStatus.ACTIVE,
        db_index=True,
    )

    class Meta:
        ordering = ["departure_date", "-created_at"]
        indexes = [
            models.Index(fields=["traveler", "status"], name="listing_traveler_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(available_kg__gte=0),
                name="listing_available_kg_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(price_per_kg__gt=0),
                name="listing_price_per_kg_positive",
            ),
            models.CheckConstraint(
                condition=Q(arrival_date__gte=F("departure_date")),
                name="listing_arrival_after_departure",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.departure_city} → {self.arrival_city} ({self.departure_date})"

    @property
    def is_open(self) -> bool:
        """Whether new requests may be created against this listing."""
        return self.status == ListingStatus.ACTIVE and self.available_kg > 0
