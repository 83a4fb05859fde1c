"""
Review model: one participant's rating of the other after confirmation.
"""

from __future__ import annotations

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

MIN_RATING = 1
MAX_RATING = 5


class Review(UUIDPrimaryKeyMixin, BaseModel):
    """
    Rating left by the sender for the traveler or the traveler for the sender.

    The unique (shipment_request, reviewer) pair caps reviews at two per
    request.
    """

    shipment_request = models.ForeignKey(
        "shipments.ShipmentRequest",
        on_delete=models.PROTECT,
        related_name="reviews",
    )
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reviews_given",
    )
    reviewee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reviews_received",
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(MIN_RATING), MaxValueValidator(MAX_RATING)],
    )
    comment = models.TextField(blank=True, default="", max_length=1000)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["shipment_request", "reviewer"],
                name="review_one_per_reviewer_per_request",
            ),
            models.CheckConstraint(
                condition=Q(rating__gte=MIN_RATING) & Q(rating__lte=MAX_RATING),
                name="review_rating_in_range",
            ),
            models.CheckConstraint(
                condition=~Q(reviewer=models.F("reviewee")),
                name="review_not_self",
            ),
        ]

    def __str__(self) -> str:
        return f"Review({self.reviewer_id} → {self.reviewee_id}, {self.rating})"
