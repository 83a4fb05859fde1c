"""
Dispute model: an administrator-mediated freeze on a shipment request.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from shipments.states import DisputeResolution, DisputeStatus, RequestStatus


class Dispute(UUIDPrimaryKeyMixin, BaseModel):
    """
    At most one dispute per request; terminal once resolved.

    Fields:
        shipment_request: The disputed request
        raised_by: Participant who opened it
        previous_status: Request status when the dispute was opened
        resolution: refund or release, set by an administrator
    """

    shipment_request = models.OneToOneField(
        "shipments.ShipmentRequest",
        on_delete=models.PROTECT,
        related_name="dispute",
    )
    raised_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="disputes_raised",
    )
    reason = models.TextField(max_length=500)
    previous_status = models.CharField(max_length=20, choices=RequestStatus.choices)

    status = models.CharField(
        max_length=20,
        choices=DisputeStatus.choices,
        default=DisputeStatus.OPEN,
        db_index=True,
    )
    resolution = models.CharField(
        max_length=20,
        choices=DisputeResolution.choices,
        blank=True,
        default="",
    )
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="disputes_resolved",
        null=True,
        blank=True,
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolution_note = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status=DisputeStatus.OPEN, resolution="")
                    | (Q(status=DisputeStatus.RESOLVED) & ~Q(resolution=""))
                ),
                name="dispute_resolution_matches_status",
            ),
        ]

    def __str__(self) -> str:
        return f"Dispute({self.shipment_request_id}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status == DisputeStatus.OPEN
