"""
ShipmentRequest model: the transactional aggregate of the lifecycle.

A sender asks a traveler to carry a parcel on one of the traveler's listings.
Status is an FSMField with protected=True: it only changes through the
@transition methods below, and ConcurrentTransitionMixin turns every save
into a compare-and-swap on the status loaded from the database.

Usage:
    shipment_request.accept()
    shipment_request.save()   # UPDATE ... WHERE id = %s AND status = 'pending'

    # If another actor changed the status in between:
    # django_fsm.ConcurrentTransition is raised and nothing is written.

Only shipments.services drives these transitions.
"""

from __future__ import annotations

from django.conf import settings
from django.core.validators import MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from shipments.states import DISPUTABLE_STATUSES, CancellationReason, RequestStatus

MAX_WEIGHT_KG = 30


class ShipmentRequest(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    A sender's request to ship a parcel on a listing.

    State Flow:
        PENDING -> ACCEPTED -> PAID -> [COLLECTED -> IN_TRANSIT ->] DELIVERED -> CONFIRMED
        PENDING/ACCEPTED -> CANCELLED
        PAID..DELIVERED -> DISPUTED -> CONFIRMED | CANCELLED

    Fields:
        listing / sender: The listing booked and the sender booking it
        weight_kg: Parcel weight, 0 < w <= 30
        total_price: weight_kg * listing.price_per_kg, fixed at creation
        platform_fee / payout_amount: Fee split, stored when paid
        confirmation_code: 6-digit secret issued when paid, never changed
        failed_confirmation_attempts: Wrong codes submitted so far
    """

    listing = models.ForeignKey(
        "shipments.Listing",
        on_delete=models.PROTECT,
        related_name="requests",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="shipment_requests",
    )

    weight_kg = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MaxValueValidator(MAX_WEIGHT_KG)],
    )
    item_description = models.TextField(max_length=500)
    special_instructions = models.TextField(blank=True, default="", max_length=500)

    # ==========================================================================
    # Pricing (fixed at creation, split stored at payment)
    # ==========================================================================

    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="EUR")
    platform_fee = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    payout_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RequestStatus.PENDING,
        choices=RequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current lifecycle state (managed by FSM)",
    )
    cancellation_reason = models.CharField(
        max_length=30,
        choices=CancellationReason.choices,
        blank=True,
        default="",
    )

    confirmation_code = models.CharField(max_length=6, null=True, blank=True)
    failed_confirmation_attempts = models.PositiveSmallIntegerField(default=0)
    last_failed_confirmation_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    accepted_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    collected_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    disputed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="request_status_created_idx"),
            models.Index(fields=["sender", "status"], name="request_sender_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(weight_kg__gt=0) & Q(weight_kg__lte=MAX_WEIGHT_KG),
                name="request_weight_in_range",
            ),
            models.CheckConstraint(
                condition=Q(total_price__gt=0),
                name="request_total_price_positive",
            ),
            models.CheckConstraint(
                condition=(
                    Q(confirmation_code__isnull=True)
                    | ~Q(status__in=[RequestStatus.PENDING, RequestStatus.ACCEPTED])
                ),
                name="request_code_only_after_payment",
            ),
        ]

    def __str__(self) -> str:
        return f"ShipmentRequest({self.id}, {self.status}, {self.weight_kg} kg)"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._issued_code = instance.__dict__.get("confirmation_code")
        return instance

    def save(self, *args, **kwargs):
        issued = getattr(self, "_issued_code", None)
        if issued and self.confirmation_code != issued:
            raise ValueError("confirmation_code cannot change once issued")
        super().save(*args, **kwargs)
        self._issued_code = self.confirmation_code

    # ==========================================================================
    # Participants
    # ==========================================================================

    @property
    def traveler_id(self):
        return self.listing.traveler_id

    def is_sender(self, user) -> bool:
        return user is not None and user.pk == self.sender_id

    def is_traveler(self, user) -> bool:
        return user is not None and user.pk == self.listing.traveler_id

    def is_participant(self, user) -> bool:
        return self.is_sender(user) or self.is_traveler(user)

    def counterparty_of(self, user):
        """The other participant: traveler for the sender and vice versa."""
        if self.is_sender(user):
            return self.listing.traveler
        return self.sender

    @property
    def is_terminal(self) -> bool:
        return self.status in (RequestStatus.CONFIRMED, RequestStatus.CANCELLED)

    # ==========================================================================
    # Transitions
    # ==========================================================================

    @transition(field=status, source=RequestStatus.PENDING, target=RequestStatus.ACCEPTED)
    def accept(self):
        self.accepted_at = timezone.now()

    @transition(field=status, source=RequestStatus.PENDING, target=RequestStatus.CANCELLED)
    def reject(self):
        self.cancellation_reason = CancellationReason.REJECTED
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=[RequestStatus.PENDING, RequestStatus.ACCEPTED],
        target=RequestStatus.CANCELLED,
    )
    def cancel(self, reason: str):
        """Transition: PENDING/ACCEPTED -> CANCELLED"""
        self.cancellation_reason = reason
        self.cancelled_at = timezone.now()

    @transition(field=status, source=RequestStatus.ACCEPTED, target=RequestStatus.PAID)
    def mark_paid(self, code: str, platform_fee, payout_amount):
        """
        Record the captured payment and issue the confirmation code.

        Transition: ACCEPTED -> PAID

        An already issued code is kept.
        """
        if not self.confirmation_code:
            self.confirmation_code = code
        self.platform_fee = platform_fee
        self.payout_amount = payout_amount
        self.paid_at = timezone.now()

    @transition(field=status, source=RequestStatus.PAID, target=RequestStatus.COLLECTED)
    def mark_collected(self):
        self.collected_at = timezone.now()

    @transition(field=status, source=RequestStatus.COLLECTED, target=RequestStatus.IN_TRANSIT)
    def mark_in_transit(self):
        self.in_transit_at = timezone.now()

    @transition(
        field=status,
        source=[RequestStatus.PAID, RequestStatus.COLLECTED, RequestStatus.IN_TRANSIT],
        target=RequestStatus.DELIVERED,
    )
    def mark_delivered(self):
        self.delivered_at = timezone.now()

    @transition(field=status, source=RequestStatus.DELIVERED, target=RequestStatus.CONFIRMED)
    def confirm(self):
        self.confirmed_at = timezone.now()
        self.failed_confirmation_attempts = 0
        self.last_failed_confirmation_at = None

    @transition(
        field=status,
        source=list(DISPUTABLE_STATUSES),
        target=RequestStatus.DISPUTED,
    )
    def open_dispute(self):
        self.disputed_at = timezone.now()

    @transition(field=status, source=RequestStatus.DISPUTED, target=RequestStatus.CONFIRMED)
    def resolve_release(self):
        """Transition: DISPUTED -> CONFIRMED (payout released)"""
        self.confirmed_at = timezone.now()

    @transition(field=status, source=RequestStatus.DISPUTED, target=RequestStatus.CANCELLED)
    def resolve_refund(self):
        """Transition: DISPUTED -> CANCELLED (sender refunded)"""
        self.cancellation_reason = CancellationReason.DISPUTE_REFUND
        self.cancelled_at = timezone.now()
