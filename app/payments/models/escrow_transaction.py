"""
EscrowTransaction model holding a shipment request's funds.

One EscrowTransaction exists per ShipmentRequest once the sender has tried to
pay. It records the Stripe references for the charge, the payout transfer and
any refund, and the per-operation attempt counters used to derive idempotency
keys.

Usage:
    from payments.models import EscrowTransaction

    escrow = EscrowTransaction.objects.create(
        shipment_request=shipment_request,
        payer=shipment_request.sender,
        payee=shipment_request.listing.traveler,
        amount=Decimal("40.00"),
        platform_fee=Decimal("4.00"),
        payout_amount=Decimal("36.00"),
        currency="eur",
    )

    escrow.authorize("pi_xxx")   # pending -> authorized
    escrow.save()

Only payments.services.escrow_service creates or transitions these rows.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import EscrowStatus


class EscrowTransaction(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    Funds captured from the sender and held until release or refund.

    State Flow:
        PENDING -> AUTHORIZED -> CAPTURED -> RELEASING -> RELEASED
        CAPTURED -> REFUNDING -> REFUNDED

    Recovery Flow:
        PENDING/AUTHORIZED -> FAILED -> PENDING (retry)
        RELEASING -> CAPTURED (payout failed)
        REFUNDING -> CAPTURED (refund failed)

    Fields:
        shipment_request: The request these funds belong to
        payer / payee: Sender charged / traveler paid out
        amount: Total charged (the request's total_price)
        platform_fee / payout_amount: Fee split, summing to amount
        status: Current FSM state
        charge_attempt / release_attempt / refund_attempt: Idempotency key
            attempt numbers, advanced only after a definitive failure
        stripe_*_id: Stripe references
        captured_amount / released_amount / refunded_amount: Settled amounts
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    shipment_request = models.OneToOneField(
        "shipments.ShipmentRequest",
        on_delete=models.PROTECT,
        related_name="escrow",
        help_text="Shipment request these funds belong to",
    )

    payer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_payments",
        help_text="Sender charged for the shipment",
    )

    payee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_payouts",
        help_text="Traveler receiving the payout",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2)
    payout_amount = models.DecimalField(max_digits=10, decimal_places=2)

    currency = models.CharField(
        max_length=3,
        default="eur",
        help_text="ISO 4217 currency code (lowercase)",
    )

    captured_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    released_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    refunded_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=EscrowStatus.PENDING,
        choices=EscrowStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the escrow (managed by FSM)",
    )

    charge_attempt = models.PositiveIntegerField(default=1)
    release_attempt = models.PositiveIntegerField(default=1)
    refund_attempt = models.PositiveIntegerField(default=1)

    failure_reason = models.TextField(blank=True, default="")

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_method_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PaymentMethod (pm_xxx) used for the current charge attempt",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Transfer ID (tr_xxx) of the payout",
    )

    stripe_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Refund ID (re_xxx)",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    authorized_at = models.DateTimeField(null=True, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Transaction"
        verbose_name_plural = "Escrow Transactions"
        indexes = [
            models.Index(fields=["status", "updated_at"], name="escrow_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="escrow_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(amount=F("platform_fee") + F("payout_amount")),
                name="escrow_fee_split_sums_to_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowTransaction({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    # ==========================================================================
    # Charge Transitions
    # ==========================================================================

    @transition(
        field=status,
        source=EscrowStatus.PENDING,
        target=EscrowStatus.AUTHORIZED,
    )
    def authorize(self, payment_intent_id: str):
        """
        Record that the sender's card is held.

        Transition: PENDING -> AUTHORIZED
        """
        self.stripe_payment_intent_id = payment_intent_id
        self.authorized_at = timezone.now()

    @transition(
        field=status,
        source=[EscrowStatus.PENDING, EscrowStatus.AUTHORIZED],
        target=EscrowStatus.CAPTURED,
    )
    def capture(self, amount):
        """
        Record the captured funds.

        Transition: PENDING/AUTHORIZED -> CAPTURED

        PENDING is a valid source for reconciliation, which may find the
        intent already succeeded.
        """
        self.captured_amount = amount
        self.captured_at = timezone.now()
        if self.authorized_at is None:
            self.authorized_at = self.captured_at

    @transition(
        field=status,
        source=[EscrowStatus.PENDING, EscrowStatus.AUTHORIZED],
        target=EscrowStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Record a definitive charge failure.

        Transition: PENDING/AUTHORIZED -> FAILED

        Advances charge_attempt so the next try uses a fresh idempotency key.
        """
        self.failure_reason = reason
        self.failed_at = timezone.now()
        self.charge_attempt = self.charge_attempt + 1

    @transition(
        field=status,
        source=EscrowStatus.FAILED,
        target=EscrowStatus.PENDING,
    )
    def retry(self, payment_method_id: str):
        """
        Start a new charge attempt after a failure.

        Transition: FAILED -> PENDING
        """
        self.stripe_payment_method_id = payment_method_id
        self.stripe_payment_intent_id = None
        self.failure_reason = ""
        self.failed_at = None
        self.authorized_at = None

    # ==========================================================================
    # Release Transitions
    # ==========================================================================

    @transition(
        field=status,
        source=EscrowStatus.CAPTURED,
        target=EscrowStatus.RELEASING,
    )
    def begin_release(self):
        """Transition: CAPTURED -> RELEASING"""

    @transition(
        field=status,
        source=EscrowStatus.RELEASING,
        target=EscrowStatus.RELEASED,
    )
    def complete_release(self, transfer_id: str):
        """Transition: RELEASING -> RELEASED"""
        self.stripe_transfer_id = transfer_id
        self.released_amount = self.payout_amount
        self.released_at = timezone.now()
        self.failure_reason = ""

    @transition(
        field=status,
        source=EscrowStatus.RELEASING,
        target=EscrowStatus.CAPTURED,
    )
    def abort_release(self, reason: str = ""):
        """
        Roll back a payout that definitively failed.

        Transition: RELEASING -> CAPTURED
        """
        self.failure_reason = reason
        self.release_attempt = self.release_attempt + 1

    # ==========================================================================
    # Refund Transitions
    # ==========================================================================

    @transition(
        field=status,
        source=EscrowStatus.CAPTURED,
        target=EscrowStatus.REFUNDING,
    )
    def begin_refund(self):
        """Transition: CAPTURED -> REFUNDING"""

    @transition(
        field=status,
        source=EscrowStatus.REFUNDING,
        target=EscrowStatus.REFUNDED,
    )
    def complete_refund(self, refund_id: str, amount):
        """Transition: REFUNDING -> REFUNDED"""
        self.stripe_refund_id = refund_id
        self.refunded_amount = amount
        self.refunded_at = timezone.now()
        self.failure_reason = ""

    @transition(
        field=status,
        source=EscrowStatus.REFUNDING,
        target=EscrowStatus.CAPTURED,
    )
    def abort_refund(self, reason: str = ""):
        """
        Roll back a refund that definitively failed.

        Transition: REFUNDING -> CAPTURED
        """
        self.failure_reason = reason
        self.refund_attempt = self.refund_attempt + 1

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def is_settled(self) -> bool:
        """True once the funds have left escrow in either direction."""
        return self.status in (EscrowStatus.RELEASED, EscrowStatus.REFUNDED)

    @property
    def payout_in_progress_or_done(self) -> bool:
        return self.status in (EscrowStatus.RELEASING, EscrowStatus.RELEASED)
