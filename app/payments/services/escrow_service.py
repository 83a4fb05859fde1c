"""
Escrow orchestration between shipment lifecycle transitions and Stripe.

EscrowService charges the sender into escrow, releases the payout to the
traveler and refunds the sender. Every operation follows the same
three-phase pattern:

1. Phase 1: In a short transaction, lock the request and escrow rows, check
   the request is still in the status the caller loaded, and persist an
   intent marker (pending / releasing / refunding)
2. Phase 2: Call Stripe outside any transaction, with an idempotency key
   derived from (operation, request id, attempt)
3. Phase 3: In another short transaction, persist the outcome

A Redis lock per request (payments.locks.escrow_lock) keeps two provider
calls for the same request from running at once.

Outcome handling:
    - Retryable Stripe errors mean the outcome is unknown. The marker and the
      attempt number stay, so the next call replays the same idempotency key.
    - Non-retryable errors roll the marker back and advance the attempt.

Usage:
    from payments.services import EscrowService

    result = EscrowService.authorize_and_capture(shipment_request, "pm_card_visa")
    if not result:
        if result.details.get("retryable"):
            ...  # safe to call again
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from payments.exceptions import LockAcquisitionError, StripeError
from payments.locks import escrow_lock
from payments.models import ConnectedAccount, EscrowTransaction
from payments.state_machines import EscrowStatus
from shipments.fees import calculate_fee, from_cents, to_cents

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from shipments.models import ShipmentRequest


# =============================================================================
# Constants
# =============================================================================

OP_CHARGE = "escrow_charge"
OP_CAPTURE = "escrow_capture"
OP_VOID = "escrow_void"
OP_RELEASE = "escrow_release"
OP_REFUND = "escrow_refund"

# Stripe keeps idempotency keys for 24 hours; replays must happen well inside
IDEMPOTENCY_REPLAY_WINDOW = timedelta(hours=23)

REFUND_POLICY_FULL = "full"
REFUND_POLICY_MINUS_FEE = "minus_fee"

# Error codes returned in ServiceResult.error_code
PAYMENT_FAILED = "PAYMENT_FAILED"
PAYMENT_REQUIRES_ACTION = "PAYMENT_REQUIRES_ACTION"
PAYOUT_FAILED = "PAYOUT_FAILED"
NO_PAYOUT_ACCOUNT = "NO_PAYOUT_ACCOUNT"
REFUND_FAILED = "REFUND_FAILED"
ESCROW_PENDING = "ESCROW_PENDING"
LOCK_CONTENTION = "LOCK_CONTENTION"
INVALID_STATE = "INVALID_STATE"
STALE_MARKER = "STALE_MARKER"

# Intermediate statuses the reconciliation sweep settles
RECONCILABLE_STATUSES = (
    EscrowStatus.PENDING,
    EscrowStatus.AUTHORIZED,
    EscrowStatus.RELEASING,
    EscrowStatus.REFUNDING,
)


class EscrowService(BaseService):
    """
    Idempotent escrow operations for a shipment request.

    All three public operations are safe to call repeatedly: a call on an
    already-settled escrow is a no-op success, and a call after an unknown
    outcome resumes with the same idempotency key.

    Usage:
        EscrowService.authorize_and_capture(shipment_request, payment_method_id)
        EscrowService.release(shipment_request)
        EscrowService.refund(shipment_request)
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        cls._stripe_adapter = adapter

    # =========================================================================
    # Charge
    # =========================================================================

    @classmethod
    def authorize_and_capture(
        cls,
        shipment_request: ShipmentRequest,
        payment_method_id: str,
        lock_held: bool = False,
    ) -> ServiceResult[EscrowTransaction]:
        """
        Charge the sender for the request's total price and hold it in escrow.

        Creates (or resumes) the EscrowTransaction, confirms a manual-capture
        PaymentIntent with the given payment method, then captures it.

        Args:
            shipment_request: The request being paid
            payment_method_id: Stripe PaymentMethod to charge
            lock_held: True when the caller already holds escrow_lock for
                this request (the lock is not reentrant)

        Returns:
            ServiceResult with the captured EscrowTransaction, or a failure
            with error_code PAYMENT_FAILED, PAYMENT_REQUIRES_ACTION,
            LOCK_CONTENTION or INVALID_STATE
        """
        return cls._under_lock(
            shipment_request,
            "charge",
            lambda: cls._authorize_and_capture(shipment_request, payment_method_id),
            lock_held,
        )

    @classmethod
    def _authorize_and_capture(
        cls,
        shipment_request: ShipmentRequest,
        payment_method_id: str,
    ) -> ServiceResult[EscrowTransaction]:
        log = cls.get_logger()
        log_context = {"request_id": str(shipment_request.id), "operation": "charge"}

        # Phase 1: persist intent
        with transaction.atomic():
            stale = cls._check_request_unchanged(shipment_request)
            if stale:
                return stale

            escrow = cls._locked_escrow(shipment_request)
            if escrow is None:
                breakdown = calculate_fee(shipment_request.total_price)
                escrow = EscrowTransaction.objects.create(
                    shipment_request=shipment_request,
                    payer_id=shipment_request.sender_id,
                    payee_id=shipment_request.listing.traveler_id,
                    amount=breakdown.total,
                    platform_fee=breakdown.platform_fee,
                    payout_amount=breakdown.payout_amount,
                    currency=shipment_request.currency.lower(),
                    stripe_payment_method_id=payment_method_id,
                )
                log.info("Escrow created", extra={**log_context, "escrow_id": str(escrow.id)})
            elif escrow.status == EscrowStatus.CAPTURED:
                log.info("Escrow already captured", extra=log_context)
                return ServiceResult.success(escrow)
            elif escrow.status == EscrowStatus.FAILED:
                escrow.retry(payment_method_id)
                escrow.save()
            elif escrow.status not in (EscrowStatus.PENDING, EscrowStatus.AUTHORIZED):
                return cls._invalid_state(escrow, "charge")

        # Phase 2 + 3: confirm the hold, then capture it
        if escrow.status == EscrowStatus.PENDING:
            result = cls._create_hold(shipment_request, escrow)
            if not result or result.data.status == EscrowStatus.CAPTURED:
                return result
            escrow = result.data

        return cls._capture_hold(shipment_request, escrow)

    @classmethod
    def _create_hold(
        cls,
        shipment_request: ShipmentRequest,
        escrow: EscrowTransaction,
    ) -> ServiceResult[EscrowTransaction]:
        """
        Create and confirm the PaymentIntent, recording authorized/captured/failed.

        Always uses the payment method stored on the escrow: Stripe only
        replays an idempotent request whose parameters are unchanged, so a
        resumed attempt must repeat the original call exactly.
        """
        log_context = {
            "request_id": str(shipment_request.id),
            "escrow_id": str(escrow.id),
            "attempt": escrow.charge_attempt,
        }
        key = IdempotencyKeyGenerator.generate(
            OP_CHARGE, shipment_request.id, escrow.charge_attempt
        )

        try:
            intent = cls.get_stripe_adapter().create_payment_intent(
                CreatePaymentIntentParams(
                    amount_cents=to_cents(escrow.amount),
                    currency=escrow.currency,
                    idempotency_key=key,
                    payment_method=escrow.stripe_payment_method_id,
                    metadata={
                        "shipment_request_id": str(shipment_request.id),
                        "escrow_id": str(escrow.id),
                    },
                )
            )
        except StripeError as e:
            return cls._charge_error(escrow, e, log_context)

        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status != EscrowStatus.PENDING:
                return ServiceResult.success(escrow)

            if intent.captured:
                escrow.stripe_payment_intent_id = intent.id
                escrow.capture(from_cents(intent.amount_received_cents or intent.amount_cents))
            elif intent.requires_capture:
                escrow.authorize(intent.id)
            else:
                escrow.fail(f"PaymentIntent {intent.id} ended in status {intent.status}")
                escrow.save()
                cls.get_logger().warning(
                    "Payment not authorized",
                    extra={**log_context, "intent_status": intent.status},
                )
                code = (
                    PAYMENT_REQUIRES_ACTION
                    if intent.status == "requires_action"
                    else PAYMENT_FAILED
                )
                return ServiceResult.failure(
                    "Payment could not be authorized",
                    error_code=code,
                    details={"retryable": False, "intent_status": intent.status},
                )
            escrow.save()

        cls.get_logger().info(
            "Payment authorized",
            extra={**log_context, "payment_intent_id": intent.id, "status": escrow.status},
        )
        return ServiceResult.success(escrow)

    @classmethod
    def _capture_hold(
        cls,
        shipment_request: ShipmentRequest,
        escrow: EscrowTransaction,
    ) -> ServiceResult[EscrowTransaction]:
        log_context = {
            "request_id": str(shipment_request.id),
            "escrow_id": str(escrow.id),
            "payment_intent_id": escrow.stripe_payment_intent_id,
        }
        key = IdempotencyKeyGenerator.generate(
            OP_CAPTURE, shipment_request.id, escrow.charge_attempt
        )

        try:
            intent = cls.get_stripe_adapter().capture_payment_intent(
                escrow.stripe_payment_intent_id,
                idempotency_key=key,
            )
        except StripeError as e:
            return cls._charge_error(escrow, e, log_context)

        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == EscrowStatus.AUTHORIZED:
                escrow.capture(from_cents(intent.amount_received_cents or intent.amount_cents))
                escrow.save()

        cls.get_logger().info(
            "Escrow captured",
            extra={**log_context, "amount": str(escrow.captured_amount)},
        )
        return ServiceResult.success(escrow)

    @classmethod
    def _charge_error(
        cls,
        escrow: EscrowTransaction,
        error: StripeError,
        log_context: dict[str, Any],
    ) -> ServiceResult[EscrowTransaction]:
        details = {"retryable": error.is_retryable}
        if error.stripe_code:
            details["stripe_code"] = error.stripe_code

        if error.is_retryable:
            cls.get_logger().warning(
                "Charge outcome unknown, keeping intent marker",
                extra={**log_context, "error_code": error.error_code},
            )
        else:
            with transaction.atomic():
                escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
                if escrow.status in (EscrowStatus.PENDING, EscrowStatus.AUTHORIZED):
                    escrow.fail(error.message)
                    escrow.save()
            cls.get_logger().warning(
                "Charge failed",
                extra={**log_context, "error_code": error.error_code},
            )

        return ServiceResult.failure(
            "Payment could not be completed",
            error_code=PAYMENT_FAILED,
            details=details,
        )

    # =========================================================================
    # Release
    # =========================================================================

    @classmethod
    def release(
        cls,
        shipment_request: ShipmentRequest,
        lock_held: bool = False,
    ) -> ServiceResult[EscrowTransaction]:
        """
        Transfer the payout amount to the traveler's connected account.

        Returns:
            ServiceResult with the released EscrowTransaction, or a failure
            with error_code PAYOUT_FAILED, NO_PAYOUT_ACCOUNT, LOCK_CONTENTION
            or INVALID_STATE
        """
        return cls._under_lock(
            shipment_request,
            "release",
            lambda: cls._release(shipment_request),
            lock_held,
        )

    @classmethod
    def _release(cls, shipment_request: ShipmentRequest) -> ServiceResult[EscrowTransaction]:
        log = cls.get_logger()
        log_context = {"request_id": str(shipment_request.id), "operation": "release"}

        # Phase 1: persist intent
        with transaction.atomic():
            stale = cls._check_request_unchanged(shipment_request)
            if stale:
                return stale

            escrow = cls._locked_escrow(shipment_request)
            if escrow is None:
                return ServiceResult.failure(
                    "No funds are held for this request",
                    error_code=INVALID_STATE,
                    details={"retryable": False},
                )
            if escrow.status == EscrowStatus.RELEASED:
                log.info("Escrow already released", extra=log_context)
                return ServiceResult.success(escrow)
            if escrow.status not in (EscrowStatus.CAPTURED, EscrowStatus.RELEASING):
                return cls._invalid_state(escrow, "release")

            account = ConnectedAccount.objects.filter(user_id=escrow.payee_id).first()
            if account is None or not account.is_ready_for_payouts:
                log.warning(
                    "Traveler has no payout-ready account",
                    extra={**log_context, "escrow_id": str(escrow.id)},
                )
                return ServiceResult.failure(
                    "Traveler cannot receive payouts yet",
                    error_code=NO_PAYOUT_ACCOUNT,
                    details={"retryable": False},
                )

            if escrow.status == EscrowStatus.CAPTURED:
                escrow.begin_release()
                escrow.save()

        # Phase 2: transfer
        log_context.update(
            {
                "escrow_id": str(escrow.id),
                "attempt": escrow.release_attempt,
                "destination_account": account.stripe_account_id,
            }
        )
        key = IdempotencyKeyGenerator.generate(
            OP_RELEASE, shipment_request.id, escrow.release_attempt
        )
        try:
            transfer = cls.get_stripe_adapter().create_transfer(
                amount_cents=to_cents(escrow.payout_amount),
                destination_account=account.stripe_account_id,
                idempotency_key=key,
                currency=escrow.currency,
                metadata={
                    "shipment_request_id": str(shipment_request.id),
                    "escrow_id": str(escrow.id),
                },
            )
        except StripeError as e:
            details = {"retryable": e.is_retryable}
            if e.stripe_code:
                details["stripe_code"] = e.stripe_code
            if e.is_retryable:
                log.warning(
                    "Payout outcome unknown, keeping intent marker",
                    extra={**log_context, "error_code": e.error_code},
                )
            else:
                with transaction.atomic():
                    escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
                    if escrow.status == EscrowStatus.RELEASING:
                        escrow.abort_release(e.message)
                        escrow.save()
                log.error(
                    "Payout failed",
                    extra={**log_context, "error_code": e.error_code},
                )
            return ServiceResult.failure(
                "Payout to the traveler could not be completed",
                error_code=PAYOUT_FAILED,
                details=details,
            )

        # Phase 3: persist outcome
        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == EscrowStatus.RELEASING:
                escrow.complete_release(transfer.id)
                escrow.save()

        log.info(
            "Escrow released",
            extra={**log_context, "stripe_transfer_id": transfer.id},
        )
        return ServiceResult.success(escrow)

    # =========================================================================
    # Refund
    # =========================================================================

    @classmethod
    def refund(
        cls,
        shipment_request: ShipmentRequest,
        lock_held: bool = False,
    ) -> ServiceResult[EscrowTransaction | None]:
        """
        Return the sender's money.

        The refunded amount follows ESCROW_REFUND_POLICY: "full" refunds the
        total price, "minus_fee" keeps the platform fee. A hold that was
        never captured is cancelled instead. Nothing to refund (no escrow, or
        a failed charge) is a success with whatever escrow exists.

        Returns:
            ServiceResult with the EscrowTransaction (or None), or a failure
            with error_code REFUND_FAILED, ESCROW_PENDING, LOCK_CONTENTION or
            INVALID_STATE
        """
        return cls._under_lock(
            shipment_request,
            "refund",
            lambda: cls._refund(shipment_request),
            lock_held,
        )

    @classmethod
    def _refund(cls, shipment_request: ShipmentRequest) -> ServiceResult[EscrowTransaction | None]:
        log = cls.get_logger()
        log_context = {"request_id": str(shipment_request.id), "operation": "refund"}

        # Phase 1: persist intent
        with transaction.atomic():
            stale = cls._check_request_unchanged(shipment_request)
            if stale:
                return stale

            escrow = cls._locked_escrow(shipment_request)
            if escrow is None or escrow.status in (
                EscrowStatus.FAILED,
                EscrowStatus.REFUNDED,
            ):
                log.info(
                    "Nothing to refund",
                    extra={**log_context, "status": getattr(escrow, "status", None)},
                )
                return ServiceResult.success(escrow)
            if escrow.status == EscrowStatus.PENDING:
                return ServiceResult.failure(
                    "The payment outcome is not known yet",
                    error_code=ESCROW_PENDING,
                    details={"retryable": True},
                )
            if escrow.status == EscrowStatus.CAPTURED:
                escrow.begin_refund()
                escrow.save()
            elif escrow.status not in (EscrowStatus.AUTHORIZED, EscrowStatus.REFUNDING):
                return cls._invalid_state(escrow, "refund")

        if escrow.status == EscrowStatus.AUTHORIZED:
            return cls._void_hold(shipment_request, escrow)

        # Phase 2: refund
        amount = cls._refund_amount(escrow)
        log_context.update(
            {
                "escrow_id": str(escrow.id),
                "attempt": escrow.refund_attempt,
                "amount": str(amount),
            }
        )
        key = IdempotencyKeyGenerator.generate(
            OP_REFUND, shipment_request.id, escrow.refund_attempt
        )
        try:
            refund = cls.get_stripe_adapter().create_refund(
                payment_intent_id=escrow.stripe_payment_intent_id,
                idempotency_key=key,
                amount_cents=to_cents(amount),
                reason="requested_by_customer",
                metadata={
                    "shipment_request_id": str(shipment_request.id),
                    "escrow_id": str(escrow.id),
                },
            )
        except StripeError as e:
            return cls._refund_error(
                escrow,
                e.message,
                log_context,
                retryable=e.is_retryable,
                stripe_code=e.stripe_code,
            )

        if refund.status in ("failed", "canceled"):
            return cls._refund_error(
                escrow,
                f"Refund {refund.id} ended in status {refund.status}",
                log_context,
            )

        # Phase 3: persist outcome
        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == EscrowStatus.REFUNDING:
                escrow.complete_refund(refund.id, from_cents(refund.amount_cents))
                escrow.save()

        log.info("Escrow refunded", extra={**log_context, "stripe_refund_id": refund.id})
        return ServiceResult.success(escrow)

    @classmethod
    def _void_hold(
        cls,
        shipment_request: ShipmentRequest,
        escrow: EscrowTransaction,
    ) -> ServiceResult[EscrowTransaction]:
        """Cancel an authorized but uncaptured PaymentIntent."""
        log_context = {
            "request_id": str(shipment_request.id),
            "escrow_id": str(escrow.id),
            "payment_intent_id": escrow.stripe_payment_intent_id,
        }
        key = IdempotencyKeyGenerator.generate(
            OP_VOID, shipment_request.id, escrow.charge_attempt
        )
        try:
            cls.get_stripe_adapter().cancel_payment_intent(
                escrow.stripe_payment_intent_id,
                idempotency_key=key,
            )
        except StripeError as e:
            cls.get_logger().warning(
                "Could not cancel payment hold",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "The payment hold could not be cancelled",
                error_code=REFUND_FAILED,
                details={"retryable": e.is_retryable},
            )

        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == EscrowStatus.AUTHORIZED:
                escrow.fail("Hold cancelled before capture")
                escrow.save()

        cls.get_logger().info("Payment hold cancelled", extra=log_context)
        return ServiceResult.success(escrow)

    @classmethod
    def _refund_error(
        cls,
        escrow: EscrowTransaction,
        reason: str,
        log_context: dict[str, Any],
        retryable: bool = False,
        stripe_code: str | None = None,
    ) -> ServiceResult[EscrowTransaction]:
        if retryable:
            cls.get_logger().warning(
                "Refund outcome unknown, keeping intent marker", extra=log_context
            )
        else:
            with transaction.atomic():
                escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
                if escrow.status == EscrowStatus.REFUNDING:
                    escrow.abort_refund(reason)
                    escrow.save()
            cls.get_logger().error("Refund failed", extra={**log_context, "reason": reason})

        details: dict[str, Any] = {"retryable": retryable}
        if stripe_code:
            details["stripe_code"] = stripe_code
        return ServiceResult.failure(
            "Refund to the sender could not be completed",
            error_code=REFUND_FAILED,
            details=details,
        )

    @staticmethod
    def _refund_amount(escrow: EscrowTransaction):
        policy = getattr(settings, "ESCROW_REFUND_POLICY", REFUND_POLICY_FULL)
        if policy == REFUND_POLICY_MINUS_FEE:
            return escrow.payout_amount
        return escrow.amount

    # =========================================================================
    # Reconciliation
    # =========================================================================

    @classmethod
    def reconcile(cls, escrow_id) -> ServiceResult[EscrowTransaction]:
        """
        Settle an escrow left in an intermediate status by an unknown outcome.

        - PENDING: replay the create with the same idempotency key, which
          returns the PaymentIntent Stripe already holds for it. Past Stripe's
          idempotency window the escrow is marked failed: any hold on the
          card was never captured and lapses on its own.
        - AUTHORIZED: query the PaymentIntent and record the capture, finish
          it, or mark the escrow failed if Stripe cancelled the hold.
        - RELEASING / REFUNDING: replay the transfer or refund with the same
          idempotency key. Past the window a replay could move money twice,
          so the marker stays and the escrow is flagged for manual review.

        Returns:
            ServiceResult with the EscrowTransaction, or a failure whose
            details["retryable"] says whether a later run can settle it
        """
        shipment_request = (
            EscrowTransaction.objects.select_related("shipment_request")
            .get(pk=escrow_id)
            .shipment_request
        )
        return cls._under_lock(
            shipment_request,
            "reconcile",
            lambda: cls._reconcile(escrow_id),
            lock_held=False,
        )

    @classmethod
    def _reconcile(cls, escrow_id) -> ServiceResult[EscrowTransaction]:
        escrow = EscrowTransaction.objects.select_related("shipment_request").get(pk=escrow_id)
        shipment_request = escrow.shipment_request
        if escrow.status not in RECONCILABLE_STATUSES:
            return ServiceResult.success(escrow)

        if escrow.status == EscrowStatus.AUTHORIZED:
            return cls._settle_hold(shipment_request, escrow)

        past_window = escrow.updated_at < timezone.now() - IDEMPOTENCY_REPLAY_WINDOW
        if escrow.status == EscrowStatus.PENDING:
            if past_window:
                return cls._expire_pending(escrow)
            return cls._create_hold(shipment_request, escrow)

        if past_window:
            cls.get_logger().error(
                "Escrow marker outlived the idempotency window, needs manual review",
                extra={"escrow_id": str(escrow.id), "status": escrow.status},
            )
            return ServiceResult.failure(
                "The outcome can no longer be replayed safely",
                error_code=STALE_MARKER,
                details={"retryable": False, "escrow_status": escrow.status},
            )

        if escrow.status == EscrowStatus.RELEASING:
            return cls._release(shipment_request)
        return cls._refund(shipment_request)

    @classmethod
    def _settle_hold(
        cls,
        shipment_request: ShipmentRequest,
        escrow: EscrowTransaction,
    ) -> ServiceResult[EscrowTransaction]:
        """Resolve an authorized escrow from the PaymentIntent's current status."""
        log_context = {
            "request_id": str(shipment_request.id),
            "escrow_id": str(escrow.id),
            "payment_intent_id": escrow.stripe_payment_intent_id,
        }
        try:
            intent = cls.get_stripe_adapter().retrieve_payment_intent(
                escrow.stripe_payment_intent_id
            )
        except StripeError as e:
            cls.get_logger().warning(
                "Could not query payment status",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "The payment status could not be queried",
                error_code=PAYMENT_FAILED,
                details={"retryable": e.is_retryable},
            )

        if intent.requires_capture:
            return cls._capture_hold(shipment_request, escrow)

        if not intent.captured and intent.status != "canceled":
            cls.get_logger().info(
                "Payment still settling",
                extra={**log_context, "intent_status": intent.status},
            )
            return ServiceResult.failure(
                "The payment outcome is not known yet",
                error_code=ESCROW_PENDING,
                details={"retryable": True, "intent_status": intent.status},
            )

        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == EscrowStatus.AUTHORIZED:
                if intent.captured:
                    escrow.capture(
                        from_cents(intent.amount_received_cents or intent.amount_cents)
                    )
                else:
                    escrow.fail(f"PaymentIntent {intent.id} was cancelled")
                escrow.save()

        cls.get_logger().info(
            "Authorized escrow reconciled",
            extra={**log_context, "intent_status": intent.status, "status": escrow.status},
        )
        return ServiceResult.success(escrow)

    @classmethod
    def _expire_pending(cls, escrow: EscrowTransaction) -> ServiceResult[EscrowTransaction]:
        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == EscrowStatus.PENDING:
                escrow.fail("Charge outcome unknown past the idempotency window")
                escrow.save()
        cls.get_logger().warning(
            "Stale pending escrow marked failed",
            extra={"escrow_id": str(escrow.id)},
        )
        return ServiceResult.success(escrow)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _under_lock(
        cls,
        shipment_request: ShipmentRequest,
        operation: str,
        func: Callable[[], ServiceResult],
        lock_held: bool,
    ) -> ServiceResult:
        if lock_held:
            return func()
        try:
            with escrow_lock(shipment_request.id):
                return func()
        except LockAcquisitionError as e:
            return cls._lock_contention(shipment_request, operation, e)

    @staticmethod
    def _locked_escrow(shipment_request: ShipmentRequest) -> EscrowTransaction | None:
        return (
            EscrowTransaction.objects.select_for_update()
            .filter(shipment_request_id=shipment_request.pk)
            .first()
        )

    @classmethod
    def _check_request_unchanged(
        cls, shipment_request: ShipmentRequest
    ) -> ServiceResult | None:
        """
        Lock the request row and verify it is still in the status the caller
        loaded. Returns a failure result if it moved on, None otherwise.

        Must be called inside a transaction.
        """
        current = (
            type(shipment_request)
            .objects.select_for_update()
            .filter(pk=shipment_request.pk)
            .values_list("status", flat=True)
            .first()
        )
        if current == shipment_request.status:
            return None

        cls.get_logger().info(
            "Request changed before escrow operation",
            extra={
                "request_id": str(shipment_request.id),
                "expected_status": shipment_request.status,
                "current_status": current,
            },
        )
        return ServiceResult.failure(
            "The request changed while processing the payment",
            error_code=INVALID_STATE,
            details={"retryable": False, "current_status": current},
        )

    @classmethod
    def _invalid_state(cls, escrow: EscrowTransaction, operation: str) -> ServiceResult:
        cls.get_logger().info(
            "Escrow not in a valid state",
            extra={"escrow_id": str(escrow.id), "operation": operation, "status": escrow.status},
        )
        return ServiceResult.failure(
            f"Cannot {operation} an escrow in status '{escrow.status}'",
            error_code=INVALID_STATE,
            details={"retryable": False, "escrow_status": escrow.status},
        )

    @classmethod
    def _lock_contention(
        cls,
        shipment_request: ShipmentRequest,
        operation: str,
        error: LockAcquisitionError,
    ) -> ServiceResult:
        cls.get_logger().warning(
            "Escrow operation already in progress",
            extra={
                "request_id": str(shipment_request.id),
                "operation": operation,
                "lock_key": error.details.get("key"),
            },
        )
        return ServiceResult.failure(
            "Another payment operation is in progress for this request",
            error_code=LOCK_CONTENTION,
            details={"retryable": True},
        )
