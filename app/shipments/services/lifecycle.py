"""
Request lifecycle: the single entry point for changing a request's status.

Every actor action goes through LifecycleService.transition (or
confirm_delivery). The legal edges live on the ShipmentRequest model as
django-fsm transitions; this service adds who may take them, the escrow side
effects and the error mapping.

Guard order for every action:
    1. RequestNotFoundError    request does not exist, or the actor is neither
                               a participant nor staff
    2. TerminalStateError      request is confirmed or cancelled
    3. DisputePendingError     request is frozen by a dispute
    4. ActionNotAllowedError   actor has no role for the action
    5. InvalidTransitionError  status is not a legal source
    6. TransitionConflictError another actor won the compare-and-swap

Payment side effects never run inside a database transaction: the escrow
operation completes first, then the status change is written with a
compare-and-swap. Pay and cancel hold the request's escrow lock from the
payment call through that write, so a refund can never land between a
capture and the paid status (or the reverse).

Usage:
    from shipments.services import LifecycleService

    LifecycleService.transition(request_id, traveler.id, "accept")
    LifecycleService.transition(request_id, sender.id, "pay", {"payment_method_id": "pm_xxx"})
    LifecycleService.confirm_delivery(request_id, sender.id, "042917")
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django_fsm import ConcurrentTransition, can_proceed

from core.exceptions import ValidationError
from core.services import BaseService

from payments.exceptions import LockAcquisitionError
from payments.locks import escrow_lock
from payments.services import EscrowService
from payments.services.escrow_service import INVALID_STATE, LOCK_CONTENTION
from shipments import selectors
from shipments.confirmation import codes_match, generate_code, get_max_attempts, lockout_remaining
from shipments.exceptions import (
    ActionNotAllowedError,
    ConfirmationRateLimitedError,
    DisputePendingError,
    InvalidConfirmationCodeError,
    InvalidTransitionError,
    PaymentFailedError,
    PayoutFailedError,
    RefundFailedError,
    TerminalStateError,
    TransitionConflictError,
)
from shipments.models import ShipmentRequest
from shipments.services.listings import ListingService
from shipments.signals import send_transitioned_on_commit
from shipments.states import TERMINAL_STATUSES, CancellationReason, RequestStatus

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

    from core.services import ServiceResult


# =============================================================================
# Actions
# =============================================================================

ACCEPT = "accept"
REJECT = "reject"
CANCEL = "cancel"
PAY = "pay"
MARK_COLLECTED = "mark_collected"
MARK_IN_TRANSIT = "mark_in_transit"
MARK_DELIVERED = "mark_delivered"
CONFIRM = "confirm"

SENDER = "sender"
TRAVELER = "traveler"

# Who may take each action
ACTION_ROLES: dict[str, frozenset[str]] = {
    ACCEPT: frozenset({TRAVELER}),
    REJECT: frozenset({TRAVELER}),
    CANCEL: frozenset({SENDER, TRAVELER}),
    PAY: frozenset({SENDER}),
    MARK_COLLECTED: frozenset({TRAVELER}),
    MARK_IN_TRANSIT: frozenset({TRAVELER}),
    MARK_DELIVERED: frozenset({TRAVELER}),
    CONFIRM: frozenset({SENDER}),
}

# Model transition behind each action
ACTION_METHODS: dict[str, str] = {
    ACCEPT: "accept",
    REJECT: "reject",
    CANCEL: "cancel",
    PAY: "mark_paid",
    MARK_COLLECTED: "mark_collected",
    MARK_IN_TRANSIT: "mark_in_transit",
    MARK_DELIVERED: "mark_delivered",
    CONFIRM: "confirm",
}

ACTIONS = frozenset(ACTION_ROLES)


class LifecycleService(BaseService):
    """
    Actor-gated status changes for shipment requests.

    Each handler returns the saved ShipmentRequest or raises one of the
    shipments.exceptions errors.
    """

    @classmethod
    def transition(
        cls,
        request_id,
        actor_id,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> ShipmentRequest:
        """Load the request and actor, then apply the action."""
        cls._validate_action(action)
        shipment_request = selectors.get_request(request_id)
        actor = selectors.get_user(actor_id)
        return cls.apply(shipment_request, actor, action, payload)

    @classmethod
    def apply(
        cls,
        shipment_request: ShipmentRequest,
        actor,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> ShipmentRequest:
        """
        Apply an action to an already loaded request.

        The status the request was loaded with is the expected status of the
        compare-and-swap: a request changed by someone else since loading
        fails with TransitionConflictError.
        """
        payload = payload or {}
        cls._validate_action(action)
        if action == CONFIRM:
            return cls._confirm(shipment_request, actor, payload.get("code"))

        cls._check_allowed(shipment_request, actor, action)
        handler = getattr(cls, f"_{action}")
        return handler(shipment_request, actor, payload)

    @classmethod
    def confirm_delivery(cls, request_id, sender_id, code: str) -> ShipmentRequest:
        """
        Confirm delivery with the sender's code and release the payout.

        Raises:
            InvalidConfirmationCodeError: Code does not match; status unchanged
            ConfirmationRateLimitedError: Too many wrong codes recently
            PayoutFailedError: Release failed; status stays delivered
        """
        shipment_request = selectors.get_request(request_id)
        sender = selectors.get_user(sender_id)
        return cls._confirm(shipment_request, sender, code)

    @classmethod
    def expire(cls, shipment_request: ShipmentRequest) -> ShipmentRequest:
        """Cancel a request the traveler never answered (system action)."""
        from_status = shipment_request.status
        if from_status != RequestStatus.PENDING:
            raise InvalidTransitionError(
                f"Only pending requests expire, not '{from_status}'",
                details={"request_id": str(shipment_request.id), "status": from_status},
            )
        with transaction.atomic():
            shipment_request.cancel(CancellationReason.EXPIRED)
            cls.save_transition(shipment_request, "expire")
            send_transitioned_on_commit(
                shipment_request, "expire", from_status, shipment_request.status
            )
        return shipment_request

    # =========================================================================
    # Guards
    # =========================================================================

    @staticmethod
    def _validate_action(action: str) -> None:
        if action not in ACTIONS:
            raise ValidationError(
                f"Unknown action '{action}'",
                error_code="UNKNOWN_ACTION",
                details={"action": action, "allowed": sorted(ACTIONS)},
            )

    @classmethod
    def _check_allowed(cls, shipment_request: ShipmentRequest, actor, action: str) -> None:
        selectors.check_visible(shipment_request, actor)
        if shipment_request.status in TERMINAL_STATUSES:
            raise TerminalStateError(
                f"Request is {shipment_request.status}; no further changes are possible",
                details={"request_id": str(shipment_request.id), "status": shipment_request.status},
            )
        if shipment_request.status == RequestStatus.DISPUTED:
            raise DisputePendingError(
                "Request is frozen until the dispute is resolved",
                details={"request_id": str(shipment_request.id)},
            )

        roles = set()
        if shipment_request.is_sender(actor):
            roles.add(SENDER)
        if shipment_request.is_traveler(actor):
            roles.add(TRAVELER)
        if not roles & ACTION_ROLES[action]:
            raise ActionNotAllowedError(
                f"You cannot {action.replace('_', ' ')} this request",
                details={"request_id": str(shipment_request.id), "action": action},
            )

        method = getattr(shipment_request, ACTION_METHODS[action])
        if not can_proceed(method):
            raise InvalidTransitionError(
                f"Cannot {action.replace('_', ' ')} a request in status '{shipment_request.status}'",
                details={
                    "request_id": str(shipment_request.id),
                    "action": action,
                    "status": shipment_request.status,
                },
            )

    @classmethod
    def save_transition(cls, shipment_request: ShipmentRequest, action: str) -> None:
        """Write the new status only if nobody changed it since it was loaded."""
        try:
            shipment_request.save()
        except ConcurrentTransition as e:
            cls.get_logger().info(
                "Lost transition race",
                extra={"request_id": str(shipment_request.id), "action": action},
            )
            raise TransitionConflictError(
                "The request was changed by someone else; reload and try again",
                details={"request_id": str(shipment_request.id), "action": action},
            ) from e

    @classmethod
    @contextmanager
    def _escrow_guard(
        cls, shipment_request: ShipmentRequest, action: str
    ) -> Generator[None, None, None]:
        """
        Hold the request's escrow lock for the block.

        Escrow calls made inside must pass lock_held=True; the lock is not
        reentrant.
        """
        lock = escrow_lock(shipment_request.id)
        try:
            lock.acquire()
        except LockAcquisitionError as e:
            cls.get_logger().info(
                "Escrow operation already in progress",
                extra={"request_id": str(shipment_request.id), "action": action},
            )
            raise TransitionConflictError(
                "Another payment operation is in progress for this request",
                details={"request_id": str(shipment_request.id), "action": action},
            ) from e
        try:
            yield
        finally:
            lock.release()

    # =========================================================================
    # Handlers
    # =========================================================================

    @classmethod
    def _accept(cls, shipment_request: ShipmentRequest, actor, payload) -> ShipmentRequest:
        from_status = shipment_request.status
        with transaction.atomic():
            shipment_request.accept()
            cls.save_transition(shipment_request, ACCEPT)
            ListingService.consume_capacity(shipment_request.listing_id, shipment_request.weight_kg)
            send_transitioned_on_commit(
                shipment_request, ACCEPT, from_status, shipment_request.status, actor.pk
            )
        return shipment_request

    @classmethod
    def _reject(cls, shipment_request: ShipmentRequest, actor, payload) -> ShipmentRequest:
        from_status = shipment_request.status
        with transaction.atomic():
            shipment_request.reject()
            cls.save_transition(shipment_request, REJECT)
            send_transitioned_on_commit(
                shipment_request, REJECT, from_status, shipment_request.status, actor.pk
            )
        return shipment_request

    @classmethod
    def _cancel(cls, shipment_request: ShipmentRequest, actor, payload) -> ShipmentRequest:
        """
        Cancel a pending or accepted request.

        Any money already taken for an accepted request is returned before
        the status flips; if that fails the request stays accepted. The
        escrow lock is held from the refund through the status write.
        """
        if shipment_request.status != RequestStatus.ACCEPTED:
            return cls._write_cancel(shipment_request, actor)

        with cls._escrow_guard(shipment_request, CANCEL):
            result = EscrowService.refund(shipment_request, lock_held=True)
            if not result:
                cls.raise_escrow_failure(result, shipment_request, RefundFailedError)
            return cls._write_cancel(shipment_request, actor)

    @classmethod
    def _write_cancel(cls, shipment_request: ShipmentRequest, actor) -> ShipmentRequest:
        from_status = shipment_request.status
        reason = (
            CancellationReason.CANCELLED_BY_SENDER
            if shipment_request.is_sender(actor)
            else CancellationReason.CANCELLED_BY_TRAVELER
        )
        with transaction.atomic():
            shipment_request.cancel(reason)
            cls.save_transition(shipment_request, CANCEL)
            if from_status == RequestStatus.ACCEPTED:
                ListingService.restore_capacity(
                    shipment_request.listing_id, shipment_request.weight_kg
                )
            send_transitioned_on_commit(
                shipment_request, CANCEL, from_status, shipment_request.status, actor.pk
            )
        return shipment_request

    @classmethod
    def _pay(cls, shipment_request: ShipmentRequest, actor, payload) -> ShipmentRequest:
        """
        Charge the sender into escrow, then mark the request paid.

        The escrow lock is held from the charge through the status write, so
        a concurrent cancel cannot refund in between. If the status write
        still loses a race after the money was captured, the capture is
        refunded and the caller gets TransitionConflictError.
        """
        payment_method_id = payload.get("payment_method_id")
        if not payment_method_id:
            raise ValidationError(
                "payment_method_id is required",
                details={"field": "payment_method_id"},
            )

        with cls._escrow_guard(shipment_request, PAY):
            result = EscrowService.authorize_and_capture(
                shipment_request, payment_method_id, lock_held=True
            )
            if not result:
                cls.raise_escrow_failure(result, shipment_request, PaymentFailedError)
            escrow = result.data

            from_status = shipment_request.status
            try:
                with transaction.atomic():
                    shipment_request.mark_paid(
                        generate_code(), escrow.platform_fee, escrow.payout_amount
                    )
                    cls.save_transition(shipment_request, PAY)
                    send_transitioned_on_commit(
                        shipment_request, PAY, from_status, shipment_request.status, actor.pk
                    )
            except TransitionConflictError:
                cls._compensate_capture(shipment_request)
                raise

        cls.get_logger().info(
            "Request paid",
            extra={
                "request_id": str(shipment_request.id),
                "escrow_id": str(escrow.id),
                "amount": str(escrow.amount),
            },
        )
        return shipment_request

    @classmethod
    def _compensate_capture(cls, shipment_request: ShipmentRequest) -> None:
        """Refund a capture whose paid status was never written. Caller holds the lock."""
        current = ShipmentRequest.objects.get(pk=shipment_request.pk)
        result = EscrowService.refund(current, lock_held=True)
        log_extra = {
            "request_id": str(shipment_request.id),
            "current_status": current.status,
        }
        if result:
            cls.get_logger().error("Captured payment refunded after lost race", extra=log_extra)
        else:
            cls.get_logger().error(
                "Captured payment could not be refunded after lost race",
                extra={**log_extra, "error_code": result.error_code},
            )

    @classmethod
    def _mark_collected(cls, shipment_request, actor, payload) -> ShipmentRequest:
        return cls._simple_transition(shipment_request, actor, MARK_COLLECTED)

    @classmethod
    def _mark_in_transit(cls, shipment_request, actor, payload) -> ShipmentRequest:
        return cls._simple_transition(shipment_request, actor, MARK_IN_TRANSIT)

    @classmethod
    def _mark_delivered(cls, shipment_request, actor, payload) -> ShipmentRequest:
        return cls._simple_transition(shipment_request, actor, MARK_DELIVERED)

    @classmethod
    def _simple_transition(cls, shipment_request, actor, action: str) -> ShipmentRequest:
        from_status = shipment_request.status
        with transaction.atomic():
            getattr(shipment_request, action)()
            cls.save_transition(shipment_request, action)
            send_transitioned_on_commit(
                shipment_request, action, from_status, shipment_request.status, actor.pk
            )
        return shipment_request

    @classmethod
    def _confirm(cls, shipment_request: ShipmentRequest, actor, code) -> ShipmentRequest:
        cls._check_allowed(shipment_request, actor, CONFIRM)

        retry_after = lockout_remaining(
            shipment_request.failed_confirmation_attempts,
            shipment_request.last_failed_confirmation_at,
        )
        if retry_after:
            raise ConfirmationRateLimitedError(
                "Too many wrong codes; try again later",
                details={"request_id": str(shipment_request.id), "retry_after": retry_after},
            )

        if not codes_match(shipment_request.confirmation_code, code):
            attempts = cls._record_failed_attempt(shipment_request)
            raise InvalidConfirmationCodeError(
                "The confirmation code is not correct",
                details={
                    "request_id": str(shipment_request.id),
                    "attempts_remaining": max(0, get_max_attempts() - attempts),
                },
            )

        result = EscrowService.release(shipment_request)
        if not result:
            cls.raise_escrow_failure(result, shipment_request, PayoutFailedError)

        from_status = shipment_request.status
        with transaction.atomic():
            shipment_request.confirm()
            cls.save_transition(shipment_request, CONFIRM)
            send_transitioned_on_commit(
                shipment_request, CONFIRM, from_status, shipment_request.status, actor.pk
            )
        return shipment_request

    @classmethod
    def _record_failed_attempt(cls, shipment_request: ShipmentRequest) -> int:
        ShipmentRequest.objects.filter(pk=shipment_request.pk).update(
            failed_confirmation_attempts=F("failed_confirmation_attempts") + 1,
            last_failed_confirmation_at=timezone.now(),
        )
        attempts = (
            ShipmentRequest.objects.filter(pk=shipment_request.pk)
            .values_list("failed_confirmation_attempts", flat=True)
            .get()
        )
        cls.get_logger().warning(
            "Wrong confirmation code",
            extra={"request_id": str(shipment_request.id), "failed_attempts": attempts},
        )
        return attempts

    # =========================================================================
    # Escrow failures
    # =========================================================================

    @classmethod
    def raise_escrow_failure(
        cls,
        result: ServiceResult,
        shipment_request: ShipmentRequest,
        error_class: type,
    ) -> None:
        """
        Turn a failed escrow result into the matching exception.

        A request that changed under the escrow operation, or a payment
        operation already running for it, is a lost race.
        """
        lost_race = result.error_code == LOCK_CONTENTION or (
            result.error_code == INVALID_STATE and "current_status" in result.details
        )
        if lost_race:
            raise TransitionConflictError(
                result.error or "Another operation is in progress for this request",
                details={"request_id": str(shipment_request.id), **result.details},
            )
        raise error_class(
            result.error or "Payment operation failed",
            details={"request_id": str(shipment_request.id), **result.details},
        )
