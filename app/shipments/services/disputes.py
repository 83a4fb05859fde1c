"""
Dispute handling: freeze a paid request and apply an administrator's outcome.

Opening a dispute locks the request row and refuses once a payout has
started, so a dispute and a payout release can never both go through.
Resolving runs the escrow action first (refund or release) and only then
moves the request to its terminal status.
"""

from __future__ import annotations

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService

from payments.models import EscrowTransaction
from payments.services import EscrowService
from payments.state_machines import EscrowStatus
from shipments import selectors
from shipments.exceptions import (
    ActionNotAllowedError,
    AlreadyDisputedError,
    InvalidTransitionError,
    PayoutFailedError,
    RefundFailedError,
    TerminalStateError,
    TransitionConflictError,
)
from shipments.models import Dispute, ShipmentRequest
from shipments.services.lifecycle import LifecycleService
from shipments.signals import send_transitioned_on_commit
from shipments.states import (
    DISPUTABLE_STATUSES,
    TERMINAL_STATUSES,
    DisputeResolution,
    DisputeStatus,
    RequestStatus,
)

MAX_REASON_LENGTH = 500


class DisputeService(BaseService):
    """
    Usage:
        dispute = DisputeService.open_dispute(request_id, sender.id, "Parcel never arrived")
        DisputeService.resolve_dispute(request_id, admin.id, "refund")
    """

    @classmethod
    def open_dispute(cls, request_id, actor_id, reason: str) -> Dispute:
        """
        Open the request's one dispute and freeze it.

        Raises:
            ValidationError: Empty or too long reason
            RequestNotFoundError: Unknown request, or the actor is neither a
                participant nor staff
            AlreadyDisputedError: A dispute already exists
            TerminalStateError: Request is confirmed or cancelled
            ActionNotAllowedError: Actor is not the sender or traveler
            InvalidTransitionError: Request is not paid yet
            ConflictError: The payout is already being released
            TransitionConflictError: Request changed concurrently
        """
        reason = (reason or "").strip()
        if not reason or len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(
                f"reason must be 1 to {MAX_REASON_LENGTH} characters",
                details={"length": len(reason)},
            )

        shipment_request = selectors.get_request(request_id)
        actor = selectors.get_user(actor_id)
        selectors.check_visible(shipment_request, actor)
        log_context = {"request_id": str(shipment_request.id), "actor_id": actor.pk}

        if Dispute.objects.filter(shipment_request=shipment_request).exists():
            raise AlreadyDisputedError(
                "A dispute was already opened for this request",
                details={"request_id": str(shipment_request.id)},
            )
        if shipment_request.status in TERMINAL_STATUSES:
            raise TerminalStateError(
                f"Request is {shipment_request.status}; it can no longer be disputed",
                details={"request_id": str(shipment_request.id), "status": shipment_request.status},
            )
        if not shipment_request.is_participant(actor):
            raise ActionNotAllowedError(
                "Only the sender or the traveler can open a dispute",
                details={"request_id": str(shipment_request.id)},
            )
        if shipment_request.status not in DISPUTABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot dispute a request in status '{shipment_request.status}'",
                details={"request_id": str(shipment_request.id), "status": shipment_request.status},
            )

        from_status = shipment_request.status
        with transaction.atomic():
            # Serializes against the escrow release, which locks this row too
            ShipmentRequest.objects.select_for_update().filter(pk=shipment_request.pk).first()
            payout_started = EscrowTransaction.objects.filter(
                shipment_request=shipment_request,
                status__in=[EscrowStatus.RELEASING, EscrowStatus.RELEASED],
            ).exists()
            if payout_started:
                raise ConflictError(
                    "The payout for this request is already being released",
                    error_code="PAYOUT_IN_PROGRESS",
                    details={"request_id": str(shipment_request.id)},
                )

            shipment_request.open_dispute()
            LifecycleService.save_transition(shipment_request, "open_dispute")
            try:
                with transaction.atomic():
                    dispute = Dispute.objects.create(
                        shipment_request=shipment_request,
                        raised_by=actor,
                        reason=reason,
                        previous_status=from_status,
                    )
            except IntegrityError as e:
                raise AlreadyDisputedError(
                    "A dispute was already opened for this request",
                    details={"request_id": str(shipment_request.id)},
                ) from e
            send_transitioned_on_commit(
                shipment_request, "open_dispute", from_status, shipment_request.status, actor.pk
            )

        cls.get_logger().info(
            "Dispute opened",
            extra={**log_context, "dispute_id": str(dispute.id), "previous_status": from_status},
        )
        return dispute

    @classmethod
    def resolve_dispute(
        cls,
        request_id,
        admin_id,
        resolution: str,
        note: str = "",
    ) -> ShipmentRequest:
        """
        Apply an administrator's decision.

        refund: the sender is refunded and the request is cancelled.
        release: the traveler is paid out and the request is confirmed.

        Raises:
            ValidationError: resolution is not "refund" or "release"
            RequestNotFoundError / NotFoundError: Unknown request, admin or
                dispute, or the actor is neither staff nor a participant
            ActionNotAllowedError: A participant who is not staff
            TerminalStateError: Dispute already resolved
            RefundFailedError / PayoutFailedError: Escrow action failed; the
                dispute stays open and the call can be repeated
        """
        if resolution not in DisputeResolution.values:
            raise ValidationError(
                f"resolution must be one of {', '.join(DisputeResolution.values)}",
                details={"resolution": resolution},
            )

        shipment_request = selectors.get_request(request_id)
        admin = selectors.get_user(admin_id)
        selectors.check_visible(shipment_request, admin)
        if not admin.is_staff:
            raise ActionNotAllowedError(
                "Only administrators can resolve disputes",
                details={"request_id": str(shipment_request.id)},
            )

        dispute = Dispute.objects.filter(shipment_request=shipment_request).first()
        if dispute is None:
            raise NotFoundError(
                "This request has no dispute",
                error_code="DISPUTE_NOT_FOUND",
                details={"request_id": str(shipment_request.id)},
            )
        if not dispute.is_open or shipment_request.status in TERMINAL_STATUSES:
            raise TerminalStateError(
                "This dispute is already resolved",
                details={"request_id": str(shipment_request.id), "resolution": dispute.resolution},
            )
        if shipment_request.status != RequestStatus.DISPUTED:
            raise InvalidTransitionError(
                f"Request is '{shipment_request.status}', not disputed",
                details={"request_id": str(shipment_request.id)},
            )

        log_context = {
            "request_id": str(shipment_request.id),
            "dispute_id": str(dispute.id),
            "resolution": resolution,
        }

        if resolution == DisputeResolution.REFUND:
            result = EscrowService.refund(shipment_request)
            error_class = RefundFailedError
        else:
            result = EscrowService.release(shipment_request)
            error_class = PayoutFailedError
        if not result:
            cls.get_logger().warning(
                "Dispute escrow action failed",
                extra={**log_context, "error_code": result.error_code},
            )
            LifecycleService.raise_escrow_failure(result, shipment_request, error_class)

        from_status = shipment_request.status
        with transaction.atomic():
            if resolution == DisputeResolution.REFUND:
                shipment_request.resolve_refund()
            else:
                shipment_request.resolve_release()
            LifecycleService.save_transition(shipment_request, "resolve_dispute")

            updated = Dispute.objects.filter(pk=dispute.pk, status=DisputeStatus.OPEN).update(
                status=DisputeStatus.RESOLVED,
                resolution=resolution,
                resolved_by=admin,
                resolved_at=timezone.now(),
                resolution_note=note,
                updated_at=timezone.now(),
            )
            if not updated:
                raise TransitionConflictError(
                    "The dispute was resolved concurrently",
                    details={"request_id": str(shipment_request.id)},
                )
            send_transitioned_on_commit(
                shipment_request, "resolve_dispute", from_status, shipment_request.status, admin.pk
            )

        cls.get_logger().info("Dispute resolved", extra={**log_context, "admin_id": admin.pk})
        return shipment_request
