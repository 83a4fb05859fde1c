"""
Celery tasks for escrow maintenance.

- reconcile_pending_escrows: Periodic sweep queuing escrows whose last
  provider call has an unknown outcome (pending, authorized, releasing or
  refunding)
- reconcile_escrow: Settles one such escrow against Stripe, retrying with
  exponential backoff while the outcome stays unknown

Usage:
    # Scheduled via celery-beat (see migration 0002_reconcile_escrows_schedule)
    from payments.tasks import reconcile_pending_escrows
    reconcile_pending_escrows.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.adapters import backoff_delay
from payments.models import EscrowTransaction
from payments.services import EscrowService
from payments.services.escrow_service import RECONCILABLE_STATUSES

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

RECONCILE_BATCH_SIZE = 100
RECONCILE_MAX_RETRIES = 3
RECONCILE_RETRY_BASE_SECONDS = 30
RECONCILE_RETRY_MAX_SECONDS = 300


@shared_task
def reconcile_pending_escrows() -> dict:
    """
    Queue reconciliation for escrows stuck in an intermediate status.

    An escrow keeps its intent marker when a Stripe call timed out or Stripe
    was unavailable. Only rows untouched for ESCROW_RECONCILE_AFTER_MINUTES
    are picked up, so in-flight operations are left alone.

    Returns:
        Dict with count of escrows queued
    """
    minutes = getattr(settings, "ESCROW_RECONCILE_AFTER_MINUTES", 15)
    cutoff = timezone.now() - timedelta(minutes=minutes)

    escrow_ids = list(
        EscrowTransaction.objects.filter(
            status__in=RECONCILABLE_STATUSES,
            updated_at__lt=cutoff,
        )
        .order_by("updated_at")
        .values_list("id", flat=True)[:RECONCILE_BATCH_SIZE]
    )

    for escrow_id in escrow_ids:
        reconcile_escrow.delay(str(escrow_id))

    logger.info(
        "Queued escrows for reconciliation",
        extra={"queued_count": len(escrow_ids), "cutoff": cutoff.isoformat()},
    )
    return {"queued_count": len(escrow_ids)}


@shared_task(bind=True, acks_late=True, max_retries=RECONCILE_MAX_RETRIES)
def reconcile_escrow(self, escrow_id: str) -> dict:
    """
    Settle one escrow.

    A retryable failure (timeout, lock held by a live operation, payment
    still processing) is retried with exponential backoff until
    max_retries; the next sweep picks the escrow up after that.

    Args:
        escrow_id: UUID of the EscrowTransaction

    Returns:
        Dict with the resulting escrow status, or the failure code
    """
    result = EscrowService.reconcile(escrow_id)

    if result.success:
        logger.info(
            "Escrow reconciled",
            extra={"escrow_id": escrow_id, "status": result.data.status},
        )
        return {"escrow_id": escrow_id, "status": result.data.status}

    if result.details.get("retryable") and self.request.retries < self.max_retries:
        countdown = backoff_delay(
            self.request.retries,
            base=RECONCILE_RETRY_BASE_SECONDS,
            max_delay=RECONCILE_RETRY_MAX_SECONDS,
        )
        logger.info(
            "Escrow reconciliation retry scheduled",
            extra={
                "escrow_id": escrow_id,
                "error_code": result.error_code,
                "retries": self.request.retries,
                "countdown": countdown,
            },
        )
        raise self.retry(countdown=countdown)

    logger.warning(
        "Escrow reconciliation incomplete",
        extra={"escrow_id": escrow_id, "error_code": result.error_code},
    )
    return {"escrow_id": escrow_id, "error_code": result.error_code}
