"""
Celery tasks for shipment requests.

- expire_stale_pending_requests: Periodic sweep cancelling requests the
  traveler never answered

Usage:
    # Scheduled via celery-beat (see migration 0002_expire_requests_schedule)
    from shipments.tasks import expire_stale_pending_requests
    expire_stale_pending_requests.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import OperationalError
from django.utils import timezone

from shipments.exceptions import InvalidTransitionError, TransitionConflictError
from shipments.models import ShipmentRequest
from shipments.services import LifecycleService
from shipments.states import RequestStatus

logger = logging.getLogger(__name__)

EXPIRE_BATCH_SIZE = 200


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def expire_stale_pending_requests(self) -> dict:
    """
    Cancel pending requests older than PENDING_REQUEST_TTL_HOURS.

    A request accepted (or otherwise changed) while the sweep runs loses
    nothing: the compare-and-swap fails and the request is skipped.

    Returns:
        Dict with counts of expired and skipped requests
    """
    hours = getattr(settings, "PENDING_REQUEST_TTL_HOURS", 72)
    cutoff = timezone.now() - timedelta(hours=hours)

    stale = list(
        ShipmentRequest.objects.filter(
            status=RequestStatus.PENDING,
            created_at__lt=cutoff,
        ).order_by("created_at")[:EXPIRE_BATCH_SIZE]
    )

    expired = 0
    skipped = 0
    for shipment_request in stale:
        try:
            LifecycleService.expire(shipment_request)
            expired += 1
        except (TransitionConflictError, InvalidTransitionError):
            skipped += 1

    logger.info(
        "Expired stale pending requests",
        extra={"expired_count": expired, "skipped_count": skipped, "ttl_hours": hours},
    )
    return {"expired_count": expired, "skipped_count": skipped}
