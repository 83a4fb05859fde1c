"""
Domain events emitted by the shipment lifecycle.

request_transitioned is sent after the transaction that changed a request's
status commits, so receivers never see a status that was rolled back. The
core does not deliver notifications itself; a notifier app connects here.

Signal arguments:
    sender: ShipmentRequest class
    shipment_request: The request, as saved
    action: Lifecycle action name ("accept", "pay", "resolve_dispute", ...)
    from_status / to_status: Status before and after
    actor_id: Primary key of the acting user, None for system actions

Usage:
    from django.dispatch import receiver
    from shipments.signals import request_transitioned

    @receiver(request_transitioned)
    def notify_counterparty(sender, shipment_request, action, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

request_transitioned = Signal()


def send_transitioned_on_commit(
    shipment_request,
    action: str,
    from_status: str,
    to_status: str,
    actor_id=None,
) -> None:
    """Send request_transitioned once the current transaction commits."""

    def _send():
        request_transitioned.send(
            sender=type(shipment_request),
            shipment_request=shipment_request,
            action=action,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
        )

    transaction.on_commit(_send)


@receiver(request_transitioned)
def log_request_transition(sender, shipment_request, action, from_status, to_status, actor_id, **kwargs):
    logger.info(
        "Shipment request transitioned",
        extra={
            "request_id": str(shipment_request.id),
            "action": action,
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
        },
    )
