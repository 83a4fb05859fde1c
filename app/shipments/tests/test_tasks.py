"""
Tests for the stale pending request sweep.
"""

from datetime import timedelta

from django.utils import timezone

from shipments.models import ShipmentRequest
from shipments.services import LifecycleService
from shipments.states import CancellationReason, RequestStatus
from shipments.tasks import expire_stale_pending_requests
from shipments.tests.factories import ShipmentRequestFactory


def _age(shipment_request, hours):
    ShipmentRequest.objects.filter(pk=shipment_request.pk).update(
        created_at=timezone.now() - timedelta(hours=hours)
    )


class TestExpireStalePendingRequests:
    def test_expires_only_old_pending_requests(self, listing, reload):
        stale = ShipmentRequestFactory(listing=listing)
        _age(stale, 73)
        fresh = ShipmentRequestFactory(listing=listing)
        _age(fresh, 71)
        old_accepted = ShipmentRequestFactory(listing=listing, status=RequestStatus.ACCEPTED)
        _age(old_accepted, 100)

        result = expire_stale_pending_requests()

        assert result == {"expired_count": 1, "skipped_count": 0}
        stale = reload(stale)
        assert stale.status == RequestStatus.CANCELLED
        assert stale.cancellation_reason == CancellationReason.EXPIRED
        assert reload(fresh).status == RequestStatus.PENDING
        assert reload(old_accepted).status == RequestStatus.ACCEPTED

    def test_ttl_from_settings(self, listing, settings):
        settings.PENDING_REQUEST_TTL_HOURS = 24
        shipment_request = ShipmentRequestFactory(listing=listing)
        _age(shipment_request, 25)

        assert expire_stale_pending_requests() == {"expired_count": 1, "skipped_count": 0}

    def test_request_accepted_during_sweep_is_skipped(self, listing, mocker, reload):
        shipment_request = ShipmentRequestFactory(listing=listing)
        _age(shipment_request, 80)
        expire = LifecycleService.expire

        def accepted_first(stale):
            ShipmentRequest.objects.filter(pk=stale.pk).update(status=RequestStatus.ACCEPTED)
            return expire(stale)

        mocker.patch.object(LifecycleService, "expire", side_effect=accepted_first)

        result = expire_stale_pending_requests()

        assert result == {"expired_count": 0, "skipped_count": 1}
        assert reload(shipment_request).status == RequestStatus.ACCEPTED
