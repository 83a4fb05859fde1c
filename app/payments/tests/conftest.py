"""
Pytest fixtures for payment tests.

The Redis lock client and the Stripe adapter are replaced project-wide by
the autouse fixtures in the root conftest (mock_redis, stripe_adapter).

Usage:
    def test_release(paid_request, captured_escrow, traveler_account):
        result = EscrowService.release(paid_request)
        assert result.data.status == EscrowStatus.RELEASED
"""

import pytest
from rest_framework.test import APIClient

from payments.tests.factories import ConnectedAccountFactory, EscrowTransactionFactory
from shipments.states import RequestStatus
from shipments.tests.factories import ShipmentRequestFactory


@pytest.fixture
def accepted_request(db):
    """An accepted 5 kg request (total 40.00 EUR) waiting for payment."""
    return ShipmentRequestFactory(status=RequestStatus.ACCEPTED)


@pytest.fixture
def paid_request(db):
    """A paid request whose escrow is created by captured_escrow."""
    return ShipmentRequestFactory(paid=True)


@pytest.fixture
def captured_escrow(db, paid_request):
    """Funds held for paid_request."""
    return EscrowTransactionFactory(shipment_request=paid_request, captured=True)


@pytest.fixture
def traveler_account(db, paid_request):
    """Payout-ready connected account for paid_request's traveler."""
    return ConnectedAccountFactory(user=paid_request.listing.traveler)


@pytest.fixture
def reload():
    """Re-read a row; protected FSM fields rule out refresh_from_db()."""

    def _reload(instance):
        return type(instance).objects.get(pk=instance.pk)

    return _reload




@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def client_for():
    """Build an API client authenticated as the given user."""

    def _client_for(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client_for
