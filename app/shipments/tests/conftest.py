"""
Pytest fixtures for shipment tests.

Every request fixture is built on the same listing: the traveler offers
20 kg Paris → Dakar at 8.00 EUR/kg and the sender books 5 kg (40.00 EUR).

Usage:
    def test_accept(pending_request, traveler):
        LifecycleService.transition(pending_request.id, traveler.id, "accept")
"""

from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from payments.tests.factories import ConnectedAccountFactory, EscrowTransactionFactory
from shipments.states import RequestStatus
from shipments.tests.factories import ListingFactory, ShipmentRequestFactory


@pytest.fixture
def traveler(db):
    return UserFactory(full_name="Moussa Traveler")


@pytest.fixture
def sender(db):
    return UserFactory(full_name="Awa Sender")


@pytest.fixture
def outsider(db):
    """A user who takes no part in the request."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    return UserFactory(is_staff=True)


@pytest.fixture
def listing(traveler):
    return ListingFactory(traveler=traveler)


@pytest.fixture
def pending_request(listing, sender):
    return ShipmentRequestFactory(listing=listing, sender=sender)


@pytest.fixture
def accepted_request(listing, sender):
    """Accepted request whose 5 kg were already taken from the listing."""
    listing.available_kg = Decimal("15.00")
    listing.save(update_fields=["available_kg"])
    return ShipmentRequestFactory(
        listing=listing, sender=sender, status=RequestStatus.ACCEPTED
    )


@pytest.fixture
def paid_request(listing, sender):
    """Paid request with the captured escrow behind it; code is 482913."""
    shipment_request = ShipmentRequestFactory(listing=listing, sender=sender, paid=True)
    EscrowTransactionFactory(shipment_request=shipment_request, captured=True)
    return shipment_request


@pytest.fixture
def delivered_request(listing, sender):
    """Delivered request waiting for the sender's code 482913."""
    shipment_request = ShipmentRequestFactory(
        listing=listing, sender=sender, paid=True, status=RequestStatus.DELIVERED
    )
    EscrowTransactionFactory(shipment_request=shipment_request, captured=True)
    return shipment_request


@pytest.fixture
def traveler_account(traveler):
    """Payout-ready connected account for the traveler."""
    return ConnectedAccountFactory(user=traveler)


@pytest.fixture
def reload():
    """Re-read a row; protected FSM fields rule out refresh_from_db()."""

    def _reload(instance):
        return type(instance).objects.get(pk=instance.pk)

    return _reload


# =============================================================================
# API clients
# =============================================================================


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


@pytest.fixture
def sender_client(client_for, sender):
    return client_for(sender)


@pytest.fixture
def traveler_client(client_for, traveler):
    return client_for(traveler)
