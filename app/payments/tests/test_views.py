"""
Tests for the payments API endpoints.

Stripe is the FakeStripeAdapter installed by the root conftest.
"""

from rest_framework import status

from authentication.tests.factories import UserFactory
from payments.adapters import AccountResult
from payments.exceptions import StripeAPIUnavailableError
from payments.state_machines import OnboardingStatus
from payments.tests.factories import ConnectedAccountFactory, EscrowTransactionFactory

BASE_URL = "/api/v1/payments"
ONBOARD_URL = f"{BASE_URL}/connect/onboard/"
STATUS_URL = f"{BASE_URL}/connect/status/"
TRANSACTIONS_URL = f"{BASE_URL}/transactions/"


class TestConnectEndpoints:
    def test_requires_authentication(self, api_client, db):
        assert api_client.post(ONBOARD_URL).status_code == status.HTTP_401_UNAUTHORIZED
        assert api_client.get(STATUS_URL).status_code == status.HTTP_401_UNAUTHORIZED

    def test_onboard_returns_link(self, client_for, db):
        user = UserFactory()

        response = client_for(user).post(ONBOARD_URL)

        assert response.status_code == status.HTTP_200_OK
        account_id = response.data["account"]["stripe_account_id"]
        assert response.data["url"].endswith(account_id)
        assert response.data["account"]["onboarding_status"] == "in_progress"
        assert response.data["account"]["ready_for_payouts"] is False

    def test_onboard_stripe_down(self, client_for, stripe_adapter, db):
        stripe_adapter.fail_next(
            "create_connected_account", StripeAPIUnavailableError("503")
        )

        response = client_for(UserFactory()).post(ONBOARD_URL)

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.data["error_code"] == "ONBOARDING_UNAVAILABLE"
        assert response.data["details"]["retryable"] is True

    def test_status_before_onboarding(self, client_for, db):
        response = client_for(UserFactory()).get(STATUS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["stripe_account_id"] is None
        assert response.data["onboarding_status"] == "not_started"
        assert response.data["ready_for_payouts"] is False

    def test_status_refreshed_from_stripe(self, client_for, stripe_adapter, db):
        account = ConnectedAccountFactory(
            onboarding_status=OnboardingStatus.IN_PROGRESS, payouts_enabled=False
        )
        stripe_adapter.accounts[account.stripe_account_id] = AccountResult(
            id=account.stripe_account_id,
            details_submitted=True,
            charges_enabled=True,
            payouts_enabled=True,
        )

        response = client_for(account.user).get(STATUS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["onboarding_status"] == "complete"
        assert response.data["ready_for_payouts"] is True


class TestTransactionEndpoint:
    def test_requires_authentication(self, api_client, db):
        response = api_client.get(TRANSACTIONS_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_lists_only_own_transactions_with_role(self, client_for, db):
        paid = EscrowTransactionFactory()
        sender = paid.payer
        traveler_escrow = EscrowTransactionFactory(shipment_request__listing__traveler=sender)
        EscrowTransactionFactory()  # someone else's

        response = client_for(sender).get(TRANSACTIONS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 2
        roles = {item["id"]: item["role"] for item in response.data["results"]}
        assert roles == {str(paid.id): "payer", str(traveler_escrow.id): "payee"}
        assert "stripe_payment_intent_id" not in response.data["results"][0]

    def test_default_page_size(self, client_for, db):
        user = UserFactory()
        EscrowTransactionFactory.create_batch(21, shipment_request__sender=user)

        response = client_for(user).get(TRANSACTIONS_URL)

        assert response.data["count"] == 21
        assert len(response.data["results"]) == 20
        assert response.data["next"] is not None

    def test_per_page_is_capped(self, client_for, db):
        user = UserFactory()
        EscrowTransactionFactory.create_batch(51, shipment_request__sender=user)

        response = client_for(user).get(TRANSACTIONS_URL, {"per_page": 100})

        assert len(response.data["results"]) == 50

    def test_second_page(self, client_for, db):
        user = UserFactory()
        EscrowTransactionFactory.create_batch(3, shipment_request__sender=user)

        response = client_for(user).get(TRANSACTIONS_URL, {"per_page": 2, "page": 2})

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data["results"]) == 1
        assert response.data["previous"] is not None

    def test_page_out_of_range(self, client_for, db):
        response = client_for(UserFactory()).get(TRANSACTIONS_URL, {"page": 3})

        assert response.status_code == status.HTTP_404_NOT_FOUND
