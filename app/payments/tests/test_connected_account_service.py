"""
Tests for ConnectedAccountService: account creation, onboarding links and
status refresh from Stripe.
"""

import pytest

from authentication.tests.factories import UserFactory
from payments.adapters import AccountResult
from payments.exceptions import StripeAPIUnavailableError, StripeInvalidRequestError
from payments.models import ConnectedAccount
from payments.services import ConnectedAccountService
from payments.services.connected_account_service import ONBOARDING_UNAVAILABLE
from payments.state_machines import OnboardingStatus
from payments.tests.factories import ConnectedAccountFactory


@pytest.fixture
def user(db):
    return UserFactory()


class TestCreateOnboardingLink:
    def test_creates_account_then_link(self, user, stripe_adapter):
        result = ConnectedAccountService.create_onboarding_link(user)

        assert result.success
        account = ConnectedAccount.objects.get(user=user)
        assert account.onboarding_status == OnboardingStatus.IN_PROGRESS
        assert account.payouts_enabled is False
        assert result.data.account == account
        assert result.data.url == (
            f"https://connect.stripe.test/setup/{account.stripe_account_id}"
        )
        assert len(stripe_adapter.calls_to("create_connected_account")) == 1

    def test_reuses_existing_account(self, user, stripe_adapter):
        ConnectedAccountService.create_onboarding_link(user)

        result = ConnectedAccountService.create_onboarding_link(user)

        assert result.success
        assert ConnectedAccount.objects.filter(user=user).count() == 1
        assert len(stripe_adapter.calls_to("create_connected_account")) == 1
        assert len(stripe_adapter.calls_to("create_account_link")) == 2

    def test_account_creation_is_idempotent_per_user(self, user, stripe_adapter):
        stripe_adapter.fail_next("create_account_link", StripeAPIUnavailableError("503"))
        ConnectedAccountService.create_onboarding_link(user)
        ConnectedAccount.objects.filter(user=user).delete()

        ConnectedAccountService.create_onboarding_link(user)

        first_key, second_key = stripe_adapter.calls_to("create_connected_account")
        assert first_key == second_key

    def test_not_started_account_moves_to_in_progress(self, user, stripe_adapter):
        account = ConnectedAccountFactory(
            user=user,
            onboarding_status=OnboardingStatus.NOT_STARTED,
            payouts_enabled=False,
        )

        ConnectedAccountService.create_onboarding_link(user)

        account.refresh_from_db()
        assert account.onboarding_status == OnboardingStatus.IN_PROGRESS
        assert stripe_adapter.calls_to("create_connected_account") == []

    def test_stripe_failure(self, user, stripe_adapter):
        stripe_adapter.fail_next(
            "create_connected_account", StripeAPIUnavailableError("503")
        )

        result = ConnectedAccountService.create_onboarding_link(user)

        assert result.error_code == ONBOARDING_UNAVAILABLE
        assert result.details["retryable"] is True
        assert not ConnectedAccount.objects.filter(user=user).exists()


class TestRefreshStatus:
    def test_no_account_yet(self, user, stripe_adapter):
        result = ConnectedAccountService.refresh_status(user)

        assert result.success
        assert result.data is None
        assert stripe_adapter.calls == []

    @pytest.mark.parametrize(
        "remote, expected",
        [
            (
                AccountResult(
                    id="acct",
                    details_submitted=True,
                    charges_enabled=True,
                    payouts_enabled=True,
                ),
                OnboardingStatus.COMPLETE,
            ),
            (
                AccountResult(id="acct", details_submitted=False),
                OnboardingStatus.IN_PROGRESS,
            ),
            (
                AccountResult(
                    id="acct",
                    details_submitted=True,
                    requirements_due=["individual.verification.document"],
                ),
                OnboardingStatus.IN_PROGRESS,
            ),
            (
                AccountResult(
                    id="acct",
                    details_submitted=True,
                    disabled_reason="rejected.fraud",
                ),
                OnboardingStatus.REJECTED,
            ),
        ],
    )
    def test_maps_remote_state(self, user, stripe_adapter, remote, expected):
        account = ConnectedAccountFactory(
            user=user,
            onboarding_status=OnboardingStatus.IN_PROGRESS,
            payouts_enabled=False,
            charges_enabled=False,
        )
        stripe_adapter.accounts[account.stripe_account_id] = remote

        result = ConnectedAccountService.refresh_status(user)

        assert result.data.onboarding_status == expected
        assert result.data.payouts_enabled is remote.payouts_enabled
        assert result.data.charges_enabled is remote.charges_enabled

    def test_completed_account_is_ready_for_payouts(self, user, stripe_adapter):
        ConnectedAccountService.create_onboarding_link(user)
        account = ConnectedAccount.objects.get(user=user)
        remote = stripe_adapter.accounts[account.stripe_account_id]
        remote.details_submitted = True
        remote.payouts_enabled = True
        remote.charges_enabled = True
        remote.requirements_due = []

        result = ConnectedAccountService.refresh_status(user)

        assert result.data.is_ready_for_payouts

    def test_stripe_failure(self, user, stripe_adapter):
        account = ConnectedAccountFactory(user=user)
        stripe_adapter.accounts[account.stripe_account_id] = AccountResult(id="acct")
        stripe_adapter.fail_next("retrieve_account", StripeInvalidRequestError("bad"))

        result = ConnectedAccountService.refresh_status(user)

        assert result.error_code == ONBOARDING_UNAVAILABLE
        assert result.details["retryable"] is False
        account.refresh_from_db()
        assert account.onboarding_status == OnboardingStatus.COMPLETE
