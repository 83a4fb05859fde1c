"""
Tests for payment domain models.

Tests constraints, defaults and helpers of ConnectedAccount and
EscrowTransaction.
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError

from payments.models import ConnectedAccount, EscrowTransaction
from payments.state_machines import EscrowStatus, OnboardingStatus
from payments.tests.factories import ConnectedAccountFactory, EscrowTransactionFactory


# =============================================================================
# ConnectedAccount Tests
# =============================================================================


class TestConnectedAccountModel:
    """Tests for ConnectedAccount model."""

    def test_create_connected_account(self, db):
        """Should create with the factory defaults."""
        account = ConnectedAccountFactory()

        assert account.id is not None
        assert account.stripe_account_id.startswith("acct_test_")
        assert account.onboarding_status == OnboardingStatus.COMPLETE
        assert account.version == 1

    def test_stripe_account_id_unique(self, db):
        """Should enforce unique stripe_account_id."""
        ConnectedAccountFactory(stripe_account_id="acct_duplicate")

        with pytest.raises(IntegrityError):
            ConnectedAccountFactory(stripe_account_id="acct_duplicate")

    def test_version_increments_on_update(self, db):
        """Each save after the first bumps the version."""
        account = ConnectedAccountFactory()

        account.payouts_enabled = False
        account.save()

        assert account.version == 2
        assert ConnectedAccount.objects.get(pk=account.pk).version == 2

    @pytest.mark.parametrize(
        "onboarding_status,payouts_enabled,expected",
        [
            (OnboardingStatus.COMPLETE, True, True),
            (OnboardingStatus.COMPLETE, False, False),
            (OnboardingStatus.IN_PROGRESS, True, False),
            (OnboardingStatus.REJECTED, True, False),
        ],
    )
    def test_is_ready_for_payouts(self, db, onboarding_status, payouts_enabled, expected):
        account = ConnectedAccountFactory(
            onboarding_status=onboarding_status,
            payouts_enabled=payouts_enabled,
        )

        assert account.is_ready_for_payouts is expected


# =============================================================================
# EscrowTransaction Tests
# =============================================================================


class TestEscrowTransactionModel:
    """Tests for EscrowTransaction model."""

    def test_defaults(self, db):
        escrow = EscrowTransactionFactory()

        assert escrow.status == EscrowStatus.PENDING
        assert escrow.amount == Decimal("40.00")
        assert escrow.platform_fee == Decimal("4.00")
        assert escrow.payout_amount == Decimal("36.00")
        assert escrow.charge_attempt == 1
        assert escrow.release_attempt == 1
        assert escrow.refund_attempt == 1
        assert escrow.stripe_payment_intent_id is None

    def test_one_escrow_per_request(self, db):
        escrow = EscrowTransactionFactory()

        with pytest.raises(IntegrityError):
            EscrowTransactionFactory(shipment_request=escrow.shipment_request)

    def test_amount_must_be_positive(self, db):
        with pytest.raises(IntegrityError):
            EscrowTransactionFactory(
                amount=Decimal("0.00"),
                platform_fee=Decimal("0.00"),
                payout_amount=Decimal("0.00"),
            )

    def test_fee_split_must_sum_to_amount(self, db):
        with pytest.raises(IntegrityError):
            EscrowTransactionFactory(
                amount=Decimal("40.00"),
                platform_fee=Decimal("4.00"),
                payout_amount=Decimal("35.00"),
            )

    def test_payment_intent_id_unique(self, db):
        EscrowTransactionFactory(captured=True, stripe_payment_intent_id="pi_same")

        with pytest.raises(IntegrityError):
            EscrowTransactionFactory(captured=True, stripe_payment_intent_id="pi_same")

    def test_captured_trait(self, db):
        escrow = EscrowTransactionFactory(captured=True)

        assert escrow.status == EscrowStatus.CAPTURED
        assert escrow.captured_amount == escrow.amount
        assert escrow.is_settled is False

    def test_str_includes_status_and_amount(self, db):
        escrow = EscrowTransactionFactory()

        assert "pending" in str(escrow)
        assert "40.00 EUR" in str(escrow)

    def test_reverse_accessor_from_request(self, db):
        escrow = EscrowTransactionFactory()

        assert EscrowTransaction.objects.get(
            shipment_request=escrow.shipment_request
        ).pk == escrow.pk
        assert escrow.shipment_request.escrow == escrow
