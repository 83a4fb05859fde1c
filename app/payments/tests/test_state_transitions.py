"""
Tests for EscrowTransaction state transitions using django-fsm.
"""

from decimal import Decimal

import pytest
from django_fsm import ConcurrentTransition, TransitionNotAllowed

from payments.models import EscrowTransaction
from payments.state_machines import EscrowStatus
from payments.tests.factories import EscrowTransactionFactory


@pytest.fixture
def pending_escrow(db):
    return EscrowTransactionFactory()


@pytest.fixture
def authorized_escrow(db):
    escrow = EscrowTransactionFactory()
    escrow.authorize("pi_auth_1")
    escrow.save()
    return escrow


@pytest.fixture
def captured_escrow(db):
    return EscrowTransactionFactory(captured=True)


class TestChargeTransitions:
    """PENDING -> AUTHORIZED -> CAPTURED, and the failure path."""

    def test_pending_to_authorized(self, pending_escrow):
        pending_escrow.authorize("pi_123")
        pending_escrow.save()

        assert pending_escrow.status == EscrowStatus.AUTHORIZED
        assert pending_escrow.stripe_payment_intent_id == "pi_123"
        assert pending_escrow.authorized_at is not None

    def test_authorized_to_captured(self, authorized_escrow):
        authorized_escrow.capture(Decimal("40.00"))
        authorized_escrow.save()

        assert authorized_escrow.status == EscrowStatus.CAPTURED
        assert authorized_escrow.captured_amount == Decimal("40.00")
        assert authorized_escrow.captured_at is not None

    def test_pending_to_captured_sets_authorized_at(self, pending_escrow):
        """Reconciliation may find the intent already captured."""
        pending_escrow.capture(Decimal("40.00"))
        pending_escrow.save()

        assert pending_escrow.status == EscrowStatus.CAPTURED
        assert pending_escrow.authorized_at == pending_escrow.captured_at

    def test_fail_advances_charge_attempt(self, pending_escrow):
        pending_escrow.fail("Card declined")
        pending_escrow.save()

        assert pending_escrow.status == EscrowStatus.FAILED
        assert pending_escrow.failure_reason == "Card declined"
        assert pending_escrow.charge_attempt == 2

    def test_retry_clears_previous_attempt(self, pending_escrow):
        pending_escrow.authorize("pi_first")
        pending_escrow.fail("Hold cancelled")
        pending_escrow.retry("pm_new_card")
        pending_escrow.save()

        assert pending_escrow.status == EscrowStatus.PENDING
        assert pending_escrow.stripe_payment_method_id == "pm_new_card"
        assert pending_escrow.stripe_payment_intent_id is None
        assert pending_escrow.failure_reason == ""

    def test_cannot_capture_failed(self, pending_escrow):
        pending_escrow.fail("declined")

        with pytest.raises(TransitionNotAllowed):
            pending_escrow.capture(Decimal("40.00"))


class TestReleaseTransitions:
    def test_release_round_trip(self, captured_escrow):
        captured_escrow.begin_release()
        captured_escrow.save()
        captured_escrow.complete_release("tr_123")
        captured_escrow.save()

        assert captured_escrow.status == EscrowStatus.RELEASED
        assert captured_escrow.released_amount == captured_escrow.payout_amount
        assert captured_escrow.stripe_transfer_id == "tr_123"
        assert captured_escrow.is_settled is True

    def test_abort_release_returns_to_captured(self, captured_escrow):
        captured_escrow.begin_release()
        captured_escrow.abort_release("account restricted")
        captured_escrow.save()

        assert captured_escrow.status == EscrowStatus.CAPTURED
        assert captured_escrow.release_attempt == 2

    def test_cannot_release_pending(self, pending_escrow):
        with pytest.raises(TransitionNotAllowed):
            pending_escrow.begin_release()


class TestRefundTransitions:
    def test_refund_round_trip(self, captured_escrow):
        captured_escrow.begin_refund()
        captured_escrow.complete_refund("re_123", Decimal("40.00"))
        captured_escrow.save()

        assert captured_escrow.status == EscrowStatus.REFUNDED
        assert captured_escrow.refunded_amount == Decimal("40.00")
        assert captured_escrow.is_settled is True

    def test_abort_refund_returns_to_captured(self, captured_escrow):
        captured_escrow.begin_refund()
        captured_escrow.abort_refund("charge disputed")

        assert captured_escrow.status == EscrowStatus.CAPTURED
        assert captured_escrow.refund_attempt == 2

    def test_released_cannot_be_refunded(self, captured_escrow):
        captured_escrow.begin_release()
        captured_escrow.complete_release("tr_1")

        with pytest.raises(TransitionNotAllowed):
            captured_escrow.begin_refund()


@pytest.mark.django_db(transaction=True)
class TestConcurrentTransitions:
    def test_stale_instance_cannot_overwrite(self, captured_escrow):
        """Two workers load the same row; the second save loses."""
        first = EscrowTransaction.objects.get(pk=captured_escrow.pk)
        second = EscrowTransaction.objects.get(pk=captured_escrow.pk)

        first.begin_release()
        first.save()

        second.begin_refund()
        with pytest.raises(ConcurrentTransition):
            second.save()

        assert (
            EscrowTransaction.objects.get(pk=captured_escrow.pk).status
            == EscrowStatus.RELEASING
        )

    def test_status_is_protected(self, captured_escrow):
        with pytest.raises(AttributeError):
            captured_escrow.status = EscrowStatus.RELEASED
