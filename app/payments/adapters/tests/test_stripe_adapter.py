"""
Tests for Stripe adapter.

Tests cover:
- Parameter validation
- Idempotency key generation
- Error translation for each exception type
- Successful API operations
- backoff_delay helper
"""

import uuid

import pytest
import stripe
from django.test import override_settings

from payments.adapters import (
    AccountLinkResult,
    AccountResult,
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
)
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


def _params(**overrides):
    values = {
        "amount_cents": 4000,
        "currency": "eur",
        "idempotency_key": "test-key",
        "payment_method": "pm_card_visa",
    }
    values.update(overrides)
    return CreatePaymentIntentParams(**values)


# =============================================================================
# CreatePaymentIntentParams Tests
# =============================================================================


class TestCreatePaymentIntentParams:
    """Tests for CreatePaymentIntentParams dataclass validation."""

    def test_defaults_hold_funds_for_manual_capture(self):
        params = _params()

        assert params.capture_method == "manual"
        assert params.confirm is True
        assert params.payment_method_types == ["card"]

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError, match="amount_cents must be positive"):
            _params(amount_cents=0)

        with pytest.raises(ValueError, match="amount_cents must be positive"):
            _params(amount_cents=-100)

    def test_idempotency_key_required(self):
        with pytest.raises(ValueError, match="idempotency_key is required"):
            _params(idempotency_key="")

    def test_currency_required(self):
        with pytest.raises(ValueError, match="currency is required"):
            _params(currency="")

    def test_confirm_requires_payment_method(self):
        with pytest.raises(ValueError, match="payment_method is required"):
            _params(payment_method=None)

    def test_unconfirmed_intent_without_payment_method(self):
        params = _params(payment_method=None, confirm=False)

        assert params.payment_method is None


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    """Tests for IdempotencyKeyGenerator."""

    def test_generate_key_format(self):
        entity_id = uuid.uuid4()
        key = IdempotencyKeyGenerator.generate(
            operation="escrow_charge",
            entity_id=entity_id,
            attempt=1,
        )

        parts = key.split(":")
        assert len(parts) == 4
        assert parts[0] == "escrow_charge"
        assert parts[1] == str(entity_id)
        assert parts[2] == "1"
        assert len(parts[3]) == 8

    def test_same_inputs_produce_same_key(self):
        """A retry after an unknown outcome must replay the same key."""
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "escrow_release", entity_id, 1
        ) == IdempotencyKeyGenerator.generate("escrow_release", entity_id, 1)

    def test_different_attempts_produce_different_keys(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "escrow_refund", entity_id, 1
        ) != IdempotencyKeyGenerator.generate("escrow_refund", entity_id, 2)

    def test_different_operations_produce_different_keys(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "escrow_charge", entity_id
        ) != IdempotencyKeyGenerator.generate("escrow_capture", entity_id)


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestBackoffDelay:
    """Tests for backoff_delay helper."""

    def test_exponential_growth(self):
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 2.0 <= backoff_delay(1) <= 2.5
        assert 4.0 <= backoff_delay(2) <= 5.0

    def test_respects_max_delay(self):
        assert backoff_delay(10, base=1.0, max_delay=60.0) <= 75.0


# =============================================================================
# StripeAdapter Error Translation Tests
# =============================================================================


@pytest.mark.usefixtures("mock_stripe_http_client")
class TestStripeAdapterErrorTranslation:
    """Tests for Stripe error translation to domain exceptions."""

    def test_card_declined_error(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            StripeAdapter.create_payment_intent(_params())

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False
        assert exc_info.value.details["stripe_code"] == "card_declined"

    def test_insufficient_funds_error(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error(
            message="Your card has insufficient funds.",
            decline_code="insufficient_funds",
        )

        with pytest.raises(StripeInsufficientFundsError) as exc_info:
            StripeAdapter.create_payment_intent(_params())

        assert exc_info.value.decline_code == "insufficient_funds"

    def test_invalid_request_error(
        self, mock_stripe_payment_intent, invalid_request_error
    ):
        mock_stripe_payment_intent.capture.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.capture_payment_intent("pi_missing", "capture-key")

        assert exc_info.value.is_retryable is False

    def test_invalid_account_error(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such account: acct_invalid",
            code="account_invalid",
        )

        with pytest.raises(StripeInvalidAccountError):
            StripeAdapter.create_transfer(
                amount_cents=3600,
                destination_account="acct_invalid",
                idempotency_key="test-key",
            )

    def test_rate_limit_error(self, mock_stripe_payment_intent, rate_limit_error):
        mock_stripe_payment_intent.create.side_effect = rate_limit_error

        with pytest.raises(StripeRateLimitError) as exc_info:
            StripeAdapter.create_payment_intent(_params())

        assert exc_info.value.is_retryable is True

    def test_api_connection_error(
        self, mock_stripe_payment_intent, api_connection_error
    ):
        mock_stripe_payment_intent.create.side_effect = api_connection_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            StripeAdapter.create_payment_intent(_params())

        assert exc_info.value.is_retryable is True

    def test_timeout_is_distinct_from_connection_error(
        self, mock_stripe_refund, api_timeout_error
    ):
        mock_stripe_refund.create.side_effect = api_timeout_error

        with pytest.raises(StripeTimeoutError) as exc_info:
            StripeAdapter.create_refund("pi_test", "refund-key")

        assert exc_info.value.is_retryable is True

    def test_api_error(self, mock_stripe_payment_intent, api_error):
        mock_stripe_payment_intent.create.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError):
            StripeAdapter.create_payment_intent(_params())

    def test_authentication_error(
        self, mock_stripe_payment_intent, authentication_error
    ):
        mock_stripe_payment_intent.create.side_effect = authentication_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.create_payment_intent(_params())

        assert exc_info.value.is_retryable is False

    def test_non_stripe_errors_propagate(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = RuntimeError("Unexpected")

        with pytest.raises(RuntimeError, match="Unexpected"):
            StripeAdapter.create_payment_intent(_params())


# =============================================================================
# StripeAdapter API Operation Tests
# =============================================================================


@pytest.mark.usefixtures("mock_stripe_http_client")
class TestStripeAdapterPaymentIntents:
    """Tests for PaymentIntent operations."""

    def test_create_confirms_with_payment_method(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        mock_stripe_payment_intent.create.return_value = mock_payment_intent(
            id="pi_test123", status="requires_capture", amount=4000
        )

        result = StripeAdapter.create_payment_intent(
            _params(idempotency_key="charge-key", metadata={"request_id": "r-1"})
        )

        assert isinstance(result, PaymentIntentResult)
        assert result.id == "pi_test123"
        assert result.requires_capture is True
        assert result.captured is False

        call_kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert call_kwargs["amount"] == 4000
        assert call_kwargs["currency"] == "eur"
        assert call_kwargs["payment_method"] == "pm_card_visa"
        assert call_kwargs["confirm"] is True
        assert call_kwargs["capture_method"] == "manual"
        assert call_kwargs["idempotency_key"] == "charge-key"
        assert call_kwargs["metadata"] == {"request_id": "r-1"}

    def test_capture(self, mock_stripe_payment_intent, mock_payment_intent):
        mock_stripe_payment_intent.capture.return_value = mock_payment_intent(
            id="pi_test123", status="succeeded", amount_received=4000
        )

        result = StripeAdapter.capture_payment_intent(
            payment_intent_id="pi_test123",
            idempotency_key="capture-key",
        )

        assert result.captured is True
        assert result.amount_received_cents == 4000
        mock_stripe_payment_intent.capture.assert_called_once_with(
            "pi_test123",
            idempotency_key="capture-key",
        )

    def test_cancel(self, mock_stripe_payment_intent):
        result = StripeAdapter.cancel_payment_intent("pi_test123", "cancel-key")

        assert result.status == "canceled"
        mock_stripe_payment_intent.cancel.assert_called_once_with(
            "pi_test123", idempotency_key="cancel-key"
        )

    def test_retrieve(self, mock_stripe_payment_intent, mock_payment_intent):
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            id="pi_test123", status="succeeded", amount_received=4000
        )

        result = StripeAdapter.retrieve_payment_intent("pi_test123")

        assert result.status == "succeeded"
        mock_stripe_payment_intent.retrieve.assert_called_once_with("pi_test123")


@pytest.mark.usefixtures("mock_stripe_http_client")
class TestStripeAdapterTransfersAndRefunds:
    """Tests for payout transfers and refunds."""

    def test_create_transfer(self, mock_stripe_transfer, mock_transfer):
        mock_stripe_transfer.create.return_value = mock_transfer(
            id="tr_test123", amount=3600, destination="acct_dest123"
        )

        result = StripeAdapter.create_transfer(
            amount_cents=3600,
            destination_account="acct_dest123",
            idempotency_key="transfer-key",
            source_transaction="ch_source123",
        )

        assert isinstance(result, TransferResult)
        assert result.id == "tr_test123"
        assert result.amount_cents == 3600
        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["source_transaction"] == "ch_source123"
        assert call_kwargs["currency"] == "eur"

    def test_create_refund(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.create.return_value = mock_refund(
            id="re_test123", amount=3600, payment_intent="pi_original"
        )

        result = StripeAdapter.create_refund(
            payment_intent_id="pi_original",
            idempotency_key="refund-key",
            amount_cents=3600,
            reason="requested_by_customer",
        )

        assert isinstance(result, RefundResult)
        assert result.amount_cents == 3600
        assert result.payment_intent_id == "pi_original"
        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["amount"] == 3600
        assert call_kwargs["reason"] == "requested_by_customer"


@pytest.mark.usefixtures("mock_stripe_http_client")
class TestStripeAdapterConnectAccounts:
    """Tests for Connect account onboarding calls."""

    def test_create_connected_account(self, mock_stripe_account):
        result = StripeAdapter.create_connected_account(
            email="traveler@example.com",
            idempotency_key="account-key",
            country="FR",
        )

        assert isinstance(result, AccountResult)
        assert result.payouts_enabled is False
        assert result.requirements_due == ["external_account"]
        call_kwargs = mock_stripe_account.create.call_args.kwargs
        assert call_kwargs["type"] == "express"
        assert call_kwargs["country"] == "FR"
        assert call_kwargs["idempotency_key"] == "account-key"
        assert call_kwargs["capabilities"] == {"transfers": {"requested": True}}

    def test_create_account_link(self, mock_stripe_account_link):
        result = StripeAdapter.create_account_link(
            "acct_test123456",
            refresh_url="https://app.example.com/connect/refresh",
            return_url="https://app.example.com/connect/return",
        )

        assert isinstance(result, AccountLinkResult)
        assert result.url.startswith("https://connect.stripe.com/")
        assert mock_stripe_account_link.create.call_args.kwargs["type"] == (
            "account_onboarding"
        )

    def test_retrieve_account_collects_requirements(self, mock_stripe_account, mock_account):
        mock_stripe_account.retrieve.return_value = mock_account(
            payouts_enabled=False,
            currently_due=["individual.dob.day"],
            past_due=["external_account"],
            disabled_reason="requirements.past_due",
        )

        result = StripeAdapter.retrieve_account("acct_test123456")

        assert result.requirements_due == ["individual.dob.day", "external_account"]
        assert result.disabled_reason == "requirements.past_due"
        mock_stripe_account.retrieve.assert_called_once_with("acct_test123456")

    def test_missing_account_translated(self, mock_stripe_account, invalid_request_error):
        mock_stripe_account.retrieve.side_effect = invalid_request_error(
            message="No such account: 'acct_missing'", param="account"
        )

        with pytest.raises(StripeInvalidAccountError):
            StripeAdapter.retrieve_account("acct_missing")


class TestStripeAdapterConfiguration:
    """Tests for Stripe adapter configuration."""

    @override_settings(STRIPE_SECRET_KEY="sk_test_custom", STRIPE_API_TIMEOUT_SECONDS=30)
    def test_uses_settings(self, mock_stripe_payment_intent, mock_stripe_http_client):
        StripeAdapter.create_payment_intent(_params())

        assert stripe.api_key == "sk_test_custom"
        mock_stripe_http_client.assert_called_with(timeout=30)
