"""
Stripe Connect onboarding for travelers.

A traveler needs a connected account that Stripe has enabled for payouts
before EscrowService.release can transfer to them. This service creates the
account on first use, hands out hosted onboarding links and mirrors the
account's capabilities into ConnectedAccount.

Status mapping (same as Stripe's account.updated semantics):
    - disabled_reason set -> REJECTED
    - details not submitted, or requirements still due -> IN_PROGRESS
    - nothing due -> COMPLETE

Usage:
    from payments.services import ConnectedAccountService

    result = ConnectedAccountService.create_onboarding_link(user)
    if result:
        redirect_to(result.data.url)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction

from core.services import BaseService, ServiceResult

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import StripeError
from payments.models import ConnectedAccount
from payments.state_machines import OnboardingStatus

if TYPE_CHECKING:
    from payments.adapters import AccountResult


OP_CREATE_ACCOUNT = "connect_account"

# Error code returned in ServiceResult.error_code
ONBOARDING_UNAVAILABLE = "ONBOARDING_UNAVAILABLE"


@dataclass
class OnboardingLink:
    url: str
    expires_at: int
    account: ConnectedAccount


class ConnectedAccountService(BaseService):
    """
    Create and track the Stripe connected account that receives payouts.

    Usage:
        ConnectedAccountService.create_onboarding_link(user)
        ConnectedAccountService.refresh_status(user)
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        cls._stripe_adapter = adapter

    @classmethod
    def create_onboarding_link(cls, user) -> ServiceResult[OnboardingLink]:
        """
        Return a hosted onboarding URL, creating the Stripe account first if
        the user has none.

        Account creation uses an idempotency key derived from the user, so
        two concurrent first calls end up with the same Stripe account.

        Returns:
            ServiceResult with an OnboardingLink, or a failure with
            error_code ONBOARDING_UNAVAILABLE
        """
        log = cls.get_logger()
        adapter = cls.get_stripe_adapter()

        account = ConnectedAccount.objects.filter(user=user).first()
        if account is None:
            try:
                created = adapter.create_connected_account(
                    email=user.email,
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        OP_CREATE_ACCOUNT, user.pk
                    ),
                    country=settings.STRIPE_CONNECT_COUNTRY or None,
                    metadata={"user_id": str(user.pk)},
                )
            except StripeError as e:
                return cls._unavailable("create_connected_account", user, e)

            account, created_row = ConnectedAccount.objects.get_or_create(
                user=user,
                defaults={
                    "stripe_account_id": created.id,
                    "onboarding_status": OnboardingStatus.IN_PROGRESS,
                },
            )
            if created_row:
                log.info(
                    "Connected account created",
                    extra={"user_id": user.pk, "stripe_account_id": created.id},
                )

        try:
            link = adapter.create_account_link(
                account.stripe_account_id,
                refresh_url=settings.STRIPE_CONNECT_REFRESH_URL,
                return_url=settings.STRIPE_CONNECT_RETURN_URL,
            )
        except StripeError as e:
            return cls._unavailable("create_account_link", user, e)

        if account.onboarding_status == OnboardingStatus.NOT_STARTED:
            account.onboarding_status = OnboardingStatus.IN_PROGRESS
            account.save()

        return ServiceResult.success(
            OnboardingLink(url=link.url, expires_at=link.expires_at, account=account)
        )

    @classmethod
    def refresh_status(cls, user) -> ServiceResult[ConnectedAccount | None]:
        """
        Pull the account's capabilities from Stripe and store them.

        A user who never started onboarding has no account: the result is a
        success with None.
        """
        account = ConnectedAccount.objects.filter(user=user).first()
        if account is None:
            return ServiceResult.success(None)

        try:
            remote = cls.get_stripe_adapter().retrieve_account(account.stripe_account_id)
        except StripeError as e:
            return cls._unavailable("retrieve_account", user, e)

        return ServiceResult.success(cls.apply_account_state(account, remote))

    @classmethod
    def apply_account_state(
        cls, account: ConnectedAccount, remote: AccountResult
    ) -> ConnectedAccount:
        if remote.disabled_reason:
            status = OnboardingStatus.REJECTED
        elif not remote.details_submitted or remote.requirements_due:
            status = OnboardingStatus.IN_PROGRESS
        else:
            status = OnboardingStatus.COMPLETE

        with transaction.atomic():
            account = ConnectedAccount.objects.select_for_update().get(pk=account.pk)
            account.onboarding_status = status
            account.payouts_enabled = remote.payouts_enabled
            account.charges_enabled = remote.charges_enabled
            account.save()

        cls.get_logger().info(
            "Connected account updated",
            extra={
                "connected_account_id": str(account.id),
                "onboarding_status": account.onboarding_status,
                "payouts_enabled": account.payouts_enabled,
                "charges_enabled": account.charges_enabled,
                "requirements_due": len(remote.requirements_due),
            },
        )
        return account

    @classmethod
    def _unavailable(cls, operation: str, user, error: StripeError) -> ServiceResult:
        cls.get_logger().warning(
            "Stripe Connect call failed",
            extra={
                "operation": operation,
                "user_id": user.pk,
                "error_code": error.error_code,
            },
        )
        return ServiceResult.failure(
            "Payout onboarding is unavailable right now",
            error_code=ONBOARDING_UNAVAILABLE,
            details={"retryable": error.is_retryable},
        )
