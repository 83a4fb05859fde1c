"""
Serializers for the payments API.

Stripe object ids stay server-side except the connected account id, which
the traveler needs to recognise their own account in Stripe's dashboard.
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import ConnectedAccount, EscrowTransaction

ROLE_PAYER = "payer"
ROLE_PAYEE = "payee"


class TransactionSerializer(serializers.ModelSerializer):
    """One escrow as seen by the sender who paid it or the traveler it pays."""

    shipment_request = serializers.UUIDField(source="shipment_request_id", read_only=True)
    role = serializers.SerializerMethodField()

    class Meta:
        model = EscrowTransaction
        fields = [
            "id",
            "shipment_request",
            "role",
            "status",
            "amount",
            "platform_fee",
            "payout_amount",
            "currency",
            "captured_amount",
            "released_amount",
            "refunded_amount",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_role(self, obj: EscrowTransaction) -> str:
        request = self.context.get("request")
        if request is not None and obj.payee_id == request.user.pk:
            return ROLE_PAYEE
        return ROLE_PAYER


class ConnectedAccountSerializer(serializers.ModelSerializer):
    ready_for_payouts = serializers.BooleanField(
        source="is_ready_for_payouts", read_only=True
    )

    class Meta:
        model = ConnectedAccount
        fields = [
            "stripe_account_id",
            "onboarding_status",
            "payouts_enabled",
            "charges_enabled",
            "ready_for_payouts",
        ]
        read_only_fields = fields


class OnboardingLinkSerializer(serializers.Serializer):
    url = serializers.URLField(read_only=True)
    expires_at = serializers.IntegerField(read_only=True)
    account = ConnectedAccountSerializer(read_only=True)
