"""
Payment admin configuration.

Escrow rows are read-only here: state changes go through EscrowService so
that Stripe and the database never disagree.
"""

from django.contrib import admin

from payments.models import ConnectedAccount, EscrowTransaction


@admin.register(ConnectedAccount)
class ConnectedAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for ConnectedAccount.

    Provides visibility into Stripe Connect account status.
    """

    list_display = [
        "id",
        "user",
        "stripe_account_id",
        "onboarding_status",
        "payouts_enabled",
        "charges_enabled",
        "created_at",
    ]
    list_filter = ["onboarding_status", "payouts_enabled", "charges_enabled"]
    search_fields = ["id", "stripe_account_id", "user__email"]
    readonly_fields = ["id", "created_at", "updated_at", "version"]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "stripe_account_id"),
            },
        ),
        (
            "Status",
            {
                "fields": (
                    "onboarding_status",
                    "payouts_enabled",
                    "charges_enabled",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
            },
        ),
    )


@admin.register(EscrowTransaction)
class EscrowTransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for EscrowTransaction.

    Read-only audit view of escrowed funds.
    """

    list_display = [
        "id",
        "shipment_request",
        "amount_display",
        "status",
        "payer",
        "payee",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = [
        "id",
        "shipment_request__id",
        "stripe_payment_intent_id",
        "stripe_transfer_id",
        "stripe_refund_id",
        "payer__email",
        "payee__email",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "shipment_request", "payer", "payee", "status"),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "amount",
                    "platform_fee",
                    "payout_amount",
                    "currency",
                    "captured_amount",
                    "released_amount",
                    "refunded_amount",
                ),
            },
        ),
        (
            "Stripe",
            {
                "fields": (
                    "stripe_payment_method_id",
                    "stripe_payment_intent_id",
                    "stripe_transfer_id",
                    "stripe_refund_id",
                    "charge_attempt",
                    "release_attempt",
                    "refund_attempt",
                ),
            },
        ),
        (
            "State Timestamps",
            {
                "fields": (
                    "authorized_at",
                    "captured_at",
                    "released_at",
                    "refunded_at",
                    "failed_at",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def amount_display(self, obj: EscrowTransaction) -> str:
        """Display the amount formatted with its currency."""
        return f"{obj.amount:.2f} {obj.currency.upper()}"

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for escrow rows (audit trail)."""
        return False
