"""
Payments app configuration.

This app holds the escrow side of shipment requests:
- Stripe adapter and error translation
- EscrowTransaction and ConnectedAccount models
- EscrowService (charge, release, refund, reconciliation)
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
