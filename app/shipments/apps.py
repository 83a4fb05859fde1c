"""
Shipments app configuration.

This app owns the shipment request lifecycle: listings, requests, disputes
and reviews.
"""

from django.apps import AppConfig


class ShipmentsConfig(AppConfig):
    """Configuration for the shipments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "shipments"
    verbose_name = "Shipments"

    def ready(self):
        # Connect signal receivers
        import shipments.signals  # noqa: F401
