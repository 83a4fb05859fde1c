"""
Serializers for authentication models.

Only the public face of a user is exposed here: counterparties see a name
and a reputation, never an email address.
"""

from rest_framework import serializers

from authentication.models import User


class PublicUserSerializer(serializers.ModelSerializer):
    """Read-only user representation embedded in shipment payloads."""

    display_name = serializers.CharField(source="get_short_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "display_name", "rating", "review_count"]
        read_only_fields = fields
