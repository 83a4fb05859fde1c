"""
Test configuration and fixtures for authentication tests.
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """Create a basic active user with a known password."""
    return UserFactory(email="member@example.com", password="SecurePass123!")


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()
