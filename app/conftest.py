"""
Pytest configuration for the application packages.

Relaxes settings that slow tests down or make them order-dependent and
auto-marks tests by filename.
"""

import pytest


def pytest_configure():
    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Local-memory cache so tests never need a Redis server
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}
    }


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full request journeys)
    - test_views.py, test_*_service.py, test_tasks.py, etc. → integration
    - test_models.py, test_fees.py, test_confirmation.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_tasks.py",
        "test_lifecycle.py",
        "test_disputes.py",
        "test_reviews.py",
        "test_listings.py",
        "test_requests.py",
        "test_escrow_service.py",
        "test_connected_account_service.py",
        "test_selectors.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_managers.py",
        "test_fees.py",
        "test_confirmation.py",
        "test_stripe_adapter.py",
        "test_state_transitions.py",
        "test_locks.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# External Service Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    Redis client behind payments.locks, granting every lock.

    Tests that need contention set `mock_redis.set.return_value = False`.
    """
    client = mocker.MagicMock(name="redis")
    client.set.return_value = True
    client.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=client)
    return client


@pytest.fixture
def redis_locks(mock_redis):
    """
    Make mock_redis behave like Redis for locks: SET NX only succeeds on a
    free key, and the release script deletes the key only for its token.

    Returns the dict of currently held keys.
    """
    held = {}

    def set_(key, value, nx=False, ex=None):
        if nx and key in held:
            return None
        held[key] = value
        return True

    def eval_(script, numkeys, key, token):
        if held.get(key) == token:
            del held[key]
            return 1
        return 0

    mock_redis.set.side_effect = set_
    mock_redis.eval.side_effect = eval_
    return held


@pytest.fixture(autouse=True)
def stripe_adapter():
    """In-memory Stripe used by the payment services for the duration of a test."""
    from payments.services import ConnectedAccountService, EscrowService
    from payments.tests.fakes import FakeStripeAdapter

    fake = FakeStripeAdapter()
    EscrowService.set_stripe_adapter(fake)
    ConnectedAccountService.set_stripe_adapter(fake)
    yield fake
    EscrowService.set_stripe_adapter(None)
    ConnectedAccountService.set_stripe_adapter(None)
