"""
Tests for the Redis locks guarding escrow operations.

The Redis client is the MagicMock from the root conftest's mock_redis
fixture; these tests configure its replies.
"""

import pytest

from payments.exceptions import LockAcquisitionError
from payments.locks import DistributedLock, escrow_lock


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_sets_key_with_nx_and_ttl(self, mock_redis):
        lock = DistributedLock("escrow:abc", ttl=30, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:escrow:abc"
        assert kwargs["nx"] is True
        assert kwargs["ex"] == 30

    def test_each_acquisition_uses_a_fresh_token(self, mock_redis):
        first = DistributedLock("escrow:1", blocking=False)
        second = DistributedLock("escrow:2", blocking=False)

        first.acquire()
        second.acquire()

        assert first._token != second._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("escrow:abc", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["key"] == "lock:escrow:abc"
        assert lock.is_held is False

    def test_blocking_retries_until_free(self, mock_redis):
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("escrow:abc", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_times_out(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("escrow:abc", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["timeout"] == 0.1

    def test_release_runs_owner_check_script(self, mock_redis):
        lock = DistributedLock("escrow:abc", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True
        assert lock.is_held is False

        args = mock_redis.eval.call_args[0]
        assert args[1:] == (1, "lock:escrow:abc", token)

    def test_release_of_lock_taken_over_returns_false(self, mock_redis):
        """The TTL expired and someone else holds the key now."""
        mock_redis.eval.return_value = 0

        lock = DistributedLock("escrow:abc", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire(self, mock_redis):
        lock = DistributedLock("escrow:abc", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        with pytest.raises(ValueError, match="boom"):
            with DistributedLock("escrow:abc", blocking=False):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()


class TestEscrowLock:
    def test_keyed_by_request_and_non_blocking(self, mock_redis):
        lock = escrow_lock("8c1f")

        assert lock.key == "lock:escrow:8c1f"
        assert lock.blocking is False

    def test_ttl_from_settings(self, settings, mock_redis):
        settings.ESCROW_LOCK_TTL_SECONDS = 90

        assert escrow_lock("8c1f").ttl == 90

    def test_default_ttl(self, mock_redis):
        assert escrow_lock("8c1f").ttl == 60
