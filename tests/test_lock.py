import threading
import time
from unittest.mock import MagicMock

import pytest
import redis

from art_auction.infrastructure.lock import LocalAuctionLock, LockTimeout, RedisAuctionLock


class TestLocalAuctionLock:
    def test_same_auction_is_exclusive(self):
        lock = LocalAuctionLock(timeout=0.05)

        with lock.hold(1):
            with pytest.raises(LockTimeout):
                lock.acquire(1)

    def test_different_auctions_do_not_contend(self):
        lock = LocalAuctionLock(timeout=0.05)

        with lock.hold(1):
            with lock.hold(2) as retries:
                assert retries == 0

    def test_released_after_exception(self):
        lock = LocalAuctionLock(timeout=0.05)

        with pytest.raises(RuntimeError):
            with lock.hold(1):
                raise RuntimeError("boom")

        with lock.hold(1):
            pass

    def test_waiter_gets_lock_after_release(self):
        lock = LocalAuctionLock(timeout=5)
        acquired = threading.Event()

        def waiter():
            with lock.hold(1):
                acquired.set()

        with lock.hold(1):
            thread = threading.Thread(target=waiter)
            thread.start()
            assert not acquired.wait(0.05)

        thread.join(timeout=5)
        assert acquired.is_set()

    def test_registry_entry_dropped_after_last_release(self):
        lock = LocalAuctionLock(timeout=0.05)

        with lock.hold(1):
            assert 1 in lock._locks
        with pytest.raises(LockTimeout):
            with lock.hold(2):
                lock.acquire(2)

        assert lock._locks == {}

    def test_registry_entry_kept_while_a_waiter_is_queued(self):
        lock = LocalAuctionLock(timeout=5)
        seen = []

        def waiter():
            with lock.hold(1):
                seen.append(lock._locks[1])

        token, _ = lock.acquire(1)
        thread = threading.Thread(target=waiter)
        thread.start()
        for _ in range(500):
            if lock._users.get(1) == 2:
                break
            time.sleep(0.01)
        lock.release(1, token)
        thread.join(timeout=5)

        assert seen == [token]
        assert lock._locks == {}


class TestRedisAuctionLock:
    def make_lock(self, client):
        lock = RedisAuctionLock(client)
        lock.retry_delay = 0
        lock.max_retries = 3
        return lock

    def test_acquire_uses_set_nx_px(self):
        client = MagicMock()
        client.set.return_value = True
        lock = self.make_lock(client)

        (key, request_id), retries = lock.acquire(7)

        assert key == "auction:lock:7"
        assert retries == 0
        client.set.assert_called_once_with(key, request_id, nx=True, px=lock.lock_expire_ms)

    def test_counts_retries(self):
        client = MagicMock()
        client.set.side_effect = [None, None, True]
        lock = self.make_lock(client)

        _, retries = lock.acquire(7)

        assert retries == 2

    def test_times_out(self):
        client = MagicMock()
        client.set.return_value = None
        lock = self.make_lock(client)

        with pytest.raises(LockTimeout):
            lock.acquire(7)
        assert client.set.call_count == 3

    def test_release_runs_compare_and_delete(self):
        client = MagicMock()
        client.set.return_value = True
        lock = self.make_lock(client)

        with lock.hold(7):
            pass

        args = client.eval.call_args[0]
        assert args[0] == RedisAuctionLock.UNLOCK_SCRIPT
        assert args[1:3] == (1, "auction:lock:7")

    def test_release_error_is_logged_not_raised(self):
        client = MagicMock()
        client.set.return_value = True
        client.eval.side_effect = redis.ConnectionError("gone")
        lock = self.make_lock(client)

        with lock.hold(7):
            pass
