"""
Per-auction locks

Every mutation of one auction runs while holding that auction's lock.
Different auctions never contend.

- LocalAuctionLock: one threading.Lock per auction id (single process)
- RedisAuctionLock: SET NX PX with owner token, shared across processes
"""
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator

import redis

from art_auction.core.config import get_settings

logger = logging.getLogger(__name__)


class LockTimeout(TimeoutError):
    """Raised when an auction lock can't be acquired in time"""

    def __init__(self, auction_id: int):
        super().__init__(f"Could not acquire lock for auction {auction_id}")
        self.auction_id = auction_id


class AuctionLock:
    """Keyed mutual exclusion; subclasses implement acquire/release"""

    def acquire(self, auction_id: int):
        raise NotImplementedError

    def release(self, auction_id: int, token) -> None:
        raise NotImplementedError

    @contextmanager
    def hold(self, auction_id: int) -> Iterator[int]:
        """
        Hold the lock for one auction

        Usage:
            with lock.hold(auction_id) as retry_count:
                mutate_auction()
        """
        token, retry_count = self.acquire(auction_id)

        try:
            yield retry_count
        finally:
            self.release(auction_id, token)


class LocalAuctionLock(AuctionLock):
    """
    In-process lock registry keyed by auction id

    An entry lives only while some thread holds or waits on it.
    """

    def __init__(self, timeout: float = None):
        if timeout is None:
            timeout = get_settings().LOCK_TIMEOUT_SECONDS
        self.timeout = timeout
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = {}
        self._registry_lock = threading.Lock()

    def _check_out(self, auction_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(auction_id)
            if lock is None:
                lock = self._locks[auction_id] = threading.Lock()
            self._users[auction_id] = self._users.get(auction_id, 0) + 1
            return lock

    def _check_in(self, auction_id: int):
        with self._registry_lock:
            self._users[auction_id] -= 1
            if not self._users[auction_id]:
                del self._users[auction_id]
                del self._locks[auction_id]

    def acquire(self, auction_id: int):
        lock = self._check_out(auction_id)
        if not lock.acquire(timeout=self.timeout):
            self._check_in(auction_id)
            raise LockTimeout(auction_id)
        return lock, 0

    def release(self, auction_id: int, token) -> None:
        token.release()
        self._check_in(auction_id)


class RedisAuctionLock(AuctionLock):
    """Distributed lock with retry tracking"""

    # Lua script for atomic unlock
    UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis_client: redis.Redis):
        settings = get_settings()
        self.redis = redis_client
        self.lock_expire_ms = settings.LOCK_EXPIRE_MS
        self.retry_delay = settings.LOCK_RETRY_DELAY
        self.max_retries = settings.LOCK_MAX_RETRIES

    @staticmethod
    def lock_key(auction_id: int) -> str:
        return f"auction:lock:{auction_id}"

    def acquire(self, auction_id: int):
        """
        Try to acquire lock with retry

        Returns: ((lock_key, request_id), retry_count)
        Raises: LockTimeout if can't acquire
        """
        lock_key = self.lock_key(auction_id)
        request_id = str(uuid.uuid4())

        for attempt in range(self.max_retries):
            acquired = self.redis.set(
                lock_key,
                request_id,
                nx=True,
                px=self.lock_expire_ms
            )

            if acquired:
                return (lock_key, request_id), attempt

            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay)

        raise LockTimeout(auction_id)

    def release(self, auction_id: int, token) -> None:
        """Release lock only if we own it"""
        lock_key, request_id = token
        try:
            self.redis.eval(self.UNLOCK_SCRIPT, 1, lock_key, request_id)
        except redis.RedisError as e:
            # The key expires on its own after lock_expire_ms
            logger.warning(f"⚠️  Error releasing lock {lock_key}: {e}")
