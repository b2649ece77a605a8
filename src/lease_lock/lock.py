import logging
import os
import random
import socket
import sys
import time
import uuid
from typing import Callable, Optional

from .config import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_RECLAIM_MIN_TTL,
    DEFAULT_RECLAIM_PROBABILITY,
    DEFAULT_TTL_SECONDS,
    LockSettings,
)
from .errors import LockNotAcquired
from .models import LockState, StoredLockValue
from .store import KeyValueStore, SupportsCompareAndDelete

logger = logging.getLogger(__name__)


def default_token() -> str:
    """Owner token unique per handle: host, pid and a random uuid."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex}"


class Lock:
    """
    Lease lock on a single resource key in a shared key-value store.

    One handle per (resource, process). Guarantees:
    - Non-blocking acquisition (acquire() is a single probe)
    - Lease expiry through the store's TTL if the holder never releases
    - Stale leases can be reclaimed by a waiter through a verified swap
    - release() only ever clears this handle's own entry

    Does NOT:
    - Retry or wait (see retry.acquire_blocking)
    - Order or queue waiters
    - Guarantee exclusivity across store replicas

    A handle is not thread-safe; share it between threads only under
    external synchronization.
    """

    def __init__(
        self,
        store: KeyValueStore,
        resource_key: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        reclaim_probability: float = DEFAULT_RECLAIM_PROBABILITY,
        reclaim_min_ttl: int = DEFAULT_RECLAIM_MIN_TTL,
        token_factory: Optional[Callable[[], str]] = None,
        clock: Callable[[], float] = time.time,
        random_source: Callable[[], float] = random.random,
    ):
        if not isinstance(resource_key, str) or not resource_key:
            raise ValueError("resource_key must be a non-empty string")
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a positive integer, got {ttl_seconds!r}")
        if not 0.0 <= reclaim_probability <= 1.0:
            raise ValueError(f"reclaim_probability must be within [0, 1], got {reclaim_probability!r}")

        self._store = store
        self._resource_key = resource_key
        self._key = key_prefix + resource_key
        self._ttl = ttl_seconds
        self._reclaim_probability = reclaim_probability
        self._reclaim_min_ttl = reclaim_min_ttl
        self._clock = clock
        self._random = random_source
        self._token = (token_factory or default_token)()
        self._state = LockState.UNLOCKED

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        resource_key: str,
        settings: LockSettings,
        **overrides,
    ) -> "Lock":
        options = {
            "ttl_seconds": settings.ttl_seconds,
            "key_prefix": settings.key_prefix,
            "reclaim_probability": settings.reclaim_probability,
            "reclaim_min_ttl": settings.reclaim_min_ttl,
        }
        options.update(overrides)
        return cls(store, resource_key, **options)

    # ---------- properties ----------

    @property
    def key(self) -> str:
        return self._key

    @property
    def resource_key(self) -> str:
        return self._resource_key

    @property
    def owner_token(self) -> str:
        return self._token

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def locked(self) -> bool:
        return self._state == LockState.LOCKED

    # ---------- protocol ----------

    def acquire(self) -> bool:
        """
        Try once to take the lock.

        Algorithm:
        1. Already held by this handle -> True, no store call
        2. SET-if-absent with our token and deadline
        3. On contention, occasionally probe for a stale lease and take it
           over with a swap verified against the value just read

        Returns:
            True if this handle now holds the lock
            False if another holder owns it or won a reclamation race
        """
        if self._state == LockState.LOCKED:
            return True

        now = int(self._clock())
        value = StoredLockValue(expires_at=now + self._ttl, owner_token=self._token).encode()

        if self._store.set_if_absent(self._key, value, self._ttl):
            self._mark_locked()
            logger.debug("Acquired lock %s", self._key)
            return True

        if self._should_reclaim() and self._reclaim(now, value):
            self._mark_locked()
            logger.info("Reclaimed stale lock %s", self._key)
            return True

        logger.debug("Lock %s is held by another owner", self._key)
        return False

    def release(self) -> None:
        """
        Release the lock if this handle holds it.

        The stored entry is only removed while it still carries our token.
        Local state returns to UNLOCKED even when the entry was already
        reclaimed by someone else, or when a store call fails.
        """
        if self._state != LockState.LOCKED:
            return

        try:
            raw = self._store.get(self._key)
            current = StoredLockValue.decode(raw)

            if current is None or current.owner_token != self._token:
                logger.debug("Lock %s no longer owned by this handle, skipping delete", self._key)
                return

            if isinstance(self._store, SupportsCompareAndDelete):
                self._store.compare_and_delete(self._key, raw)
            else:
                self._store.delete(self._key)
            logger.debug("Released lock %s", self._key)
        finally:
            self._state = LockState.UNLOCKED

    # ---------- scoped use ----------

    def __enter__(self) -> "Lock":
        if not self.acquire():
            raise LockNotAcquired(self._key)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __del__(self):
        if sys.is_finalizing():
            return
        # __init__ may have failed before state was set
        if getattr(self, "_state", None) != LockState.LOCKED:
            return
        try:
            self.release()
        except Exception as exc:
            logger.warning("Failed to release lock %s on teardown: %s", self._key, exc)

    def __repr__(self) -> str:
        return f"Lock(key={self._key!r}, ttl_seconds={self._ttl}, state={self._state.value})"

    # ---------- helpers ----------

    def _mark_locked(self) -> None:
        self._state = LockState.LOCKED
        # covers stores without atomic set-with-expiry, and swap() clearing the TTL
        self._store.expire(self._key, self._ttl)

    def _should_reclaim(self) -> bool:
        if self._ttl <= self._reclaim_min_ttl:
            return False
        return self._random() < self._reclaim_probability

    def _reclaim(self, now: int, value: str) -> bool:
        seen = self._store.get(self._key)
        current = StoredLockValue.decode(seen)

        if current is None:
            return False

        if not current.is_expired(now):
            return False

        previous = self._store.swap(self._key, value)
        if previous != seen:
            # our swap cleared the TTL on the winner's entry
            self._store.expire(self._key, self._ttl)
            logger.debug("Lost reclamation race for %s", self._key)
            return False

        return True
