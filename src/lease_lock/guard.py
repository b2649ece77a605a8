import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .config import LockSettings
from .lock import Lock
from .models import GuardResult
from .retry import acquire_blocking
from .store import KeyValueStore

logger = logging.getLogger(__name__)


class LockGuard:
    """
    Run callables under a lease lock.

    Guarantees:
    - Handler runs only while this process holds the resource lock
    - Lock is released on every exit path
    - Handler errors are reported in the result, not raised

    Does NOT:
    - Retry handlers
    - Extend the lease while the handler runs (keep handlers under ttl)
    - Hide store failures (StoreUnavailable propagates)
    """

    def __init__(self, store: KeyValueStore, settings: Optional[LockSettings] = None):
        self._store = store
        self._settings = settings or LockSettings()

    def run(
        self,
        resource_key: str,
        handler: Callable[[], Any],
        ttl_seconds: Optional[int] = None,
        wait_timeout: float = 0,
    ) -> GuardResult:
        """
        Run `handler` while holding the lock on `resource_key`.

        Algorithm:
        1. Build a handle for the resource
        2. Acquire (polling up to wait_timeout seconds)
        3. Execute handler
        4. Release lock
        """
        start_time = datetime.now(timezone.utc)

        overrides = {}
        if ttl_seconds is not None:
            overrides["ttl_seconds"] = ttl_seconds
        lock = Lock.from_settings(self._store, resource_key, self._settings, **overrides)

        if wait_timeout > 0:
            acquired = acquire_blocking(lock, wait_timeout)
        else:
            acquired = lock.acquire()

        if not acquired:
            return GuardResult(
                acquired=False,
                success=False,
                output=None,
                error="Resource is locked by another holder",
                duration_ms=self._duration_ms(start_time),
            )

        try:
            try:
                output = handler()
                success = True
                error = None
            except Exception as exc:
                logger.debug("Handler for %s failed: %s", lock.key, exc)
                output = None
                success = False
                error = str(exc)

            return GuardResult(
                acquired=True,
                success=success,
                output=output,
                error=error,
                duration_ms=self._duration_ms(start_time),
            )

        finally:
            lock.release()

    @staticmethod
    def _duration_ms(start_time: datetime) -> int:
        return int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
