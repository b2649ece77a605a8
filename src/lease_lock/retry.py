import logging
import time
from typing import Callable

from .lock import Lock

logger = logging.getLogger(__name__)


def acquire_blocking(
    lock: Lock,
    timeout: float,
    poll_interval: float = 0.1,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Poll lock.acquire() until it succeeds or `timeout` seconds pass.

    Args:
        lock: Handle to acquire
        timeout: Max seconds to wait (0 = single probe)
        poll_interval: Seconds between probes

    Returns:
        True if acquired, False on timeout

    Store failures are not retried; they propagate.
    """
    if timeout < 0:
        raise ValueError(f"timeout must be >= 0, got {timeout!r}")
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be > 0, got {poll_interval!r}")

    start = clock()
    attempts = 1
    if lock.acquire():
        return True

    while True:
        remaining = timeout - (clock() - start)
        if remaining <= 0:
            break
        sleep(min(poll_interval, remaining))
        attempts += 1
        if lock.acquire():
            logger.debug("Acquired lock %s after %d attempts", lock.key, attempts)
            return True

    logger.debug("Gave up on lock %s after %.2fs (%d attempts)", lock.key, timeout, attempts)
    return False
