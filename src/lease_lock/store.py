import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """
    Shared store boundary consumed by Lock.

    Guarantees required from implementations:
    - Each operation is atomic with respect to other clients
    - swap() clears any TTL on the key (same as Redis SET ... GET)
    - Failures to reach the store raise StoreUnavailable
    """

    def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        ...

    def get(self, key: str) -> Optional[str]:
        ...

    def swap(self, key: str, value: str) -> Optional[str]:
        ...

    def delete(self, key: str) -> None:
        ...

    def expire(self, key: str, ttl_seconds: int) -> None:
        ...


@runtime_checkable
class SupportsCompareAndDelete(Protocol):
    """Optional store capability: delete a key only if it still holds `expected`."""

    def compare_and_delete(self, key: str, expected: str) -> bool:
        ...


class InMemoryStore:
    """
    In-memory reference implementation.

    Used for:
    - Tests
    - Local experiments
    - Demonstrating the store contract (TTL, swap, compare-and-delete)

    NOT for production: it only coordinates threads of one process.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, deadline or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, deadline = entry
        if deadline is not None and deadline <= self._clock():
            del self._data[key]
            return None
        return entry

    def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl_seconds)
            return True

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry is not None else None

    def swap(self, key: str, value: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            self._data[key] = (value, None)
            return entry[0] if entry is not None else None

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def expire(self, key: str, ttl_seconds: int) -> None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return
            self._data[key] = (entry[0], self._clock() + ttl_seconds)

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[0] != expected:
                return False
            del self._data[key]
            return True

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime of a key, None if absent or persistent."""
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return entry[1] - self._clock()


_COMPARE_AND_DELETE_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


@contextmanager
def _store_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.debug("Redis %s failed for %s: %s", operation, key, exc)
        raise StoreUnavailable(f"Redis {operation} failed for {key}: {exc}") from exc


def _text(value: Union[str, bytes, None]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    # undecodable bytes must still reach StoredLockValue.decode as "no lock"
    return value.decode("utf-8", errors="replace")


class RedisStore:
    """
    KeyValueStore backed by a single Redis node.

    Maps the store contract onto native commands:
    - set_if_absent -> SET NX EX
    - swap          -> SET ... GET (Redis >= 6.2)
    - compare_and_delete -> Lua GET/DEL script

    Does NOT give exclusivity across replicas or cluster failover.
    """

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStore":
        return cls(redis.Redis.from_url(url, **kwargs))

    def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        with _store_errors("SET NX", key):
            return bool(self._redis.set(key, value, nx=True, ex=ttl_seconds))

    def get(self, key: str) -> Optional[str]:
        with _store_errors("GET", key):
            return _text(self._redis.get(key))

    def swap(self, key: str, value: str) -> Optional[str]:
        with _store_errors("SET GET", key):
            return _text(self._redis.set(key, value, get=True))

    def delete(self, key: str) -> None:
        with _store_errors("DEL", key):
            self._redis.delete(key)

    def expire(self, key: str, ttl_seconds: int) -> None:
        with _store_errors("EXPIRE", key):
            self._redis.expire(key, ttl_seconds)

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with _store_errors("EVAL", key):
            return bool(self._redis.eval(_COMPARE_AND_DELETE_LUA, 1, key, expected))

    def close(self) -> None:
        self._redis.close()
