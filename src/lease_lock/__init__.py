"""
Lease-based mutual exclusion over a shared key-value store.

Public API surface for the lease_lock package.
Internal modules should not be imported directly by consumers.
"""

from .config import LockSettings
from .errors import LockError, LockNotAcquired, StoreUnavailable
from .guard import LockGuard
from .lock import Lock, default_token
from .models import GuardResult, LockState, StoredLockValue
from .retry import acquire_blocking
from .store import InMemoryStore, KeyValueStore, RedisStore, SupportsCompareAndDelete

__all__ = [
    "Lock",
    "LockGuard",
    "LockSettings",
    "LockState",
    "StoredLockValue",
    "GuardResult",
    "KeyValueStore",
    "SupportsCompareAndDelete",
    "InMemoryStore",
    "RedisStore",
    "LockError",
    "LockNotAcquired",
    "StoreUnavailable",
    "acquire_blocking",
    "default_token",
]

__version__ = "0.1.0"
