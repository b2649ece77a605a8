class LockError(Exception):
    """Base class for lease_lock errors."""


class StoreUnavailable(LockError):
    """The backing key-value store could not be reached or timed out."""


class LockNotAcquired(LockError):
    """Raised by the scoped `with lock:` form when another holder owns the lock."""

    def __init__(self, key: str):
        super().__init__(f"Lock {key} is held by another owner")
        self.key = key
