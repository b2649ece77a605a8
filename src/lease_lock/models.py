import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class LockState(str, Enum):
    """
    Local state of a lock handle.

    State transitions:
        UNLOCKED -> LOCKED -> UNLOCKED
    """

    UNLOCKED = "UNLOCKED"
    LOCKED = "LOCKED"


@dataclass(frozen=True)
class StoredLockValue:
    """
    Value persisted under the lock key.

    Carries the lease deadline so waiters can detect a stale lock, and the
    owner token so holders only ever clear their own entry.
    """

    expires_at: int
    owner_token: str

    def encode(self) -> str:
        return json.dumps(
            {"expires_at": self.expires_at, "owner": self.owner_token},
            separators=(",", ":"),
            sort_keys=True,
        )

    @classmethod
    def decode(cls, raw: Union[str, bytes, None]) -> Optional["StoredLockValue"]:
        """
        Parse a raw stored value.

        Returns:
            StoredLockValue if the value is well formed
            None if absent or malformed (treated as "no lock held")
        """
        if raw is None:
            return None

        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                return None

        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None

        if not isinstance(data, dict):
            return None

        expires_at = data.get("expires_at")
        owner = data.get("owner")

        # bool is an int subclass
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            return None
        if not isinstance(owner, str):
            return None

        return cls(expires_at=expires_at, owner_token=owner)

    def is_expired(self, now: int) -> bool:
        return self.expires_at < now


@dataclass(frozen=True)
class GuardResult:
    """
    Result returned from LockGuard.run().

    acquired=False means the handler never ran because another holder owns
    the resource.
    """

    acquired: bool
    success: bool
    output: Optional[Any]
    error: Optional[str]
    duration_ms: int
