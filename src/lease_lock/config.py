"""Lock settings loader."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

DEFAULT_KEY_PREFIX = "redis-lock-"
DEFAULT_TTL_SECONDS = 5
DEFAULT_RECLAIM_PROBABILITY = 0.05
DEFAULT_RECLAIM_MIN_TTL = 5


class LockSettings(BaseModel):
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = DEFAULT_KEY_PREFIX
    ttl_seconds: int = Field(default=DEFAULT_TTL_SECONDS, gt=0)
    # chance that a contended acquire probes for a stale lock
    reclaim_probability: float = Field(default=DEFAULT_RECLAIM_PROBABILITY, ge=0.0, le=1.0)
    # leases this short or shorter never trigger reclamation
    reclaim_min_ttl: int = Field(default=DEFAULT_RECLAIM_MIN_TTL, ge=0)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = "LEASE_LOCK_",
    ) -> "LockSettings":
        """
        Build settings from environment variables.

        Reads <prefix>REDIS_URL, KEY_PREFIX, TTL_SECONDS, RECLAIM_PROBABILITY
        and RECLAIM_MIN_TTL. Unset or blank variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        data = {}
        for name in cls.model_fields:
            raw = env.get(f"{prefix}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            data[name] = raw.strip()
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid lock settings: {exc}") from exc
