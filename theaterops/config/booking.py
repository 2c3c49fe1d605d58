"""
theaterops.config.booking – theater booking ledger tunables.

Env vars: BOOKING_LOCK_TTL_SECONDS, BOOKING_MAX_ACTIVE_LOCKS.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class BookingConfig:
    """Provisional lock lifetime and the per-user cap on concurrent locks."""

    lock_ttl_seconds: int = 300
    max_active_locks: int = 3

    def __post_init__(self) -> None:
        if not isinstance(self.lock_ttl_seconds, int) or self.lock_ttl_seconds < 1:
            raise ValueError(f"lock_ttl_seconds must be an integer >= 1, got {self.lock_ttl_seconds!r}")
        if not isinstance(self.max_active_locks, int) or self.max_active_locks < 1:
            raise ValueError(f"max_active_locks must be an integer >= 1, got {self.max_active_locks!r}")

    @property
    def lock_ttl(self) -> timedelta:
        return timedelta(seconds=self.lock_ttl_seconds)

    @classmethod
    def from_env(cls, **overrides: object) -> BookingConfig:
        ttl = overrides.get("lock_ttl_seconds")
        if ttl is None:
            ttl = os.environ.get("BOOKING_LOCK_TTL_SECONDS", 300)
        cap = overrides.get("max_active_locks")
        if cap is None:
            cap = os.environ.get("BOOKING_MAX_ACTIVE_LOCKS", 3)
        return cls(lock_ttl_seconds=int(ttl), max_active_locks=int(cap))


def load_booking_config(**overrides: object) -> BookingConfig:
    return BookingConfig.from_env(**overrides)
