"""Process-local key/value cache with a fixed 24-hour time-to-live.

Expiry is evaluated lazily: on ``get`` and during ``sweep``. There is no
background timer. The lock guards only the dict operations; fetching a
missing value is the caller's job and happens outside it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

T = TypeVar("T")

CACHE_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and the moment it was stored."""

    value: T
    stored_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now - self.stored_at >= CACHE_TTL


class ExpiringCache(Generic[T]):
    """Thread-safe map whose entries expire 24 hours after insertion.

    Parameters
    ----------
    clock : Callable[[], datetime] | None
        Source of the current time. Defaults to ``datetime.now(UTC)``.
        Tests inject a controllable clock.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utcnow
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        """Return the value for ``key`` if present and unexpired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value: T) -> None:
        """Store ``value`` stamped with the current time, replacing any prior entry."""
        entry = CacheEntry(value=value, stored_at=self._clock())
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()
