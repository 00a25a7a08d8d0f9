"""Time-bounded response cache for slow-changing provider payloads."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from datetime import timedelta
import logging
import time
from typing import Generic, TypeVar

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

MonotonicCallable = Callable[[], float]


@dataclass(slots=True)
class CacheEntry(Generic[_T]):
    """Cached payload with the monotonic time it was produced."""

    payload: _T
    produced_at: float


class ResponseCache(Generic[_T]):
    """Memoise one payload per key for a fixed time-to-live.

    An entry is served while ``now < produced_at + ttl``. Concurrent misses for
    the same key each invoke the producer; the last result wins.
    """

    def __init__(
        self,
        ttl: timedelta,
        *,
        monotonic: MonotonicCallable = time.monotonic,
    ) -> None:
        """Configure the cache lifetime and clock."""

        if ttl < timedelta(0):
            raise ValueError("ttl must not be negative")
        self._ttl = ttl.total_seconds()
        self._monotonic = monotonic
        self._entries: dict[Hashable, CacheEntry[_T]] = {}

    @property
    def ttl(self) -> timedelta:
        """Return the configured time-to-live."""

        return timedelta(seconds=self._ttl)

    def get(self, key: Hashable) -> _T | None:
        """Return the cached payload for ``key`` when still valid."""

        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._monotonic() < entry.produced_at + self._ttl:
            return entry.payload
        return None

    async def async_get_or_fetch(
        self, key: Hashable, producer: Callable[[], Awaitable[_T]]
    ) -> _T:
        """Return a valid cached payload or await ``producer`` and cache it.

        Producer exceptions propagate and leave the previous entry untouched.
        """

        entry = self._entries.get(key)
        now = self._monotonic()
        if entry is not None and now < entry.produced_at + self._ttl:
            _LOGGER.debug("Response cache hit for %s", key)
            return entry.payload

        payload = await producer()
        self._entries[key] = CacheEntry(payload=payload, produced_at=now)
        return payload

    def invalidate(self, key: Hashable) -> None:
        """Drop the entry stored for ``key``."""

        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""

        self._entries.clear()

    def __len__(self) -> int:
        """Return the number of stored entries, expired or not."""

        return len(self._entries)


__all__ = ["CacheEntry", "ResponseCache"]
