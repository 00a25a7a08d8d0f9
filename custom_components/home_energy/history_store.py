"""Persistent local sample store backed by Home Assistant storage."""

from __future__ import annotations

import asyncio
from bisect import bisect_left, bisect_right
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
import logging
import math
from typing import Any, Protocol

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .backend.sanitize import mask_identifier
from .const import DOMAIN, HISTORY_SAVE_DELAY, HISTORY_STORAGE_VERSION
from .domain.history import Sample

_LOGGER = logging.getLogger(__name__)


class StorageProto(Protocol):
    """Subset of ``homeassistant.helpers.storage.Store`` used here."""

    async def async_load(self) -> Any:
        """Return the persisted document or ``None``."""

    def async_delay_save(
        self, data_func: Callable[[], Any], delay: float = 0
    ) -> None:
        """Persist ``data_func()`` after ``delay`` seconds."""

    async def async_save(self, data: Any) -> None:
        """Persist ``data`` immediately."""


def _to_epoch(timestamp: datetime) -> int:
    """Return whole UTC seconds for ``timestamp``."""

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return int(timestamp.timestamp())


class SeriesHistoryStore:
    """Samples of one series, upserted by timestamp and kept in time order.

    Writes update memory immediately and schedule a delayed save, so a sample
    is visible to queries as soon as ``async_write`` returns.
    """

    def __init__(self, key: str, storage: StorageProto) -> None:
        """Bind the series key to its storage backend."""

        self._key = key
        self._storage = storage
        self._values: dict[int, float] = {}
        self._ordered: list[int] = []
        self._pruned_total = 0.0
        self._loaded = False
        self._load_lock = asyncio.Lock()

    @property
    def key(self) -> str:
        """Return the storage key of the series."""

        return self._key

    def __len__(self) -> int:
        """Return the number of stored samples."""

        return len(self._ordered)

    async def async_load(self) -> None:
        """Load persisted samples once."""

        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            data = await self._storage.async_load()
            samples = data.get("samples") if isinstance(data, Mapping) else None
            if isinstance(samples, Mapping):
                for raw_ts, raw_value in samples.items():
                    try:
                        ts = int(raw_ts)
                        value = float(raw_value)
                    except (TypeError, ValueError):
                        _LOGGER.debug(
                            "%s: dropping malformed stored sample %r=%r",
                            mask_identifier(self._key),
                            raw_ts,
                            raw_value,
                        )
                        continue
                    self._values[ts] = value
            self._ordered = sorted(self._values)
            pruned = data.get("pruned_total") if isinstance(data, Mapping) else None
            if isinstance(pruned, (int, float)) and math.isfinite(pruned):
                self._pruned_total = float(pruned)
            self._loaded = True
            _LOGGER.debug(
                "%s: loaded %d stored sample(s)",
                mask_identifier(self._key),
                len(self._ordered),
            )

    def _data_to_save(self) -> dict[str, Any]:
        """Return the JSON document persisted for the series."""

        return {
            "key": self._key,
            "samples": {str(ts): self._values[ts] for ts in self._ordered},
            "pruned_total": self._pruned_total,
        }

    @property
    def pruned_total(self) -> float:
        """Return the sum of every value dropped by ``async_prune``."""

        return self._pruned_total

    async def async_query(self, start: datetime, end: datetime) -> list[Sample]:
        """Return samples with ``start <= timestamp <= end`` in time order."""

        await self.async_load()
        lo = bisect_left(self._ordered, _to_epoch(start))
        hi = bisect_right(self._ordered, _to_epoch(end))
        return [
            Sample(datetime.fromtimestamp(ts, UTC), self._values[ts])
            for ts in self._ordered[lo:hi]
        ]

    async def async_latest(self) -> Sample | None:
        """Return the most recent stored sample."""

        await self.async_load()
        if not self._ordered:
            return None
        ts = self._ordered[-1]
        return Sample(datetime.fromtimestamp(ts, UTC), self._values[ts])

    async def async_write(self, timestamp: datetime, value: float) -> bool:
        """Upsert a sample; identical writes are no-ops returning False."""

        numeric = float(value)
        if not math.isfinite(numeric):
            raise ValueError(f"sample value must be finite: {value!r}")
        await self.async_load()
        ts = _to_epoch(timestamp)
        previous = self._values.get(ts)
        if previous == numeric:
            return False
        if previous is None:
            self._ordered.insert(bisect_left(self._ordered, ts), ts)
        self._values[ts] = numeric
        self._storage.async_delay_save(self._data_to_save, HISTORY_SAVE_DELAY)
        return True

    async def async_prune(self, before: datetime) -> int:
        """Drop samples older than ``before`` and return how many were dropped.

        Dropped values are added to ``pruned_total`` so running totals built
        from the remaining samples keep their absolute level.
        """

        await self.async_load()
        cut = bisect_left(self._ordered, _to_epoch(before))
        if not cut:
            return 0
        dropped = self._ordered[:cut]
        self._pruned_total += math.fsum(self._values.pop(ts) for ts in dropped)
        self._ordered = self._ordered[cut:]
        self._storage.async_delay_save(self._data_to_save, HISTORY_SAVE_DELAY)
        _LOGGER.debug(
            "%s: pruned %d sample(s) older than %s",
            mask_identifier(self._key),
            cut,
            before.isoformat(),
        )
        return cut

    async def async_flush(self) -> None:
        """Persist pending samples immediately."""

        if self._loaded:
            await self._storage.async_save(self._data_to_save())


StorageFactory = Callable[[str], StorageProto]


class HistoryStoreRegistry:
    """Hand out one ``SeriesHistoryStore`` per storage key."""

    def __init__(self, storage_factory: StorageFactory) -> None:
        """Store the factory used to create per-series storage."""

        self._storage_factory = storage_factory
        self._stores: dict[str, SeriesHistoryStore] = {}

    def get(self, key: str) -> SeriesHistoryStore:
        """Return the store for ``key``, creating it on first use."""

        store = self._stores.get(key)
        if store is None:
            store = SeriesHistoryStore(key, self._storage_factory(key))
            self._stores[key] = store
        return store

    async def async_query(
        self, key: str, start: datetime, end: datetime
    ) -> list[Sample]:
        """Return stored samples of ``key`` inside ``[start, end]``."""

        return await self.get(key).async_query(start, end)

    async def async_write(self, key: str, timestamp: datetime, value: float) -> bool:
        """Upsert a sample for ``key``."""

        return await self.get(key).async_write(timestamp, value)

    async def async_prune(self, key: str, before: datetime) -> int:
        """Drop samples of ``key`` older than ``before``."""

        return await self.get(key).async_prune(before)

    async def async_flush(self) -> None:
        """Persist every loaded store."""

        for store in list(self._stores.values()):
            await store.async_flush()


def storage_key_for(entry_id: str, resource_id: str) -> str:
    """Return the ``.storage`` key of a resource's history."""

    safe = "".join(ch if ch.isalnum() else "_" for ch in resource_id.lower())
    return f"{DOMAIN}_{entry_id}_{safe}"


def create_history_registry(hass: HomeAssistant) -> HistoryStoreRegistry:
    """Return a registry persisting each series under ``.storage``."""

    def _factory(key: str) -> StorageProto:
        return Store(hass, HISTORY_STORAGE_VERSION, key)

    return HistoryStoreRegistry(_factory)


__all__ = [
    "HistoryStoreRegistry",
    "SeriesHistoryStore",
    "create_history_registry",
    "storage_key_for",
]
