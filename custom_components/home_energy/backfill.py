"""Historic time-series backfill for provider resources.

The synchronizer reconciles the local sample store with a provider that only
serves bounded windows. Each run inspects local coverage, plans the leading
and trailing gaps of the desired window, clamps them to the provider's data
range and walks them in chunks no larger than the provider accepts. Chunks are
written oldest first and never rolled back, so an interrupted run leaves the
store valid and the next run resumes from whatever is still missing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Protocol

from homeassistant.util import dt as dt_util

from .api import DataUnavailableError
from .backend.base import HistoryProviderProto
from .backend.sanitize import mask_identifier
from .const import DEFAULT_HISTORY_DAYS
from .domain.history import (
    BACKFILL_PERIOD,
    AggregationFunction,
    AggregationPeriod,
    Coverage,
    Gap,
    ProviderBounds,
    Sample,
    SeriesId,
    Window,
    max_span,
)

_LOGGER = logging.getLogger(__name__)

# Provider timestamps have one-second resolution and the last available instant
# is itself a reading, so the exclusive fetch end sits one resolution step past it.
LAST_AVAILABLE_RESOLUTION = timedelta(seconds=1)


class SampleStoreProto(Protocol):
    """Local time-series store keyed by series storage key."""

    async def async_query(
        self, key: str, start: datetime, end: datetime
    ) -> list[Sample]:
        """Return stored samples with ``start <= timestamp <= end``."""

    async def async_write(self, key: str, timestamp: datetime, value: float) -> bool:
        """Upsert one sample and return True when the store changed."""


async def async_inspect_coverage(
    store: SampleStoreProto, series: SeriesId, window: Window
) -> Coverage:
    """Reduce the stored samples inside ``window`` to their time extent."""

    samples = await store.async_query(series.storage_key, window.start, window.end)
    if not samples:
        return Coverage.empty()
    timestamps = [sample.timestamp for sample in samples]
    return Coverage(earliest=min(timestamps), latest=max(timestamps))


def plan_gaps(window: Window, coverage: Coverage) -> list[Gap]:
    """Return the parts of ``window`` that lie outside ``coverage``."""

    if window.start >= window.end:
        return []
    if coverage.is_empty:
        return [Gap(window.start, window.end)]

    earliest = coverage.earliest
    latest = coverage.latest
    assert earliest is not None and latest is not None  # noqa: S101

    gaps: list[Gap] = []
    if window.start < earliest:
        gaps.append(Gap(window.start, min(earliest, window.end)))
    if window.end > latest:
        gaps.append(Gap(max(latest, window.start), window.end))
    return gaps


async def async_resolve_bounds(
    provider: HistoryProviderProto, series: SeriesId
) -> ProviderBounds:
    """Fetch the provider's current data range for ``series``."""

    bounds = await provider.get_bounds(series.resource_id)
    _LOGGER.debug(
        "%s: provider bounds %s - %s",
        mask_identifier(series.resource_id),
        bounds.first_available.isoformat(),
        bounds.last_available.isoformat(),
    )
    return bounds


def clamp_gap(gap: Gap, bounds: ProviderBounds) -> Gap:
    """Restrict ``gap`` to the provider's data range.

    ``last_available`` is inclusive, so the reading stamped at it is fetched.
    Raises ``DataUnavailableError`` when nothing of the gap is available.
    """

    fetch_start = max(gap.start, bounds.first_available)
    fetch_end = min(gap.end, bounds.last_available + LAST_AVAILABLE_RESOLUTION)
    if fetch_start >= fetch_end:
        raise DataUnavailableError(
            f"no provider data between {gap.start.isoformat()} and {gap.end.isoformat()}"
        )
    return Gap(fetch_start, fetch_end)


def iter_chunks(
    start: datetime, end: datetime, step: timedelta
) -> Iterator[tuple[datetime, datetime]]:
    """Yield consecutive ``[t, t2)`` windows of at most ``step`` covering the range."""

    if step <= timedelta(0):
        raise ValueError("step must be positive")
    cursor = start
    while cursor < end:
        chunk_end = min(cursor + step, end)
        yield cursor, chunk_end
        cursor = chunk_end


@dataclass(slots=True)
class BackfillOutcome:
    """Counters describing one executed gap."""

    chunks: int = 0
    written: int = 0


class BackfillExecutor:
    """Fetch a gap chunk by chunk and persist every returned sample."""

    def __init__(
        self,
        provider: HistoryProviderProto,
        store: SampleStoreProto,
        *,
        period: AggregationPeriod = BACKFILL_PERIOD,
        function: AggregationFunction = AggregationFunction.SUM,
    ) -> None:
        """Bind the executor to its provider and local store."""

        self._provider = provider
        self._store = store
        self._period = period
        self._function = function

    @property
    def period(self) -> AggregationPeriod:
        """Return the aggregation period used for fetching."""

        return self._period

    async def async_execute(
        self, series: SeriesId, gap: Gap, bounds: ProviderBounds
    ) -> BackfillOutcome:
        """Backfill ``gap`` within ``bounds``; earlier chunks survive failures."""

        outcome = BackfillOutcome()
        try:
            fetch = clamp_gap(gap, bounds)
        except DataUnavailableError:
            _LOGGER.debug(
                "%s: gap %s - %s outside provider range; skipping",
                mask_identifier(series.resource_id),
                gap.start.isoformat(),
                gap.end.isoformat(),
            )
            return outcome

        for chunk_start, chunk_end in iter_chunks(
            fetch.start, fetch.end, max_span(self._period)
        ):
            samples = await self._provider.get_samples(
                series.resource_id,
                chunk_start,
                chunk_end,
                self._period,
                self._function,
            )
            outcome.chunks += 1
            written = 0
            for sample in samples:
                if await self._store.async_write(
                    series.storage_key, sample.timestamp, sample.value
                ):
                    written += 1
            outcome.written += written
            _LOGGER.debug(
                "%s: chunk %s - %s returned %d sample(s), %d new",
                mask_identifier(series.resource_id),
                chunk_start.isoformat(),
                chunk_end.isoformat(),
                len(samples),
                written,
            )
        if not outcome.written:
            _LOGGER.debug(
                "%s: gap %s - %s re-fetched with no new samples",
                mask_identifier(series.resource_id),
                fetch.start.isoformat(),
                fetch.end.isoformat(),
            )
        return outcome


@dataclass(slots=True)
class SyncResult:
    """Summary of one synchronization run for a series."""

    series: SeriesId
    window: Window
    gaps: list[Gap] = field(default_factory=list)
    bounds: ProviderBounds | None = None
    chunks: int = 0
    written: int = 0


class HistorySynchronizer:
    """Bring the local store up to date with a provider for the desired window."""

    def __init__(
        self,
        provider: HistoryProviderProto,
        store: SampleStoreProto,
        *,
        history_days: int = DEFAULT_HISTORY_DAYS,
        period: AggregationPeriod = BACKFILL_PERIOD,
        now: Callable[[], datetime] = dt_util.utcnow,
    ) -> None:
        """Initialise the synchronizer with its collaborators."""

        if history_days <= 0:
            raise ValueError("history_days must be positive")
        self._provider = provider
        self._store = store
        self._history_days = history_days
        self._now = now
        self._executor = BackfillExecutor(provider, store, period=period)

    @property
    def history_days(self) -> int:
        """Return the default length of the desired window."""

        return self._history_days

    def desired_window(self, days: int | None = None) -> Window:
        """Return the window ending now that runs should cover."""

        return Window.trailing(self._now(), days or self._history_days)

    async def async_sync(
        self, series: SeriesId, window: Window | None = None
    ) -> SyncResult:
        """Run one synchronization for ``series``.

        Authentication and communication errors propagate after any chunks
        already fetched have been written.
        """

        target = window or self.desired_window()
        result = SyncResult(series=series, window=target)

        coverage = await async_inspect_coverage(self._store, series, target)
        result.gaps = plan_gaps(target, coverage)
        if not result.gaps:
            _LOGGER.debug(
                "%s: history already covers %s - %s",
                mask_identifier(series.resource_id),
                target.start.isoformat(),
                target.end.isoformat(),
            )
            return result

        try:
            bounds = await async_resolve_bounds(self._provider, series)
        except DataUnavailableError:
            _LOGGER.debug(
                "%s: provider reports no data; nothing to backfill",
                mask_identifier(series.resource_id),
            )
            return result
        result.bounds = bounds

        for gap in result.gaps:
            outcome = await self._executor.async_execute(series, gap, bounds)
            result.chunks += outcome.chunks
            result.written += outcome.written

        _LOGGER.info(
            "%s: history sync complete gaps=%d chunks=%d new_samples=%d",
            mask_identifier(series.resource_id),
            len(result.gaps),
            result.chunks,
            result.written,
        )
        return result

    async def async_sync_many(
        self, series: Iterable[SeriesId], window: Window | None = None
    ) -> dict[SeriesId, SyncResult | Exception]:
        """Synchronize several series concurrently and collect their outcomes."""

        targets = list(dict.fromkeys(series))
        if not targets:
            return {}
        shared_window = window or self.desired_window()
        results = await asyncio.gather(
            *(self.async_sync(item, shared_window) for item in targets),
            return_exceptions=True,
        )
        outcomes: dict[SeriesId, SyncResult | Exception] = {}
        for item, res in zip(targets, results, strict=True):
            if isinstance(res, asyncio.CancelledError):
                raise res
            if isinstance(res, BaseException) and not isinstance(res, Exception):
                raise res
            if isinstance(res, Exception):
                _LOGGER.warning(
                    "%s: history sync failed: %s",
                    mask_identifier(item.resource_id),
                    res,
                )
            outcomes[item] = res
        return outcomes


__all__ = [
    "BackfillExecutor",
    "BackfillOutcome",
    "LAST_AVAILABLE_RESOLUTION",
    "HistorySynchronizer",
    "SampleStoreProto",
    "SyncResult",
    "async_inspect_coverage",
    "async_resolve_bounds",
    "clamp_gap",
    "iter_chunks",
    "plan_gaps",
]
