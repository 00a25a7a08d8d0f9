# ruff: noqa: D100,D101,D102,D103,D104,D105,D106,D107,INP001
from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta
import inspect
from typing import Any

import pytest

from custom_components.home_energy.domain.history import (
    AggregationFunction,
    AggregationPeriod,
    ProviderBounds,
    Sample,
)
from custom_components.home_energy.history_store import HistoryStoreRegistry


def pytest_configure(config: pytest.Config) -> None:
    """Register custom pytest markers used across the suite."""

    if not config.pluginmanager.hasplugin("pytest_asyncio"):
        config.addinivalue_line(
            "markers", "asyncio: mark test as requiring asyncio event loop support."
        )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async tests when pytest-asyncio is unavailable."""

    if pyfuncitem.config.pluginmanager.hasplugin("pytest_asyncio"):
        return None

    testfunction = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testfunction):
        return None

    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None

    with asyncio.Runner(debug=False) as runner:
        runner.run(testfunction(**pyfuncitem.funcargs))
    return True


def utc(*args: int) -> datetime:
    """Return an aware UTC datetime."""

    return datetime(*args, tzinfo=UTC)


class FakeStorage:
    """In-memory replacement for ``homeassistant.helpers.storage.Store``."""

    def __init__(self, data: Any = None) -> None:
        self.data = data
        self.load_calls = 0
        self.delay_save_calls = 0
        self.saved: list[Any] = []
        self._pending: Callable[[], Any] | None = None

    async def async_load(self) -> Any:
        self.load_calls += 1
        return self.data

    def async_delay_save(self, data_func: Callable[[], Any], delay: float = 0) -> None:
        self.delay_save_calls += 1
        self._pending = data_func

    async def async_save(self, data: Any) -> None:
        self.saved.append(data)
        self.data = data

    def flush_pending(self) -> None:
        if self._pending is not None:
            self.data = self._pending()
            self._pending = None


class FakeStorageFactory:
    """Storage factory remembering every created storage by key."""

    def __init__(self) -> None:
        self.storages: dict[str, FakeStorage] = {}

    def __call__(self, key: str) -> FakeStorage:
        return self.storages.setdefault(key, FakeStorage())


class FakeHistoryProvider:
    """Provider serving half-hourly readings from a fixed data range."""

    def __init__(
        self,
        first: datetime,
        last: datetime,
        *,
        value: float = 0.5,
        step: timedelta = timedelta(minutes=30),
    ) -> None:
        self.first = first
        self.last = last
        self.value = value
        self.step = step
        self.bounds_calls: list[str] = []
        self.fetches: list[tuple[str, datetime, datetime, AggregationPeriod, AggregationFunction]] = []
        self.fail_on_fetch: dict[int, Exception] = {}
        self.bounds_error: Exception | None = None

    async def get_bounds(self, resource_id: str) -> ProviderBounds:
        self.bounds_calls.append(resource_id)
        if self.bounds_error is not None:
            raise self.bounds_error
        return ProviderBounds(first_available=self.first, last_available=self.last)

    async def get_samples(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        period: AggregationPeriod,
        function: AggregationFunction,
    ) -> Sequence[Sample]:
        index = len(self.fetches)
        self.fetches.append((resource_id, start, end, period, function))
        error = self.fail_on_fetch.get(index)
        if error is not None:
            raise error
        samples: list[Sample] = []
        cursor = start
        while cursor < end:
            if self.first <= cursor <= self.last:
                samples.append(Sample(cursor, self.value))
            cursor += self.step
        return samples


@pytest.fixture
def storage_factory() -> FakeStorageFactory:
    return FakeStorageFactory()


@pytest.fixture
def registry(storage_factory: FakeStorageFactory) -> HistoryStoreRegistry:
    return HistoryStoreRegistry(storage_factory)


async def seed_samples(
    registry: HistoryStoreRegistry, key: str, timestamps: Iterable[datetime], value: float = 1.0
) -> None:
    """Write ``value`` at every timestamp of ``timestamps``."""

    for ts in timestamps:
        await registry.async_write(key, ts, value)


def half_hours(start: datetime, end: datetime) -> list[datetime]:
    """Return half-hour instants in ``[start, end]``."""

    result: list[datetime] = []
    cursor = start
    while cursor <= end:
        result.append(cursor)
        cursor += timedelta(minutes=30)
    return result
