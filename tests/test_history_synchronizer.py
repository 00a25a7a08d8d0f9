from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from conftest import FakeHistoryProvider, seed_samples, utc
from custom_components.home_energy.api import (
    AuthenticationError,
    CommunicationError,
    DataUnavailableError,
)
from custom_components.home_energy.backfill import HistorySynchronizer, SyncResult
from custom_components.home_energy.domain.history import Gap, SeriesId, Window

NOW = utc(2025, 1, 1)
SERIES = SeriesId("res-elec", "home_energy_entry_res_elec")


def _days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def _synchronizer(provider, registry, **kwargs) -> HistorySynchronizer:
    return HistorySynchronizer(provider, registry, now=lambda: NOW, **kwargs)


@pytest.mark.asyncio
async def test_partial_store_narrow_provider_scenario(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(300), NOW)
    seeded = [_days_ago(days) for days in range(200, 99, -1)]
    await seed_samples(registry, SERIES.storage_key, seeded, value=0.5)
    sync = _synchronizer(provider, registry, history_days=365)

    result = await sync.async_sync(SERIES)

    assert result.gaps == [
        Gap(_days_ago(365), _days_ago(200)),
        Gap(_days_ago(100), NOW),
    ]
    assert provider.bounds_calls == ["res-elec"]
    assert len(provider.fetches) == 20
    assert result.chunks == 20
    assert provider.fetches[0][1] == _days_ago(300)
    assert provider.fetches[9][2] == _days_ago(200)
    assert provider.fetches[10][1] == _days_ago(100)
    assert provider.fetches[19][2] == NOW
    # The boundary sample at 100 days ago already existed with the same value.
    assert result.written == 100 * 48 + 100 * 48 - 1


@pytest.mark.asyncio
async def test_second_run_adds_nothing(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    sync = _synchronizer(provider, registry, history_days=30)

    first = await sync.async_sync(SERIES)
    size_after_first = len(registry.get(SERIES.storage_key))
    second = await sync.async_sync(SERIES)

    assert first.written == 30 * 48
    assert second.written == 0
    assert len(registry.get(SERIES.storage_key)) == size_after_first


@pytest.mark.asyncio
async def test_empty_store_plans_whole_window(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    sync = _synchronizer(provider, registry, history_days=5)

    result = await sync.async_sync(SERIES)

    assert result.window == Window(_days_ago(5), NOW)
    assert result.gaps == [Gap(_days_ago(5), NOW)]
    assert result.chunks == 1


@pytest.mark.asyncio
async def test_samples_outside_window_are_ignored(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    await seed_samples(registry, SERIES.storage_key, [_days_ago(20)])
    sync = _synchronizer(provider, registry, history_days=5)

    result = await sync.async_sync(SERIES)

    assert result.gaps == [Gap(_days_ago(5), NOW)]


@pytest.mark.asyncio
async def test_covered_window_skips_provider(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    await seed_samples(registry, SERIES.storage_key, [_days_ago(5), NOW])
    sync = _synchronizer(provider, registry, history_days=5)

    result = await sync.async_sync(SERIES)

    assert result.gaps == []
    assert provider.bounds_calls == []
    assert provider.fetches == []


@pytest.mark.asyncio
async def test_explicit_window_overrides_history_days(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    sync = _synchronizer(provider, registry, history_days=365)
    window = Window(_days_ago(2), _days_ago(1))

    result = await sync.async_sync(SERIES, window)

    assert result.gaps == [Gap(window.start, window.end)]
    assert len(provider.fetches) == 1


@pytest.mark.asyncio
async def test_provider_without_data_is_nothing_to_do(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    provider.bounds_error = DataUnavailableError("no data")
    sync = _synchronizer(provider, registry, history_days=5)

    result = await sync.async_sync(SERIES)

    assert result.bounds is None
    assert result.chunks == 0
    assert provider.fetches == []


@pytest.mark.asyncio
async def test_bounds_auth_error_propagates(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    provider.bounds_error = AuthenticationError("expired")
    sync = _synchronizer(provider, registry, history_days=5)

    with pytest.raises(AuthenticationError):
        await sync.async_sync(SERIES)


@pytest.mark.asyncio
async def test_trailing_gap_clamped_to_last_available(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), _days_ago(2))
    sync = _synchronizer(provider, registry, history_days=5)

    result = await sync.async_sync(SERIES)

    assert result.chunks == 1
    assert provider.fetches[0][1] == _days_ago(5)
    assert provider.fetches[0][2] == _days_ago(2) + timedelta(seconds=1)


@pytest.mark.asyncio
async def test_latest_reading_at_last_available_is_stored(registry) -> None:
    last = NOW - timedelta(hours=2)
    provider = FakeHistoryProvider(_days_ago(40), last)
    sync = _synchronizer(provider, registry, history_days=2)

    first = await sync.async_sync(SERIES)
    second = await sync.async_sync(SERIES)

    latest = await registry.get(SERIES.storage_key).async_latest()
    assert latest.timestamp == last
    assert first.written == 2 * 48 - 3
    assert second.gaps == [Gap(last, NOW)]
    assert second.written == 0


@pytest.mark.asyncio
async def test_interrupted_run_resumes(registry) -> None:
    provider = FakeHistoryProvider(_days_ago(40), NOW)
    provider.fail_on_fetch[1] = CommunicationError("timeout")
    sync = _synchronizer(provider, registry, history_days=30)

    with pytest.raises(CommunicationError):
        await sync.async_sync(SERIES)
    provider.fail_on_fetch.clear()
    result = await sync.async_sync(SERIES)

    # First chunk survived, so only the trailing remainder is planned.
    assert result.gaps == [Gap(_days_ago(20) - timedelta(minutes=30), NOW)]
    stored = await registry.async_query(SERIES.storage_key, _days_ago(30), NOW)
    assert len(stored) == 30 * 48


class _FailingForResource(FakeHistoryProvider):
    def __init__(self, *args, failing: str, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failing = failing

    async def get_samples(self, resource_id, start, end, period, function):
        if resource_id == self.failing:
            raise CommunicationError("provider error", status=500)
        return await super().get_samples(resource_id, start, end, period, function)


@pytest.mark.asyncio
async def test_sync_many_isolates_failures(registry) -> None:
    provider = _FailingForResource(_days_ago(40), NOW, failing="res-gas")
    gas = SeriesId("res-gas", "home_energy_entry_res_gas")
    sync = _synchronizer(provider, registry, history_days=2)

    outcomes = await sync.async_sync_many([SERIES, gas, SERIES])

    assert set(outcomes) == {SERIES, gas}
    assert isinstance(outcomes[SERIES], SyncResult)
    assert outcomes[SERIES].written == 2 * 48
    assert isinstance(outcomes[gas], CommunicationError)


@pytest.mark.asyncio
async def test_sync_many_empty() -> None:
    sync = HistorySynchronizer(FakeHistoryProvider(NOW, NOW), None, now=lambda: NOW)
    assert await sync.async_sync_many([]) == {}


def test_history_days_must_be_positive(registry) -> None:
    with pytest.raises(ValueError):
        HistorySynchronizer(FakeHistoryProvider(NOW, NOW), registry, history_days=0)
