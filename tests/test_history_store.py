from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import FakeStorage, utc
from custom_components.home_energy.history_store import (
    HistoryStoreRegistry,
    SeriesHistoryStore,
    storage_key_for,
)

T0 = utc(2024, 5, 1)


@pytest.mark.asyncio
async def test_write_is_upsert_and_reports_changes() -> None:
    storage = FakeStorage()
    store = SeriesHistoryStore("key", storage)

    assert await store.async_write(T0, 1.5) is True
    assert await store.async_write(T0, 1.5) is False
    assert await store.async_write(T0, 2.0) is True
    assert len(store) == 1
    assert storage.delay_save_calls == 2
    assert (await store.async_latest()).value == 2.0


@pytest.mark.asyncio
async def test_query_is_inclusive_and_ordered() -> None:
    store = SeriesHistoryStore("key", FakeStorage())
    for offset in (3, 1, 2, 0):
        await store.async_write(T0 + timedelta(minutes=30 * offset), float(offset))

    samples = await store.async_query(T0, T0 + timedelta(minutes=60))

    assert [s.value for s in samples] == [0.0, 1.0, 2.0]
    assert samples[0].timestamp == T0


@pytest.mark.asyncio
async def test_rejects_non_finite_values() -> None:
    store = SeriesHistoryStore("key", FakeStorage())
    with pytest.raises(ValueError):
        await store.async_write(T0, float("nan"))


@pytest.mark.asyncio
async def test_load_and_persist_round_trip() -> None:
    storage = FakeStorage()
    store = SeriesHistoryStore("key", storage)
    await store.async_write(T0, 4.25)
    storage.flush_pending()

    reloaded = SeriesHistoryStore("key", FakeStorage(storage.data))
    samples = await reloaded.async_query(T0, T0)

    assert storage.data["samples"] == {str(int(T0.timestamp())): 4.25}
    assert [s.value for s in samples] == [4.25]


@pytest.mark.asyncio
async def test_malformed_stored_samples_are_dropped() -> None:
    ts = str(int(T0.timestamp()))
    storage = FakeStorage({"samples": {ts: 1.0, "bogus": 2.0, "12": "x"}})
    store = SeriesHistoryStore("key", storage)

    assert await store.async_latest() is not None
    assert len(store) == 1
    assert storage.load_calls == 1


@pytest.mark.asyncio
async def test_empty_store_latest_is_none() -> None:
    assert await SeriesHistoryStore("key", FakeStorage()).async_latest() is None


@pytest.mark.asyncio
async def test_registry_reuses_store_and_flushes(storage_factory) -> None:
    registry = HistoryStoreRegistry(storage_factory)
    assert registry.get("a") is registry.get("a")

    await registry.async_write("a", T0, 1.0)
    await registry.async_flush()

    assert storage_factory.storages["a"].saved[-1]["samples"]
    assert await registry.async_query("b", T0, T0) == []


def test_storage_key_is_sanitised() -> None:
    assert storage_key_for("entry1", "Ab-12/x") == "home_energy_entry1_ab_12_x"


@pytest.mark.asyncio
async def test_prune_drops_old_samples_and_keeps_their_total() -> None:
    storage = FakeStorage()
    store = SeriesHistoryStore("key", storage)
    for offset, value in enumerate((1.0, 2.0, 4.0)):
        await store.async_write(T0 + timedelta(hours=offset), value)

    assert await store.async_prune(T0 + timedelta(hours=2)) == 2
    assert await store.async_prune(T0 + timedelta(hours=2)) == 0

    assert [s.value for s in await store.async_query(T0, T0 + timedelta(days=1))] == [4.0]
    assert store.pruned_total == 3.0
    storage.flush_pending()
    assert storage.data["pruned_total"] == 3.0

    reloaded = SeriesHistoryStore("key", FakeStorage(storage.data))
    await reloaded.async_load()
    assert reloaded.pruned_total == 3.0
    assert len(reloaded) == 1
