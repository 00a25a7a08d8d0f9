from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from conftest import utc
from custom_components.home_energy import statistics
from custom_components.home_energy.domain.history import Sample

T0 = utc(2024, 5, 1)


def _half_hourly(values: list[float]) -> list[Sample]:
    return [
        Sample(T0 + timedelta(minutes=30 * index), value)
        for index, value in enumerate(values)
    ]


def test_hourly_rows_sum_half_hours() -> None:
    rows = statistics.build_hourly_statistics(_half_hourly([1.0, 2.0, 0.5, 0.5, 3.0]))

    assert [row["start"] for row in rows] == [
        T0,
        T0 + timedelta(hours=1),
        T0 + timedelta(hours=2),
    ]
    assert [row["state"] for row in rows] == [3.0, 1.0, 3.0]
    assert [row["sum"] for row in rows] == [3.0, 4.0, 7.0]


def test_hourly_rows_accept_unordered_input() -> None:
    samples = list(reversed(_half_hourly([1.0, 1.0, 1.0, 1.0])))
    rows = statistics.build_hourly_statistics(samples)
    assert [row["sum"] for row in rows] == [2.0, 4.0]


def test_hourly_rows_start_from_base_sum() -> None:
    rows = statistics.build_hourly_statistics(_half_hourly([1.0, 1.0, 2.0]), base_sum=10.0)
    assert [row["sum"] for row in rows] == [12.0, 14.0]


def test_metadata_fields() -> None:
    metadata = statistics.build_statistic_metadata("home_energy:abc", "Electricity", "kWh")
    assert metadata["statistic_id"] == "home_energy:abc"
    assert metadata["source"] == "home_energy"
    assert metadata["has_sum"] is True
    assert metadata["has_mean"] is False
    assert metadata["unit_of_measurement"] == "kWh"


@pytest.mark.asyncio
async def test_publish_hands_rows_to_recorder(monkeypatch) -> None:
    calls: list[tuple[Any, dict[str, Any], list[dict[str, Any]]]] = []

    async def _fake_add(hass, metadata, rows) -> None:
        calls.append((hass, metadata, rows))

    monkeypatch.setattr(statistics, "_async_add_external_statistics", _fake_add)
    hass = object()

    count = await statistics.async_publish_statistics(
        hass, "home_energy:abc", "Electricity", "kWh", _half_hourly([1.0, 1.0])
    )

    assert count == 1
    assert calls[0][0] is hass
    assert calls[0][2][0]["sum"] == 2.0


@pytest.mark.asyncio
async def test_publish_without_samples_is_noop(monkeypatch) -> None:
    async def _fail(*_args) -> None:
        raise AssertionError("recorder should not be called")

    monkeypatch.setattr(statistics, "_async_add_external_statistics", _fail)
    assert await statistics.async_publish_statistics(object(), "home_energy:x", "x", None, []) == 0


@pytest.mark.asyncio
async def test_publish_rejects_entity_style_ids() -> None:
    with pytest.raises(ValueError):
        await statistics.async_publish_statistics(object(), "sensor.x", "x", None, [])
