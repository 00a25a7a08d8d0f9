from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import utc
from custom_components.home_energy.domain.history import (
    BACKFILL_PERIOD,
    AggregationPeriod,
    Coverage,
    Gap,
    SeriesId,
    Window,
    max_span,
)


@pytest.mark.parametrize(
    ("period", "days"),
    [
        (AggregationPeriod.PT30M, 10),
        (AggregationPeriod.PT1H, 31),
        (AggregationPeriod.P1D, 31),
        (AggregationPeriod.P1W, 42),
        (AggregationPeriod.P1M, 366),
        (AggregationPeriod.P1Y, 366),
    ],
)
def test_max_span_matches_provider_limits(period: AggregationPeriod, days: int) -> None:
    assert max_span(period) == timedelta(days=days)


def test_max_span_accepts_raw_period_strings() -> None:
    assert max_span("PT1H") == timedelta(days=31)


def test_backfill_uses_finest_period() -> None:
    assert BACKFILL_PERIOD is AggregationPeriod.PT30M


def test_gap_rejects_zero_width_and_inverted() -> None:
    start = utc(2024, 1, 1)
    with pytest.raises(ValueError):
        Gap(start, start)
    with pytest.raises(ValueError):
        Gap(start, start - timedelta(minutes=1))
    assert Gap(start, start + timedelta(hours=2)).duration == timedelta(hours=2)


def test_coverage_validation() -> None:
    start = utc(2024, 1, 1)
    assert Coverage.empty().is_empty
    assert not Coverage(start, start).is_empty
    with pytest.raises(ValueError):
        Coverage(start, None)
    with pytest.raises(ValueError):
        Coverage(start + timedelta(days=1), start)


def test_window_trailing() -> None:
    now = utc(2024, 6, 1, 12)
    window = Window.trailing(now, 365)
    assert window.end == now
    assert window.start == now - timedelta(days=365)


def test_series_id_string_is_resource() -> None:
    series = SeriesId("res-1", "home_energy_entry_res_1")
    assert str(series) == "res-1"
    assert series == SeriesId("res-1", "home_energy_entry_res_1")
