"""Publish stored history as hourly recorder statistics."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
import logging
from typing import Any

from homeassistant.core import HomeAssistant

from .backend.sanitize import mask_identifier
from .const import DOMAIN
from .domain.history import Sample

_LOGGER = logging.getLogger(__name__)


def _hour_start(timestamp: datetime) -> datetime:
    """Return the top of the hour containing ``timestamp``."""

    return timestamp.replace(minute=0, second=0, microsecond=0)


def build_hourly_statistics(
    samples: Iterable[Sample], base_sum: float = 0.0
) -> list[dict[str, Any]]:
    """Return hourly ``state``/``sum`` rows for interval readings.

    ``state`` is the hour's total and ``sum`` the running total starting at
    ``base_sum``, so sums never decrease as long as readings are not negative.
    """

    totals: dict[datetime, float] = {}
    for sample in samples:
        hour = _hour_start(sample.timestamp)
        totals[hour] = totals.get(hour, 0.0) + sample.value

    rows: list[dict[str, Any]] = []
    running = base_sum
    for hour in sorted(totals):
        running += totals[hour]
        rows.append({"start": hour, "state": totals[hour], "sum": running})
    return rows


def build_statistic_metadata(
    statistic_id: str, name: str, unit: str | None
) -> dict[str, Any]:
    """Return external statistic metadata for a resource."""

    metadata: dict[str, Any] = {
        "statistic_id": statistic_id,
        "source": DOMAIN,
        "name": name,
        "unit_of_measurement": unit,
        "has_mean": False,
        "has_sum": True,
    }
    try:  # pragma: no cover - depends on the installed recorder version
        from homeassistant.components.recorder.models import StatisticMeanType
    except ImportError:  # pragma: no cover - older recorder without mean types
        return metadata
    metadata["mean_type"] = StatisticMeanType.NONE
    return metadata


async def _async_add_external_statistics(
    hass: HomeAssistant, metadata: dict[str, Any], rows: list[dict[str, Any]]
) -> None:
    """Hand rows to the recorder's external statistics importer."""

    from homeassistant.components.recorder.statistics import (
        async_add_external_statistics,
    )

    async_add_external_statistics(hass, metadata, rows)


async def async_publish_statistics(
    hass: HomeAssistant,
    statistic_id: str,
    name: str,
    unit: str | None,
    samples: Iterable[Sample],
    base_sum: float = 0.0,
) -> int:
    """Import hourly statistics rebuilt from ``samples``; return the row count."""

    if ":" not in statistic_id:
        raise ValueError("external statistic ids must contain ':'")
    rows = build_hourly_statistics(samples, base_sum)
    if not rows:
        return 0
    metadata = build_statistic_metadata(statistic_id, name, unit)
    await _async_add_external_statistics(hass, metadata, rows)
    _LOGGER.debug(
        "%s: published %d hourly statistic row(s)",
        mask_identifier(statistic_id),
        len(rows),
    )
    return len(rows)


__all__ = [
    "async_publish_statistics",
    "build_hourly_statistics",
    "build_statistic_metadata",
]
