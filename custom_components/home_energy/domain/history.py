"""Time-series value objects shared by the history synchronizer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class AggregationPeriod(str, Enum):
    """Bucket sizes accepted by the provider, finest first."""

    PT30M = "PT30M"
    PT1H = "PT1H"
    P1D = "P1D"
    P1W = "P1W"
    P1M = "P1M"
    P1Y = "P1Y"


class AggregationFunction(str, Enum):
    """Reduction applied by the provider inside each bucket."""

    SUM = "sum"
    AVG = "avg"


# Longest window the provider serves in one request per period.
_MAX_SPAN: dict[AggregationPeriod, timedelta] = {
    AggregationPeriod.PT30M: timedelta(days=10),
    AggregationPeriod.PT1H: timedelta(days=31),
    AggregationPeriod.P1D: timedelta(days=31),
    AggregationPeriod.P1W: timedelta(days=6 * 7),
    AggregationPeriod.P1M: timedelta(days=366),
    AggregationPeriod.P1Y: timedelta(days=366),
}

BACKFILL_PERIOD = AggregationPeriod.PT30M


def max_span(period: AggregationPeriod) -> timedelta:
    """Return the maximum fetch span the provider accepts for ``period``."""

    return _MAX_SPAN[AggregationPeriod(period)]


@dataclass(frozen=True, slots=True)
class SeriesId:
    """Pair a remote resource with the key of its local storage."""

    resource_id: str
    storage_key: str

    def __str__(self) -> str:
        """Return the resource id for log output."""

        return self.resource_id


@dataclass(frozen=True, slots=True)
class Sample:
    """Single numeric reading at a point in time."""

    timestamp: datetime
    value: float


@dataclass(frozen=True, slots=True)
class Window:
    """Half-open ``[start, end)`` interval of instants."""

    start: datetime
    end: datetime

    @classmethod
    def trailing(cls, now: datetime, days: int) -> Window:
        """Return the window covering the last ``days`` days up to ``now``."""

        return cls(now - timedelta(days=days), now)


@dataclass(frozen=True, slots=True)
class Gap:
    """Interval that still needs fetching; always ``start < end``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        """Reject empty or inverted intervals."""

        if self.start >= self.end:
            raise ValueError(f"gap must have positive duration: {self.start} >= {self.end}")

    @property
    def duration(self) -> timedelta:
        """Return the length of the gap."""

        return self.end - self.start


@dataclass(frozen=True, slots=True)
class Coverage:
    """Earliest and latest locally stored sample timestamps."""

    earliest: datetime | None = None
    latest: datetime | None = None

    def __post_init__(self) -> None:
        """Keep both bounds set together and ordered."""

        if (self.earliest is None) != (self.latest is None):
            raise ValueError("coverage bounds must both be set or both be empty")
        if self.earliest is not None and self.latest is not None:
            if self.earliest > self.latest:
                raise ValueError("coverage earliest must not be after latest")

    @classmethod
    def empty(cls) -> Coverage:
        """Return coverage for a series without stored samples."""

        return cls()

    @property
    def is_empty(self) -> bool:
        """Return True when no sample is stored."""

        return self.earliest is None


@dataclass(frozen=True, slots=True)
class ProviderBounds:
    """Range of instants for which the provider holds data."""

    first_available: datetime
    last_available: datetime


__all__ = [
    "BACKFILL_PERIOD",
    "AggregationFunction",
    "AggregationPeriod",
    "Coverage",
    "Gap",
    "ProviderBounds",
    "Sample",
    "SeriesId",
    "Window",
    "max_span",
]
