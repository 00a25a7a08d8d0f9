"""Heating-device feature variants and their projection to channel states.

Feature payloads come in a fixed set of shapes. Each shape is a frozen
dataclass and ``project_feature`` maps every variant through exactly one
projection function, returning ``{channel_suffix: state}``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
import logging
import math
from typing import Any, Union

from pydantic import ValidationError

from ..codecs.vicare_models import FeaturePayload, FeatureProperty

_LOGGER = logging.getLogger(__name__)

FeatureState = Union[float, str, bool, date, None]


class ConsumptionStat(str, Enum):
    """Consumption aggregates exposed as channels."""

    CURRENT_DAY = "currentDay"
    CURRENT_WEEK = "currentWeek"
    CURRENT_MONTH = "currentMonth"
    CURRENT_YEAR = "currentYear"
    LAST_SEVEN_DAYS = "lastSevenDays"
    PREVIOUS_DAY = "previousDay"
    PREVIOUS_WEEK = "previousWeek"
    PREVIOUS_MONTH = "previousMonth"
    PREVIOUS_YEAR = "previousYear"


@dataclass(frozen=True, slots=True)
class DimensionalValue:
    """Number with an optional vendor unit."""

    value: float
    unit: str | None = None


@dataclass(frozen=True, slots=True)
class NumericSensorFeature:
    """Single numeric reading with optional status/active flags."""

    name: str
    property_name: str
    value: DimensionalValue
    status: str | None = None
    active: bool | None = None


@dataclass(frozen=True, slots=True)
class MultiValueFeature:
    """Several named numeric readings."""

    name: str
    values: Mapping[str, DimensionalValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StatusSensorFeature:
    """Status string and/or active flag without a numeric reading."""

    name: str
    status: str | None = None
    active: bool | None = None


@dataclass(frozen=True, slots=True)
class ConsumptionFeature:
    """Energy or gas consumption aggregates."""

    name: str
    stats: Mapping[ConsumptionStat, DimensionalValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CurveFeature:
    """Heating curve slope and shift."""

    name: str
    slope: DimensionalValue
    shift: DimensionalValue


@dataclass(frozen=True, slots=True)
class DatePeriodFeature:
    """Active flag with an optional date range (e.g. holiday programs)."""

    name: str
    active: bool | None = None
    start: date | None = None
    end: date | None = None


@dataclass(frozen=True, slots=True)
class TextFeature:
    """Free-form string value."""

    name: str
    value: str


Feature = Union[
    NumericSensorFeature,
    MultiValueFeature,
    StatusSensorFeature,
    ConsumptionFeature,
    CurveFeature,
    DatePeriodFeature,
    TextFeature,
]

_ARRAY_PERIODS = ("day", "week", "month", "year")
_STAT_NAMES = frozenset(stat.value for stat in ConsumptionStat)
_FLAG_PROPERTIES = frozenset({"status", "active", "unit"})


def _number(prop: FeatureProperty | None) -> DimensionalValue | None:
    """Return a numeric property as ``DimensionalValue``."""

    if prop is None or isinstance(prop.value, bool):
        return None
    if not isinstance(prop.value, (int, float)) or not math.isfinite(prop.value):
        return None
    return DimensionalValue(float(prop.value), prop.unit)


def _string(prop: FeatureProperty | None) -> str | None:
    """Return a string property value."""

    if prop is None or not isinstance(prop.value, str):
        return None
    return prop.value


def _boolean(prop: FeatureProperty | None) -> bool | None:
    """Return a boolean property value."""

    if prop is None or not isinstance(prop.value, bool):
        return None
    return prop.value


def _date(prop: FeatureProperty | None) -> date | None:
    """Return an ISO date (or datetime prefix) property value."""

    raw = _string(prop)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def _array(prop: FeatureProperty | None) -> list[float] | None:
    """Return a numeric array property."""

    if prop is None or not isinstance(prop.value, list):
        return None
    values: list[float] = []
    for item in prop.value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            return None
        values.append(float(item))
    return values


def _parse_consumption(
    name: str, props: Mapping[str, FeatureProperty]
) -> ConsumptionFeature | None:
    """Build consumption stats from period arrays or summary numbers."""

    stats: dict[ConsumptionStat, DimensionalValue] = {}
    for key in _STAT_NAMES & props.keys():
        value = _number(props[key])
        if value is not None:
            stats[ConsumptionStat(key)] = value

    current = {
        "day": ConsumptionStat.CURRENT_DAY,
        "week": ConsumptionStat.CURRENT_WEEK,
        "month": ConsumptionStat.CURRENT_MONTH,
        "year": ConsumptionStat.CURRENT_YEAR,
    }
    previous = {
        "day": ConsumptionStat.PREVIOUS_DAY,
        "week": ConsumptionStat.PREVIOUS_WEEK,
        "month": ConsumptionStat.PREVIOUS_MONTH,
        "year": ConsumptionStat.PREVIOUS_YEAR,
    }
    for period in _ARRAY_PERIODS:
        prop = props.get(period)
        values = _array(prop)
        if not values:
            continue
        unit = prop.unit if prop is not None else None
        stats.setdefault(current[period], DimensionalValue(values[0], unit))
        if len(values) > 1:
            stats.setdefault(previous[period], DimensionalValue(values[1], unit))
        if period == "day":
            stats.setdefault(
                ConsumptionStat.LAST_SEVEN_DAYS,
                DimensionalValue(sum(values[:7]), unit),
            )

    if not stats:
        return None
    return ConsumptionFeature(name=name, stats=stats)


def _classify(payload: FeaturePayload) -> Feature | None:
    """Map a validated payload onto its feature variant."""

    name = payload.feature
    props = payload.properties
    if not props:
        return None

    if any(key in props for key in _ARRAY_PERIODS) or _STAT_NAMES & props.keys():
        consumption = _parse_consumption(name, props)
        if consumption is not None:
            return consumption

    slope = _number(props.get("slope"))
    shift = _number(props.get("shift"))
    if slope is not None and shift is not None:
        return CurveFeature(name=name, slope=slope, shift=shift)

    if "start" in props and "end" in props:
        return DatePeriodFeature(
            name=name,
            active=_boolean(props.get("active")),
            start=_date(props.get("start")),
            end=_date(props.get("end")),
        )

    text = _string(props.get("value"))
    if text is not None:
        return TextFeature(name=name, value=text)

    numbers = {
        key: value
        for key, value in ((key, _number(prop)) for key, prop in props.items())
        if value is not None and key not in _FLAG_PROPERTIES
    }
    status = _string(props.get("status"))
    active = _boolean(props.get("active"))
    if len(numbers) == 1:
        ((property_name, value),) = numbers.items()
        return NumericSensorFeature(
            name=name,
            property_name=property_name,
            value=value,
            status=status,
            active=active,
        )
    if len(numbers) > 1:
        return MultiValueFeature(name=name, values=numbers)
    if status is not None or active is not None:
        return StatusSensorFeature(name=name, status=status, active=active)
    return None


def parse_feature(raw: Any) -> Feature | None:
    """Return the feature variant for a raw payload, or ``None`` if unsupported."""

    try:
        payload = FeaturePayload.model_validate(raw)
    except ValidationError:
        _LOGGER.debug("Skipping malformed feature payload: %r", raw)
        return None
    if not payload.is_enabled:
        return None
    return _classify(payload)


def parse_features(raw_items: Any) -> dict[str, Feature]:
    """Return supported features keyed by feature name."""

    features: dict[str, Feature] = {}
    if not isinstance(raw_items, list):
        return features
    for item in raw_items:
        feature = parse_feature(item)
        if feature is not None:
            features[feature.name] = feature
    return features


def _project_numeric(feature: NumericSensorFeature) -> dict[str, FeatureState]:
    states: dict[str, FeatureState] = {feature.property_name: feature.value.value}
    if feature.status is not None and feature.status.lower() != "n/a":
        states["status"] = feature.status
    elif feature.active is not None:
        states["active"] = feature.active
    return states


def _project_multi_value(feature: MultiValueFeature) -> dict[str, FeatureState]:
    return {key: value.value for key, value in feature.values.items()}


def _project_status(feature: StatusSensorFeature) -> dict[str, FeatureState]:
    return {"active": feature.active, "status": feature.status}


def _project_consumption(feature: ConsumptionFeature) -> dict[str, FeatureState]:
    return {stat.value: value.value for stat, value in feature.stats.items()}


def _project_curve(feature: CurveFeature) -> dict[str, FeatureState]:
    return {"slope": feature.slope.value, "shift": feature.shift.value}


def _project_date_period(feature: DatePeriodFeature) -> dict[str, FeatureState]:
    return {
        "active": bool(feature.active),
        "start": feature.start,
        "end": feature.end,
    }


def _project_text(feature: TextFeature) -> dict[str, FeatureState]:
    return {"value": feature.value}


_PROJECTIONS: dict[type, Callable[[Any], dict[str, FeatureState]]] = {
    NumericSensorFeature: _project_numeric,
    MultiValueFeature: _project_multi_value,
    StatusSensorFeature: _project_status,
    ConsumptionFeature: _project_consumption,
    CurveFeature: _project_curve,
    DatePeriodFeature: _project_date_period,
    TextFeature: _project_text,
}


def project_feature(feature: Feature) -> dict[str, FeatureState]:
    """Return the channel states of ``feature`` keyed by channel suffix."""

    projector = _PROJECTIONS.get(type(feature))
    if projector is None:
        raise TypeError(f"Unsupported feature type: {type(feature).__name__}")
    return projector(feature)


def feature_unit(feature: Feature, key: str) -> str | None:
    """Return the vendor unit of the projected channel ``key``."""

    if isinstance(feature, NumericSensorFeature) and key == feature.property_name:
        return feature.value.unit
    if isinstance(feature, MultiValueFeature) and key in feature.values:
        return feature.values[key].unit
    if isinstance(feature, ConsumptionFeature) and key in _STAT_NAMES:
        value = feature.stats.get(ConsumptionStat(key))
        return value.unit if value is not None else None
    if isinstance(feature, CurveFeature):
        return None
    return None


__all__ = [
    "ConsumptionFeature",
    "ConsumptionStat",
    "CurveFeature",
    "DatePeriodFeature",
    "DimensionalValue",
    "Feature",
    "FeatureState",
    "MultiValueFeature",
    "NumericSensorFeature",
    "StatusSensorFeature",
    "TextFeature",
    "feature_unit",
    "parse_feature",
    "parse_features",
    "project_feature",
]
