"""Codec helpers for Glowmarkt vendor interactions."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
import math
from typing import Any

from pydantic import ValidationError

from ..api import AuthenticationError, CommunicationError, DataUnavailableError
from ..domain.history import ProviderBounds, Sample
from .glowmarkt_models import (
    AuthResponse,
    FirstTimeResponse,
    LastTimeResponse,
    ReadingsResponse,
    VirtualEntity,
)

_LOGGER = logging.getLogger(__name__)

QUERY_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_query_time(value: datetime) -> str:
    """Return the UTC wall-clock string used in readings queries."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(QUERY_TIME_FORMAT)


def decode_auth(raw: Any) -> AuthResponse:
    """Validate an auth payload, raising ``AuthenticationError`` when rejected."""

    try:
        model = AuthResponse.model_validate(raw)
    except ValidationError as err:
        raise AuthenticationError("No token in Glowmarkt auth response") from err
    if not model.valid or not model.token:
        raise AuthenticationError("Glowmarkt rejected the credentials")
    return model


def decode_virtual_entities(raw: Any) -> list[VirtualEntity]:
    """Return the virtual entities in ``raw``, skipping malformed items."""

    if isinstance(raw, dict):
        raw = raw.get("data", raw.get("virtualEntities"))
    if not isinstance(raw, list):
        raise CommunicationError(
            f"Unexpected virtual entity payload ({type(raw).__name__})"
        )
    entities: list[VirtualEntity] = []
    for item in raw:
        try:
            entities.append(VirtualEntity.model_validate(item))
        except ValidationError:
            _LOGGER.debug("Skipping malformed virtual entity: %r", item)
    return entities


def _epoch_to_datetime(value: int | float | None) -> datetime | None:
    """Convert provider epoch seconds to an aware datetime."""

    if value is None or not math.isfinite(float(value)):
        return None
    return datetime.fromtimestamp(float(value), UTC)


def decode_bounds(first_raw: Any, last_raw: Any) -> ProviderBounds:
    """Combine ``/first-time`` and ``/last-time`` payloads into bounds."""

    try:
        first = FirstTimeResponse.model_validate(first_raw)
        last = LastTimeResponse.model_validate(last_raw)
    except ValidationError as err:
        raise CommunicationError("Malformed Glowmarkt data range payload") from err

    first_ts = _epoch_to_datetime(first.data.firstTs)
    last_ts = _epoch_to_datetime(last.data.lastTs)
    if first_ts is None or last_ts is None or first_ts > last_ts:
        raise DataUnavailableError("Glowmarkt reports no data for this resource")
    return ProviderBounds(first_available=first_ts, last_available=last_ts)


def decode_readings(raw: Any, start: datetime, end: datetime) -> list[Sample]:
    """Return readings inside ``[start, end)`` in time order."""

    try:
        model = ReadingsResponse.model_validate(raw)
    except ValidationError as err:
        raise CommunicationError("Malformed Glowmarkt readings payload") from err

    samples: list[Sample] = []
    for ts_raw, value in model.data:
        if value is None or not math.isfinite(value):
            continue
        timestamp = _epoch_to_datetime(ts_raw)
        if timestamp is None or not start <= timestamp < end:
            continue
        samples.append(Sample(timestamp=timestamp, value=float(value)))
    samples.sort(key=lambda sample: sample.timestamp)
    return samples


__all__ = [
    "decode_auth",
    "decode_bounds",
    "decode_readings",
    "decode_virtual_entities",
    "format_query_time",
]
