"""Protocols describing the remote providers used by the integration."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from custom_components.home_energy.domain.history import (
    AggregationFunction,
    AggregationPeriod,
    ProviderBounds,
    Sample,
)


class HistoryProviderProto(Protocol):
    """Remote source of bounded historical readings."""

    async def get_bounds(self, resource_id: str) -> ProviderBounds:
        """Return the first/last instants with data for ``resource_id``."""

    async def get_samples(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        period: AggregationPeriod,
        function: AggregationFunction,
    ) -> Sequence[Sample]:
        """Return samples for the half-open window ``[start, end)``."""


class FeatureProviderProto(Protocol):
    """Remote source of heating-device feature lists."""

    async def list_devices(self) -> list[dict[str, Any]]:
        """Return the devices associated with the account."""

    async def get_features(
        self, installation_id: str, gateway_serial: str, device_id: str
    ) -> list[dict[str, Any]]:
        """Return the raw feature payloads for a device."""


__all__ = ["FeatureProviderProto", "HistoryProviderProto"]
