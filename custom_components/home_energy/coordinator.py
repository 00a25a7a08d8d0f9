"""Coordinator helpers for the Home Energy integration."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import partial
import logging
from typing import Any, TypeVar

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import AuthenticationError, CommunicationError
from .backend.base import FeatureProviderProto
from .backend.sanitize import mask_identifier
from .backfill import HistorySynchronizer, SyncResult
from .cache import ResponseCache
from .codecs.glowmarkt_models import ResourceSummary
from .const import (
    HISTORY_SYNC_INTERVAL,
    MAX_HISTORY_DAYS,
    MIN_POLL_INTERVAL,
    statistic_id_for_resource,
)
from .domain.features import Feature, parse_features
from .domain.history import Sample, SeriesId
from .history_store import HistoryStoreRegistry, storage_key_for
from .statistics import async_publish_statistics

_LOGGER = logging.getLogger(__name__)

_DataT = TypeVar("_DataT")

_EPOCH = datetime.fromtimestamp(0, UTC)

# (statistic_id, name, unit, samples, base_sum)
PublishCallable = Callable[[str, str, str | None, list[Sample], float], Awaitable[Any]]


class RaiseUpdateFailedCoordinator(DataUpdateCoordinator[_DataT]):
    """Coordinator that propagates ``UpdateFailed`` to manual refresh callers."""

    async def async_refresh(self) -> None:
        """Refresh data and raise ``UpdateFailed`` when polling fails."""

        await super().async_refresh()
        exc = getattr(self, "last_exception", None)
        if not self.last_update_success and isinstance(exc, UpdateFailed):
            raise exc


def device_key(device: Mapping[str, Any]) -> str:
    """Return the stable identity of a heating device."""

    return "/".join(
        str(device.get(part, ""))
        for part in ("installation_id", "gateway_serial", "device_id")
    )


class FeaturePoller:
    """Fetch device features through a shared response cache."""

    def __init__(
        self,
        client: FeatureProviderProto,
        cache: ResponseCache[list[dict[str, Any]]],
    ) -> None:
        """Bind the poller to its client and cache."""

        self._client = client
        self._cache = cache
        self._devices: list[dict[str, Any]] = []

    @property
    def devices(self) -> list[dict[str, Any]]:
        """Return the devices discovered so far."""

        return list(self._devices)

    @property
    def cache(self) -> ResponseCache[list[dict[str, Any]]]:
        """Return the response cache owned by the poller."""

        return self._cache

    async def async_discover(self) -> list[dict[str, Any]]:
        """Refresh the device list from the account."""

        self._devices = await self._client.list_devices()
        return self.devices

    async def async_fetch_device(self, device: Mapping[str, Any]) -> dict[str, Feature]:
        """Return the parsed features of ``device``, served from cache when fresh."""

        producer = partial(
            self._client.get_features,
            str(device["installation_id"]),
            str(device["gateway_serial"]),
            str(device["device_id"]),
        )
        raw = await self._cache.async_get_or_fetch(device_key(device), producer)
        return parse_features(raw)

    async def async_poll(self) -> dict[str, dict[str, Feature]]:
        """Return features for every device keyed by ``device_key``."""

        if not self._devices:
            await self.async_discover()
        data: dict[str, dict[str, Feature]] = {}
        for device in self._devices:
            data[device_key(device)] = await self.async_fetch_device(device)
        return data


class FeatureCoordinator(RaiseUpdateFailedCoordinator[dict[str, dict[str, Feature]]]):
    """Polls heating devices and exposes their parsed features."""

    def __init__(
        self,
        hass: HomeAssistant,
        poller: FeaturePoller,
        poll_interval: int,
    ) -> None:
        """Initialize the feature coordinator."""
        super().__init__(
            hass,
            logger=_LOGGER,
            name="home_energy-features",
            update_interval=timedelta(seconds=max(poll_interval, MIN_POLL_INTERVAL)),
        )
        self.poller = poller

    async def _async_update_data(self) -> dict[str, dict[str, Feature]]:
        """Fetch features for every device."""
        try:
            return await self.poller.async_poll()
        except AuthenticationError as err:
            raise ConfigEntryAuthFailed(str(err)) from err
        except CommunicationError as err:
            raise UpdateFailed(f"API error: {err}") from err


@dataclass(frozen=True, slots=True)
class HistoryResource:
    """Metered resource whose history is kept locally."""

    resource_id: str
    name: str
    unit: str | None
    classifier: str
    series: SeriesId

    @property
    def statistic_id(self) -> str:
        """Return the external statistic id of the resource."""

        return statistic_id_for_resource(self.resource_id)


def build_history_resources(
    entry_id: str, summaries: Iterable[ResourceSummary]
) -> list[HistoryResource]:
    """Pair provider resources with their local storage keys."""

    resources: list[HistoryResource] = []
    for summary in summaries:
        resources.append(
            HistoryResource(
                resource_id=summary.resource_id,
                name=summary.name or summary.classifier or summary.resource_id,
                unit=summary.base_unit,
                classifier=summary.classifier,
                series=SeriesId(
                    resource_id=summary.resource_id,
                    storage_key=storage_key_for(entry_id, summary.resource_id),
                ),
            )
        )
    return resources


class HistorySyncRunner:
    """Run history synchronization for a set of resources and publish results."""

    def __init__(
        self,
        synchronizer: HistorySynchronizer,
        registry: HistoryStoreRegistry,
        resources: Iterable[HistoryResource],
        publish: PublishCallable | None = None,
    ) -> None:
        """Store collaborators used by each run."""

        self._synchronizer = synchronizer
        self._registry = registry
        self._resources = {resource.resource_id: resource for resource in resources}
        self._publish = publish

    @property
    def resources(self) -> list[HistoryResource]:
        """Return the managed resources."""

        return list(self._resources.values())

    def resource(self, resource_id: str) -> HistoryResource | None:
        """Return the managed resource with ``resource_id``."""

        return self._resources.get(resource_id)

    async def async_run(
        self,
        resource_ids: Iterable[str] | None = None,
        days: int | None = None,
    ) -> dict[str, SyncResult | Exception]:
        """Synchronize the selected resources concurrently.

        Failures of one resource do not stop the others; each outcome is
        returned keyed by resource id.
        """

        if resource_ids is None:
            selected = self.resources
        else:
            wanted = set(resource_ids)
            selected = [res for res in self.resources if res.resource_id in wanted]
        if not selected:
            return {}

        window = self._synchronizer.desired_window(days)
        outcomes = await self._synchronizer.async_sync_many(
            [resource.series for resource in selected], window
        )
        cutoff = retention_cutoff(window.end)
        results: dict[str, SyncResult | Exception] = {}
        for resource in selected:
            outcome = outcomes[resource.series]
            results[resource.resource_id] = outcome
            if not isinstance(outcome, SyncResult):
                continue
            await self._registry.async_prune(resource.series.storage_key, cutoff)
            if outcome.written:
                await self._async_publish(resource, window.end)
        return results

    async def _async_publish(self, resource: HistoryResource, end: datetime) -> None:
        """Rebuild statistics for ``resource`` from everything stored."""

        if self._publish is None:
            return
        store = self._registry.get(resource.series.storage_key)
        samples = await store.async_query(_EPOCH, end)
        try:
            await self._publish(
                resource.statistic_id,
                resource.name,
                resource.unit,
                samples,
                store.pruned_total,
            )
        except asyncio.CancelledError:  # pragma: no cover - allow cancellation
            raise
        except Exception:  # pragma: no cover - log & continue
            _LOGGER.exception(
                "%s: statistics import failed",
                mask_identifier(resource.resource_id),
            )

    async def async_latest(self) -> dict[str, Sample | None]:
        """Return the most recent stored sample per resource."""

        latest: dict[str, Sample | None] = {}
        for resource in self.resources:
            store = self._registry.get(resource.series.storage_key)
            latest[resource.resource_id] = await store.async_latest()
        return latest


def retention_cutoff(now: datetime) -> datetime:
    """Return the hour before which stored samples are dropped.

    No configurable history window reaches past it, and cutting on an hour
    boundary keeps every published hourly row whole.
    """

    cutoff = now - timedelta(days=MAX_HISTORY_DAYS)
    return cutoff.replace(minute=0, second=0, microsecond=0)


def raise_for_history_failures(results: Mapping[str, SyncResult | Exception]) -> None:
    """Translate failed runs into Home Assistant update errors.

    Authentication failures always abort. Other failures abort only when no
    resource synchronized successfully.
    """

    failures = {
        key: value for key, value in results.items() if isinstance(value, Exception)
    }
    if not failures:
        return
    for err in failures.values():
        if isinstance(err, AuthenticationError):
            raise ConfigEntryAuthFailed(str(err)) from err
    if len(failures) == len(results):
        err = next(iter(failures.values()))
        raise UpdateFailed(f"History sync failed: {err}") from err


class HistoryCoordinator(RaiseUpdateFailedCoordinator[dict[str, Sample | None]]):
    """Backfills resource history and exposes the latest stored sample."""

    def __init__(
        self,
        hass: HomeAssistant,
        runner: HistorySyncRunner,
        update_interval: timedelta = HISTORY_SYNC_INTERVAL,
    ) -> None:
        """Initialize the history coordinator."""
        super().__init__(
            hass,
            logger=_LOGGER,
            name="home_energy-history",
            update_interval=update_interval,
        )
        self.runner = runner

    async def async_sync(
        self,
        resource_ids: Iterable[str] | None = None,
        days: int | None = None,
    ) -> dict[str, SyncResult | Exception]:
        """Run a synchronization outside the schedule and publish new data."""

        results = await self.runner.async_run(resource_ids, days)
        self.async_set_updated_data(await self.runner.async_latest())
        return results

    async def _async_update_data(self) -> dict[str, Sample | None]:
        """Synchronize every resource and return the latest samples."""
        results = await self.runner.async_run()
        raise_for_history_failures(results)
        return await self.runner.async_latest()


def create_statistics_publisher(hass: HomeAssistant) -> PublishCallable:
    """Return a publisher importing statistics into ``hass``'s recorder."""

    return partial(async_publish_statistics, hass)


__all__ = [
    "FeatureCoordinator",
    "FeaturePoller",
    "HistoryCoordinator",
    "HistoryResource",
    "HistorySyncRunner",
    "RaiseUpdateFailedCoordinator",
    "build_history_resources",
    "create_statistics_publisher",
    "device_key",
    "raise_for_history_failures",
    "retention_cutoff",
]
