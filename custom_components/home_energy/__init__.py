"""Home Energy integration for Home Assistant."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady
from homeassistant.helpers import aiohttp_client
from homeassistant.helpers.event import async_call_later
from homeassistant.loader import async_get_integration

from .api import AuthenticationError, CommunicationError
from .backend import create_client
from .backfill import HistorySynchronizer
from .cache import ResponseCache
from .const import (
    BRAND_GLOWMARKT,
    BRAND_VICARE,
    CONF_BRAND,
    CONF_HISTORY_DAYS,
    CONF_POLL_INTERVAL,
    DEFAULT_BRAND,
    DEFAULT_HISTORY_DAYS,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    POLLING_STARTUP_DELAY,
    cache_ttl_for_poll_interval,
)
from .coordinator import (
    FeatureCoordinator,
    FeaturePoller,
    HistoryCoordinator,
    HistorySyncRunner,
    build_history_resources,
    create_statistics_publisher,
)
from .history_store import create_history_registry
from .runtime import EntryRuntime
from .services.history import async_register_sync_history_service

_LOGGER = logging.getLogger(__name__)

PLATFORMS = ["sensor"]


def _entry_option(entry: ConfigEntry, key: str, default: int) -> int:
    """Return an integer option, falling back to entry data and ``default``."""

    return int(entry.options.get(key, entry.data.get(key, default)))


async def _async_get_integration_version(hass: HomeAssistant) -> str:
    """Return the installed integration version string."""

    integration = await async_get_integration(hass, DOMAIN)
    return str(integration.version or "unknown")


async def _async_setup_glowmarkt(
    hass: HomeAssistant, entry: ConfigEntry, runtime: EntryRuntime
) -> None:
    """Wire resource history synchronization for a Glowmarkt entry."""

    client = runtime.client
    try:
        summaries = await client.list_resources()
    except AuthenticationError as err:
        raise ConfigEntryAuthFailed from err
    except CommunicationError as err:
        raise ConfigEntryNotReady from err

    if not summaries:
        _LOGGER.info("Glowmarkt account exposes no resources")
        raise ConfigEntryNotReady

    registry = create_history_registry(hass)
    synchronizer = HistorySynchronizer(
        client, registry, history_days=runtime.history_days
    )
    runner = HistorySyncRunner(
        synchronizer,
        registry,
        build_history_resources(entry.entry_id, summaries),
        publish=create_statistics_publisher(hass),
    )
    coordinator = HistoryCoordinator(hass, runner)
    coordinator.async_set_updated_data(await runner.async_latest())

    async def _async_start_history(_now: Any) -> None:
        await coordinator.async_request_refresh()

    entry.async_on_unload(
        async_call_later(
            hass, POLLING_STARTUP_DELAY.total_seconds(), _async_start_history
        )
    )
    runtime.history_registry = registry
    runtime.history_coordinator = coordinator


async def _async_setup_vicare(
    hass: HomeAssistant, entry: ConfigEntry, runtime: EntryRuntime
) -> None:
    """Wire feature polling for a ViCare entry."""

    cache: ResponseCache[list[dict[str, Any]]] = ResponseCache(
        cache_ttl_for_poll_interval(runtime.poll_interval)
    )
    poller = FeaturePoller(runtime.client, cache)
    try:
        runtime.devices = await poller.async_discover()
    except AuthenticationError as err:
        raise ConfigEntryAuthFailed from err
    except CommunicationError as err:
        raise ConfigEntryNotReady from err

    if not runtime.devices:
        _LOGGER.info("ViCare account exposes no devices")
        raise ConfigEntryNotReady

    coordinator = FeatureCoordinator(hass, poller, runtime.poll_interval)
    await coordinator.async_config_entry_first_refresh()
    runtime.feature_coordinator = coordinator


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up the Home Energy integration for a config entry."""
    brand = entry.data.get(CONF_BRAND, DEFAULT_BRAND)
    session = aiohttp_client.async_get_clientsession(hass)
    runtime = EntryRuntime(
        brand=brand,
        client=create_client(brand, session, entry.data),
        config_entry=entry,
        poll_interval=_entry_option(entry, CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
        history_days=_entry_option(entry, CONF_HISTORY_DAYS, DEFAULT_HISTORY_DAYS),
        version=await _async_get_integration_version(hass),
    )

    if brand == BRAND_GLOWMARKT:
        await _async_setup_glowmarkt(hass, entry, runtime)
    elif brand == BRAND_VICARE:
        await _async_setup_vicare(hass, entry, runtime)

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = runtime

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    await async_register_sync_history_service(hass)
    entry.async_on_unload(entry.add_update_listener(async_update_entry_options))

    _LOGGER.info(
        "Home Energy %s entry set up (version %s)", brand, runtime.version
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry for Home Energy."""
    domain_data = hass.data.get(DOMAIN)
    runtime = domain_data.get(entry.entry_id) if domain_data else None
    if runtime is None:
        return True

    ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if ok:
        if isinstance(runtime, EntryRuntime) and runtime.history_registry is not None:
            await runtime.history_registry.async_flush()
        domain_data.pop(entry.entry_id, None)
    return ok


async def async_update_entry_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry so new intervals and windows take effect."""
    await hass.config_entries.async_reload(entry.entry_id)
