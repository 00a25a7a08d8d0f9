"""Service wiring for on-demand history synchronization."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
from typing import Any

from homeassistant.core import HomeAssistant, ServiceCall
import homeassistant.helpers.config_validation as cv
import voluptuous as vol

from custom_components.home_energy.backend.sanitize import mask_identifier
from custom_components.home_energy.const import (
    ATTR_DAYS,
    ATTR_ENTRY_ID,
    ATTR_RESOURCE_IDS,
    DOMAIN,
    MAX_HISTORY_DAYS,
    SERVICE_SYNC_HISTORY,
)
from custom_components.home_energy.runtime import EntryRuntime, iter_runtimes

_LOGGER = logging.getLogger(__name__)

SYNC_HISTORY_SCHEMA = vol.Schema(
    {
        vol.Optional(ATTR_ENTRY_ID): cv.string,
        vol.Optional(ATTR_RESOURCE_IDS): vol.All(cv.ensure_list, [cv.string]),
        vol.Optional(ATTR_DAYS): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=MAX_HISTORY_DAYS)
        ),
    }
)


def _select_runtimes(hass: HomeAssistant, entry_id: str | None) -> list[EntryRuntime]:
    """Return runtimes with history enabled, optionally restricted to one entry."""

    runtimes = [
        runtime
        for runtime in iter_runtimes(hass)
        if runtime.history_coordinator is not None
    ]
    if entry_id is None:
        return runtimes
    return [rt for rt in runtimes if rt.config_entry.entry_id == entry_id]


async def async_sync_history(
    hass: HomeAssistant,
    *,
    entry_id: str | None = None,
    resource_ids: Iterable[str] | None = None,
    days: int | None = None,
) -> dict[str, dict[str, Any]]:
    """Synchronize history for the selected entries.

    Returns the per-resource outcome keyed by entry id. Failures are logged and
    never abort the remaining runs.
    """

    runtimes = _select_runtimes(hass, entry_id)
    if not runtimes:
        _LOGGER.warning("sync_history: no matching config entry with history")
        return {}

    resources = tuple(resource_ids) if resource_ids is not None else None
    entry_ids = [runtime.config_entry.entry_id for runtime in runtimes]
    _LOGGER.debug("sync_history: running for %d entr(y/ies)", len(runtimes))
    results = await asyncio.gather(
        *(
            runtime.history_coordinator.async_sync(resources, days)
            for runtime in runtimes
            if runtime.history_coordinator is not None
        ),
        return_exceptions=True,
    )

    outcomes: dict[str, dict[str, Any]] = {}
    for ent_id, res in zip(entry_ids, results, strict=True):
        if isinstance(res, asyncio.CancelledError):
            raise res
        if isinstance(res, Exception):
            _LOGGER.error(
                "sync_history failed for entry %s: %s", mask_identifier(ent_id), res
            )
            continue
        for resource_id, outcome in res.items():
            if isinstance(outcome, Exception):
                _LOGGER.error(
                    "sync_history failed for resource %s: %s",
                    mask_identifier(resource_id),
                    outcome,
                )
        outcomes[ent_id] = res
    return outcomes


async def async_register_sync_history_service(hass: HomeAssistant) -> None:
    """Register the sync_history service if it is missing."""

    if hass.services.has_service(DOMAIN, SERVICE_SYNC_HISTORY):
        return

    async def _service_sync_history(call: ServiceCall) -> None:
        """Handle the sync_history service call."""

        _LOGGER.debug("service sync_history called")
        await async_sync_history(
            hass,
            entry_id=call.data.get(ATTR_ENTRY_ID),
            resource_ids=call.data.get(ATTR_RESOURCE_IDS),
            days=call.data.get(ATTR_DAYS),
        )

    hass.services.async_register(
        DOMAIN,
        SERVICE_SYNC_HISTORY,
        _service_sync_history,
        schema=SYNC_HISTORY_SCHEMA,
    )


__all__ = [
    "SYNC_HISTORY_SCHEMA",
    "async_register_sync_history_service",
    "async_sync_history",
]
