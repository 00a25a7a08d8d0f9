"""Runtime container helpers for Home Energy config entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import DOMAIN

if TYPE_CHECKING:
    from .coordinator import FeatureCoordinator, HistoryCoordinator
    from .history_store import HistoryStoreRegistry


@dataclass(slots=True)
class EntryRuntime:
    """Runtime container for a configured Home Energy entry."""

    brand: str
    client: Any
    config_entry: ConfigEntry
    poll_interval: int
    history_days: int
    history_coordinator: HistoryCoordinator | None = None
    feature_coordinator: FeatureCoordinator | None = None
    history_registry: HistoryStoreRegistry | None = None
    devices: list[dict[str, Any]] = field(default_factory=list)
    version: str = ""


def require_runtime(hass: HomeAssistant, entry_id: str) -> EntryRuntime:
    """Return the runtime container stored for ``entry_id``."""

    domain_data = hass.data.get(DOMAIN)
    if not isinstance(domain_data, dict):
        raise LookupError("Home Energy runtime data is unavailable")  # noqa: TRY004
    runtime = domain_data.get(entry_id)
    if isinstance(runtime, EntryRuntime):
        return runtime
    raise LookupError(f"No Home Energy runtime for entry {entry_id}")


def iter_runtimes(hass: HomeAssistant) -> list[EntryRuntime]:
    """Return every loaded runtime."""

    domain_data = hass.data.get(DOMAIN)
    if not isinstance(domain_data, dict):
        return []
    return [value for value in domain_data.values() if isinstance(value, EntryRuntime)]


__all__ = ["EntryRuntime", "iter_runtimes", "require_runtime"]
