"""Constants for the Home Energy integration."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Final

# Domain
DOMAIN: Final = "home_energy"

# Brand handling
CONF_BRAND: Final = "brand"
CONF_CLIENT_ID: Final = "client_id"
CONF_POLL_INTERVAL: Final = "poll_interval"
CONF_HISTORY_DAYS: Final = "history_days"

BRAND_GLOWMARKT: Final = "glowmarkt"
BRAND_VICARE: Final = "vicare"
DEFAULT_BRAND: Final = BRAND_GLOWMARKT

BRAND_LABELS: Final[Mapping[str, str]] = {
    BRAND_GLOWMARKT: "Glowmarkt",
    BRAND_VICARE: "ViCare",
}

# Glowmarkt HTTP base & paths
GLOWMARKT_API_BASE: Final = "https://api.glowmarkt.com/api/v0-1"
GLOWMARKT_AUTH_PATH: Final = "/auth"
GLOWMARKT_VIRTUAL_ENTITIES_PATH: Final = "/virtualentity"
GLOWMARKT_FIRST_TIME_PATH_FMT: Final = "/resource/{resource_id}/first-time"
GLOWMARKT_LAST_TIME_PATH_FMT: Final = "/resource/{resource_id}/last-time"
GLOWMARKT_READINGS_PATH_FMT: Final = "/resource/{resource_id}/readings"

# Public application id used by the Bright app
GLOWMARKT_APPLICATION_ID: Final = "b0f1b774-a586-4f72-9edd-27ead8aa7a8d"

# ViCare HTTP base & paths
VICARE_IOT_BASE: Final = "https://api.viessmann.com/iot/v1"
VICARE_AUTHORIZE_URL: Final = "https://iam.viessmann.com/idp/v3/authorize"
VICARE_TOKEN_URL: Final = "https://iam.viessmann.com/idp/v3/token"
VICARE_REDIRECT_URI: Final = "vicare://oauth-callback/everest"
VICARE_SCOPE: Final = "IoT User offline_access"
VICARE_INSTALLATIONS_PATH: Final = "/equipment/installations"
VICARE_FEATURES_PATH_FMT: Final = (
    "/features/installations/{installation_id}/gateways/{gateway_serial}"
    "/devices/{device_id}/features"
)

USER_AGENT: Final = "HomeEnergy/1.0 (HomeAssistant Integration)"
HTTP_TIMEOUT_SECONDS: Final = 25

# Polling
DEFAULT_POLL_INTERVAL: Final = 90  # seconds
MIN_POLL_INTERVAL: Final = 30  # seconds
MAX_POLL_INTERVAL: Final = 3600  # seconds
POLLING_STARTUP_DELAY: Final = timedelta(seconds=10)

# Cached feature lists expire this long before the next scheduled poll
CACHE_SAFETY_MARGIN: Final = timedelta(seconds=1)

# History
DEFAULT_HISTORY_DAYS: Final = 365
MAX_HISTORY_DAYS: Final = 1095
HISTORY_SYNC_INTERVAL: Final = timedelta(minutes=30)
HISTORY_STORAGE_VERSION: Final = 1
HISTORY_SAVE_DELAY: Final = 5  # seconds

# Services
SERVICE_SYNC_HISTORY: Final = "sync_history"
ATTR_ENTRY_ID: Final = "entry_id"
ATTR_RESOURCE_IDS: Final = "resource_ids"
ATTR_DAYS: Final = "days"


def get_brand_label(brand: str) -> str:
    """Return human-readable brand label."""

    return BRAND_LABELS.get(brand, BRAND_LABELS[DEFAULT_BRAND])


def cache_ttl_for_poll_interval(poll_interval: int) -> timedelta:
    """Return the feature cache lifetime for a poll interval in seconds."""

    ttl = timedelta(seconds=poll_interval) - CACHE_SAFETY_MARGIN
    return max(ttl, timedelta(0))


def statistic_id_for_resource(resource_id: str) -> str:
    """Return the external statistic id used for a Glowmarkt resource."""

    slug = "".join(ch if ch.isalnum() else "_" for ch in resource_id.lower())
    return f"{DOMAIN}:{slug.strip('_')}"
