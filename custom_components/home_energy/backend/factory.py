"""Client factory."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import aiohttp
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME

from ..const import BRAND_GLOWMARKT, BRAND_VICARE, CONF_CLIENT_ID


def create_client(
    brand: str, session: aiohttp.ClientSession, data: Mapping[str, Any]
) -> Any:
    """Create the provider client for ``brand`` from config entry data."""

    if brand == BRAND_VICARE:
        from .vicare import VicareClient

        return VicareClient(
            session,
            data[CONF_USERNAME],
            data[CONF_PASSWORD],
            data[CONF_CLIENT_ID],
        )
    if brand == BRAND_GLOWMARKT:
        from .glowmarkt import GlowmarktClient

        return GlowmarktClient(session, data[CONF_USERNAME], data[CONF_PASSWORD])
    raise ValueError(f"Unsupported brand: {brand}")
