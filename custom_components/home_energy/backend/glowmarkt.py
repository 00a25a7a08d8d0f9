"""Glowmarkt smart-meter data client."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta
import logging
import time
from time import monotonic as time_mod
from typing import Any

import aiohttp

from custom_components.home_energy.api import RESTClient
from custom_components.home_energy.backend.sanitize import mask_identifier
from custom_components.home_energy.codecs.glowmarkt_codec import (
    decode_auth,
    decode_bounds,
    decode_readings,
    decode_virtual_entities,
    format_query_time,
)
from custom_components.home_energy.codecs.glowmarkt_models import (
    ResourceSummary,
    VirtualEntity,
)
from custom_components.home_energy.const import (
    GLOWMARKT_API_BASE,
    GLOWMARKT_APPLICATION_ID,
    GLOWMARKT_AUTH_PATH,
    GLOWMARKT_FIRST_TIME_PATH_FMT,
    GLOWMARKT_LAST_TIME_PATH_FMT,
    GLOWMARKT_READINGS_PATH_FMT,
    GLOWMARKT_VIRTUAL_ENTITIES_PATH,
)
from custom_components.home_energy.domain.history import (
    AggregationFunction,
    AggregationPeriod,
    ProviderBounds,
    Sample,
)

_LOGGER = logging.getLogger(__name__)

# Renew tokens a little before the server-side expiry.
_TOKEN_EXPIRY_MARGIN = 60.0
_DEFAULT_TOKEN_TTL = 3600.0


class GlowmarktClient(RESTClient):
    """Async client for the Glowmarkt API (HA-safe)."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        username: str,
        password: str,
        *,
        api_base: str = GLOWMARKT_API_BASE,
        application_id: str = GLOWMARKT_APPLICATION_ID,
    ) -> None:
        """Initialise the client with account credentials."""

        super().__init__(session, api_base=api_base)
        self._username = username
        self._password = password
        self._application_id = application_id
        self._token: str | None = None
        self._token_expiry_monotonic = 0.0
        self._lock = asyncio.Lock()

    def _invalidate_token(self) -> None:
        """Forget the cached token."""

        self._token = None
        self._token_expiry_monotonic = 0.0

    async def _ensure_token(self) -> str:
        """Return a valid token, logging in when missing or expired."""

        if self._token and time_mod() < self._token_expiry_monotonic:
            return self._token

        async with self._lock:
            if self._token and time_mod() < self._token_expiry_monotonic:
                return self._token

            _LOGGER.debug(
                "Glowmarkt login for user domain=%s",
                self._username.split("@")[-1] if "@" in self._username else "<no-domain>",
            )
            raw = await self._request(
                "POST",
                GLOWMARKT_AUTH_PATH,
                authed=False,
                headers={"applicationId": self._application_id},
                json={"username": self._username, "password": self._password},
            )
            auth = decode_auth(raw)
            ttl = _DEFAULT_TOKEN_TTL
            if isinstance(auth.exp, (int, float)):
                ttl = max(float(auth.exp) - time.time(), 0.0)
            self._token = auth.token
            self._token_expiry_monotonic = time_mod() + max(ttl - _TOKEN_EXPIRY_MARGIN, 0.0)
            return auth.token

    async def authed_headers(self) -> dict[str, str]:
        """Return HTTP headers including a valid token."""

        token = await self._ensure_token()
        return {"applicationId": self._application_id, "token": token}

    # ----------------- Public API -----------------

    async def list_virtual_entities(self) -> list[VirtualEntity]:
        """Return the account's virtual entities and their resources."""

        data = await self._request("GET", GLOWMARKT_VIRTUAL_ENTITIES_PATH)
        return decode_virtual_entities(data)

    async def list_resources(self) -> list[ResourceSummary]:
        """Return every resource across all virtual entities, de-duplicated."""

        seen: set[str] = set()
        resources: list[ResourceSummary] = []
        for entity in await self.list_virtual_entities():
            for resource in entity.resources:
                if resource.resource_id in seen:
                    continue
                seen.add(resource.resource_id)
                resources.append(resource)
        return resources

    async def get_bounds(self, resource_id: str) -> ProviderBounds:
        """Return the first/last reading instants of ``resource_id``."""

        first = await self._request(
            "GET", GLOWMARKT_FIRST_TIME_PATH_FMT.format(resource_id=resource_id)
        )
        last = await self._request(
            "GET", GLOWMARKT_LAST_TIME_PATH_FMT.format(resource_id=resource_id)
        )
        return decode_bounds(first, last)

    async def get_samples(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        period: AggregationPeriod,
        function: AggregationFunction,
    ) -> Sequence[Sample]:
        """Return readings for ``[start, end)``; the API bounds are inclusive."""

        if end <= start:
            return []
        inclusive_end = max(end - timedelta(seconds=1), start)
        params: dict[str, Any] = {
            "from": format_query_time(start),
            "to": format_query_time(inclusive_end),
            "period": AggregationPeriod(period).value,
            "function": AggregationFunction(function).value,
            "offset": 0,
        }
        _LOGGER.debug(
            "Glowmarkt readings %s %s..%s period=%s",
            mask_identifier(resource_id),
            params["from"],
            params["to"],
            params["period"],
        )
        data = await self._request(
            "GET",
            GLOWMARKT_READINGS_PATH_FMT.format(resource_id=resource_id),
            params=params,
        )
        return decode_readings(data, start, end)


__all__ = ["GlowmarktClient"]
