"""ViCare heating-device client."""

from __future__ import annotations

import asyncio
import logging
from time import monotonic as time_mod
from typing import Any

import aiohttp

from custom_components.home_energy.api import (
    AuthenticationError,
    CommunicationError,
    RateLimitError,
    RESTClient,
)
from custom_components.home_energy.backend.sanitize import (
    mask_identifier,
    redact_text,
)
from custom_components.home_energy.codecs.vicare_codec import (
    decode_devices,
    decode_features,
    decode_token,
    extract_authorization_code,
    generate_pkce_pair,
)
from custom_components.home_energy.const import (
    HTTP_TIMEOUT_SECONDS,
    USER_AGENT,
    VICARE_AUTHORIZE_URL,
    VICARE_FEATURES_PATH_FMT,
    VICARE_INSTALLATIONS_PATH,
    VICARE_IOT_BASE,
    VICARE_REDIRECT_URI,
    VICARE_SCOPE,
    VICARE_TOKEN_URL,
)

_LOGGER = logging.getLogger(__name__)

_TOKEN_EXPIRY_MARGIN = 60.0
_DEFAULT_TOKEN_TTL = 3600.0


class VicareClient(RESTClient):
    """Async client for the ViCare IoT API (HA-safe)."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        username: str,
        password: str,
        client_id: str,
        *,
        api_base: str = VICARE_IOT_BASE,
        authorize_url: str = VICARE_AUTHORIZE_URL,
        token_url: str = VICARE_TOKEN_URL,
    ) -> None:
        """Initialise the client with account credentials and OAuth client id."""

        super().__init__(session, api_base=api_base)
        self._username = username
        self._password = password
        self._client_id = client_id
        self._authorize_url = authorize_url
        self._token_url = token_url
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._token_expiry_monotonic = 0.0
        self._lock = asyncio.Lock()

    def _invalidate_token(self) -> None:
        """Forget the access token; the refresh token is kept."""

        self._access_token = None
        self._token_expiry_monotonic = 0.0

    def _store_token(self, raw: Any) -> str:
        """Validate and remember a token payload."""

        token = decode_token(raw)
        ttl = (
            float(token.expires_in)
            if token.expires_in is not None
            else _DEFAULT_TOKEN_TTL
        )
        self._access_token = token.access_token
        if token.refresh_token:
            self._refresh_token = token.refresh_token
        self._token_expiry_monotonic = time_mod() + max(ttl - _TOKEN_EXPIRY_MARGIN, 0.0)
        return token.access_token

    async def _authorize(self, challenge: str) -> str:
        """Run the password-based authorize step and return the OAuth code."""

        params = {
            "client_id": self._client_id,
            "redirect_uri": VICARE_REDIRECT_URI,
            "response_type": "code",
            "scope": VICARE_SCOPE,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        try:
            async with self._session.get(
                self._authorize_url,
                params=params,
                auth=aiohttp.BasicAuth(self._username, self._password),
                headers={"User-Agent": USER_AGENT},
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status in (401, 403):
                    raise AuthenticationError("ViCare rejected the credentials")
                if resp.status == 429:
                    raise RateLimitError("Rate limited", status=resp.status)
                if resp.status not in (301, 302, 303, 307, 308):
                    raise CommunicationError(
                        f"HTTP {resp.status} for ViCare authorize", status=resp.status
                    )
                return extract_authorization_code(resp.headers.get("Location"))
        except (AuthenticationError, CommunicationError):
            raise
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, TimeoutError) as err:
            _LOGGER.error(
                "ViCare authorize failed (sanitized): %s", redact_text(str(err))
            )
            raise CommunicationError(
                f"ViCare authorize failed: {redact_text(str(err))}"
            ) from err

    async def _login(self) -> str:
        """Perform the PKCE authorization-code flow."""

        _LOGGER.debug(
            "ViCare login for user domain=%s",
            self._username.split("@")[-1] if "@" in self._username else "<no-domain>",
        )
        verifier, challenge = generate_pkce_pair()
        code = await self._authorize(challenge)
        raw = await self._request(
            "POST",
            self._token_url,
            authed=False,
            data={
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "redirect_uri": VICARE_REDIRECT_URI,
                "code": code,
                "code_verifier": verifier,
            },
        )
        return self._store_token(raw)

    async def _refresh(self) -> str:
        """Exchange the refresh token for a new access token.

        OAuth servers reject an expired or revoked refresh token with HTTP 400
        (``invalid_grant``); that surfaces as ``AuthenticationError``.
        """

        raw = await self._request(
            "POST",
            self._token_url,
            authed=False,
            ignore_statuses=(400,),
            data={
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "refresh_token": self._refresh_token,
            },
        )
        if raw is None:
            raise AuthenticationError("ViCare refresh token rejected")
        return self._store_token(raw)

    async def _ensure_token(self) -> str:
        """Return a valid access token, refreshing or logging in as needed."""

        if self._access_token and time_mod() < self._token_expiry_monotonic:
            return self._access_token

        async with self._lock:
            if self._access_token and time_mod() < self._token_expiry_monotonic:
                return self._access_token
            if self._refresh_token:
                try:
                    return await self._refresh()
                except AuthenticationError:
                    _LOGGER.debug("ViCare refresh token rejected; logging in again")
                    self._refresh_token = None
            return await self._login()

    async def authed_headers(self) -> dict[str, str]:
        """Return HTTP headers including a valid bearer token."""

        token = await self._ensure_token()
        return {"Authorization": f"Bearer {token}"}

    # ----------------- Public API -----------------

    async def list_devices(self) -> list[dict[str, Any]]:
        """Return every device of every installation on the account."""

        data = await self._request(
            "GET", VICARE_INSTALLATIONS_PATH, params={"includeGateways": "true"}
        )
        devices = decode_devices(data)
        _LOGGER.debug("ViCare account has %d device(s)", len(devices))
        return devices

    async def get_features(
        self, installation_id: str, gateway_serial: str, device_id: str
    ) -> list[dict[str, Any]]:
        """Return the raw feature list of one device."""

        _LOGGER.debug(
            "ViCare features for gateway %s device %s",
            mask_identifier(gateway_serial),
            device_id,
        )
        data = await self._request(
            "GET",
            VICARE_FEATURES_PATH_FMT.format(
                installation_id=installation_id,
                gateway_serial=gateway_serial,
                device_id=device_id,
            ),
        )
        return decode_features(data)


__all__ = ["VicareClient"]
