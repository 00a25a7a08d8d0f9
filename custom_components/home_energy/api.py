"""Shared REST plumbing and error taxonomy for the Home Energy clients."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
from typing import Any

import aiohttp

from .backend.sanitize import redact_text
from .const import HTTP_TIMEOUT_SECONDS, USER_AGENT

_LOGGER = logging.getLogger(__name__)

# Toggle to preview bodies in debug logs (redacted). Leave False by default.
API_LOG_PREVIEW = False


class AuthenticationError(Exception):
    """Credentials were rejected or the session expired."""


class CommunicationError(Exception):
    """The provider could not be reached or returned an error."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        """Store the optional HTTP status alongside the message."""

        super().__init__(message)
        self.status = status


class RateLimitError(CommunicationError):
    """Server rate-limited the client (HTTP 429)."""


class DataUnavailableError(Exception):
    """The provider holds no data for the requested range."""


class RESTClient:
    """Thin async JSON client shared by the brand clients (HA-safe)."""

    def __init__(self, session: aiohttp.ClientSession, *, api_base: str) -> None:
        """Initialise the client with the shared aiohttp session."""

        self._session = session
        self._api_base = api_base.rstrip("/")

    @property
    def api_base(self) -> str:
        """Expose the API base URL."""

        return self._api_base

    async def authed_headers(self) -> dict[str, str]:
        """Return HTTP headers carrying valid credentials."""

        raise NotImplementedError

    def _invalidate_token(self) -> None:
        """Forget cached credentials so the next request logs in again."""

    async def _request(
        self,
        method: str,
        path: str,
        *,
        authed: bool = True,
        ignore_statuses: Iterable[int] = (),
        **kwargs: Any,
    ) -> Any | None:
        """Perform an HTTP request.

        Return JSON when possible, otherwise text. HTTP statuses listed in
        ``ignore_statuses`` are logged and yield ``None``. A 401/403 triggers a
        single re-login before surfacing ``AuthenticationError``. Transport
        failures surface as ``CommunicationError``. Errors are logged WITHOUT
        secrets.
        """
        ignore = set(ignore_statuses)
        extra_headers: dict[str, str] = kwargs.pop("headers", None) or {}
        timeout = kwargs.pop(
            "timeout", aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        )
        url = path if path.startswith("http") else f"{self._api_base}{path}"
        _LOGGER.debug("HTTP %s %s", method, url)

        for attempt in range(2):
            headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
            if authed:
                headers.update(await self.authed_headers())
            headers.update(extra_headers)
            try:
                async with self._session.request(
                    method, url, headers=headers, timeout=timeout, **kwargs
                ) as resp:
                    ctype = resp.headers.get("Content-Type", "")
                    try:
                        body_text = await resp.text()
                    except (aiohttp.ClientError, UnicodeDecodeError):
                        body_text = ""

                    if resp.status >= 400:
                        log_fn = _LOGGER.debug if resp.status in ignore else _LOGGER.error
                        log_fn(
                            "HTTP error %s %s -> %s; body=%s",
                            method,
                            url,
                            resp.status,
                            redact_text(body_text)[:200],
                        )
                    elif API_LOG_PREVIEW:
                        _LOGGER.debug(
                            "HTTP %s -> %s, ctype=%s, body[0:200]=%r",
                            url,
                            resp.status,
                            ctype,
                            redact_text(body_text)[:200],
                        )
                    else:
                        _LOGGER.debug("HTTP %s -> %s, ctype=%s", url, resp.status, ctype)

                    if resp.status in (401, 403):
                        if authed and attempt == 0:
                            self._invalidate_token()
                            continue
                        raise AuthenticationError(f"Unauthorized (status {resp.status})")
                    if resp.status == 429:
                        raise RateLimitError("Rate limited", status=resp.status)
                    if resp.status in ignore:
                        return None
                    if resp.status >= 400:
                        raise CommunicationError(
                            f"HTTP {resp.status} for {method} {path}",
                            status=resp.status,
                        )

                    if "application/json" in ctype or (
                        body_text and body_text[:1] in ("{", "[")
                    ):
                        try:
                            return await resp.json(content_type=None)
                        except ValueError:
                            return body_text
                    return body_text
            except (AuthenticationError, CommunicationError):
                raise
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, TimeoutError) as err:
                _LOGGER.error(
                    "Request %s %s failed (sanitized): %s",
                    method,
                    url,
                    redact_text(str(err)),
                )
                raise CommunicationError(
                    f"Request {method} {path} failed: {redact_text(str(err))}"
                ) from err
        raise AuthenticationError("Unauthorized")


__all__ = [
    "AuthenticationError",
    "CommunicationError",
    "DataUnavailableError",
    "RESTClient",
    "RateLimitError",
]
