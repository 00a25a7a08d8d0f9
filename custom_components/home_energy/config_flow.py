"""Config flow handlers for the Home Energy integration."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from homeassistant import config_entries
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import HomeAssistant, callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers import aiohttp_client
import voluptuous as vol

from .api import AuthenticationError, CommunicationError, RateLimitError
from .backend import create_client
from .const import (
    BRAND_LABELS,
    BRAND_VICARE,
    CONF_BRAND,
    CONF_CLIENT_ID,
    CONF_HISTORY_DAYS,
    CONF_POLL_INTERVAL,
    DEFAULT_BRAND,
    DEFAULT_HISTORY_DAYS,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MAX_HISTORY_DAYS,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    get_brand_label,
)

_LOGGER = logging.getLogger(__name__)


def _brand_schema(default_brand: str = DEFAULT_BRAND) -> vol.Schema:
    """Build the brand selection schema."""
    return vol.Schema(
        {
            vol.Required(
                CONF_BRAND,
                default=default_brand if default_brand in BRAND_LABELS else DEFAULT_BRAND,
            ): vol.In(BRAND_LABELS),
        }
    )


def _login_schema(
    brand: str,
    default_user: str = "",
    default_client_id: str = "",
) -> vol.Schema:
    """Build the credentials form schema for ``brand``."""
    fields: dict[Any, Any] = {
        vol.Required(CONF_USERNAME, default=default_user): str,
        vol.Required(CONF_PASSWORD): str,
    }
    if brand == BRAND_VICARE:
        fields[vol.Required(CONF_CLIENT_ID, default=default_client_id)] = str
    return vol.Schema(fields)


def options_schema(poll_interval: int, history_days: int) -> vol.Schema:
    """Build the options form schema with the current values as defaults."""
    return vol.Schema(
        {
            vol.Required(CONF_POLL_INTERVAL, default=poll_interval): vol.All(
                vol.Coerce(int),
                vol.Range(min=MIN_POLL_INTERVAL, max=MAX_POLL_INTERVAL),
            ),
            vol.Required(CONF_HISTORY_DAYS, default=history_days): vol.All(
                vol.Coerce(int), vol.Range(min=1, max=MAX_HISTORY_DAYS)
            ),
        }
    )


def _entry_unique_id(brand: str, username: str) -> str:
    """Return the config entry unique id of an account."""
    return f"{brand}:{username.strip().lower()}"


async def _validate_login(
    hass: HomeAssistant, brand: str, data: Mapping[str, Any]
) -> None:
    """Ensure the provided credentials authenticate successfully."""
    session = aiohttp_client.async_get_clientsession(hass)
    client = create_client(brand, session, data)
    if brand == BRAND_VICARE:
        await client.list_devices()
    else:
        await client.list_resources()


async def _login_errors(
    hass: HomeAssistant, brand: str, data: Mapping[str, Any], step_id: str
) -> dict[str, str]:
    """Return form errors produced by validating ``data``."""

    errors: dict[str, str] = {}
    try:
        await _validate_login(hass, brand, data)
    except AuthenticationError:
        errors["base"] = "invalid_auth"
    except RateLimitError:
        errors["base"] = "rate_limited"
    except CommunicationError:
        errors["base"] = "cannot_connect"
    except Exception:
        _LOGGER.exception("Unexpected error during %s step", step_id)
        errors["base"] = "unknown"
    return errors


class HomeEnergyConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Brand selection, credential validation and reauthentication."""

    VERSION = 1

    def __init__(self) -> None:
        """Start with the default brand selected."""
        self._brand = DEFAULT_BRAND
        self._reauth_entry: ConfigEntry | None = None

    async def async_step_user(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Ask which provider to connect."""
        if user_input is None:
            return self.async_show_form(step_id="user", data_schema=_brand_schema())

        brand = user_input.get(CONF_BRAND, DEFAULT_BRAND)
        self._brand = brand if brand in BRAND_LABELS else DEFAULT_BRAND
        return await self.async_step_credentials()

    async def async_step_credentials(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Collect credentials and create the config entry."""
        brand = self._brand
        if user_input is None:
            return self.async_show_form(
                step_id="credentials",
                data_schema=_login_schema(brand),
                description_placeholders={"brand": get_brand_label(brand)},
            )

        username = (user_input.get(CONF_USERNAME) or "").strip()
        data: dict[str, Any] = {
            CONF_BRAND: brand,
            CONF_USERNAME: username,
            CONF_PASSWORD: user_input.get(CONF_PASSWORD) or "",
        }
        if brand == BRAND_VICARE:
            data[CONF_CLIENT_ID] = (user_input.get(CONF_CLIENT_ID) or "").strip()

        errors = await _login_errors(self.hass, brand, data, "credentials")
        if errors:
            return self.async_show_form(
                step_id="credentials",
                data_schema=_login_schema(
                    brand,
                    default_user=username,
                    default_client_id=data.get(CONF_CLIENT_ID, ""),
                ),
                errors=errors,
                description_placeholders={"brand": get_brand_label(brand)},
            )

        await self.async_set_unique_id(_entry_unique_id(brand, username))
        self._abort_if_unique_id_configured()

        title = f"{get_brand_label(brand)} ({username})"
        return self.async_create_entry(title=title, data=data)

    async def async_step_reauth(self, entry_data: Mapping[str, Any]) -> FlowResult:
        """Start reauthentication after credentials were rejected."""
        entry_id = self.context.get("entry_id")
        self._reauth_entry = (
            self.hass.config_entries.async_get_entry(entry_id) if entry_id else None
        )
        self._brand = entry_data.get(CONF_BRAND, DEFAULT_BRAND)
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Ask for a new password and update the entry."""
        entry = self._reauth_entry
        if entry is None:
            return self.async_abort(reason="no_config_entry")

        brand = self._brand
        current_user = entry.data.get(CONF_USERNAME, "")
        current_client = entry.data.get(CONF_CLIENT_ID, "")
        if user_input is None:
            return self.async_show_form(
                step_id="reauth_confirm",
                data_schema=_login_schema(
                    brand, default_user=current_user, default_client_id=current_client
                ),
            )

        new_data = dict(entry.data)
        new_data[CONF_USERNAME] = (user_input.get(CONF_USERNAME) or current_user).strip()
        new_data[CONF_PASSWORD] = user_input.get(CONF_PASSWORD) or ""
        if brand == BRAND_VICARE:
            new_data[CONF_CLIENT_ID] = (
                user_input.get(CONF_CLIENT_ID) or current_client
            ).strip()

        errors = await _login_errors(self.hass, brand, new_data, "reauth_confirm")
        if errors:
            return self.async_show_form(
                step_id="reauth_confirm",
                data_schema=_login_schema(
                    brand,
                    default_user=new_data[CONF_USERNAME],
                    default_client_id=new_data.get(CONF_CLIENT_ID, ""),
                ),
                errors=errors,
            )

        self.hass.config_entries.async_update_entry(
            entry,
            data=new_data,
            unique_id=_entry_unique_id(brand, new_data[CONF_USERNAME]),
        )
        await self.hass.config_entries.async_reload(entry.entry_id)
        return self.async_abort(reason="reauth_successful")

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> HomeEnergyOptionsFlow:
        """Return the options flow handler for this config entry."""
        return HomeEnergyOptionsFlow(config_entry)


class HomeEnergyOptionsFlow(config_entries.OptionsFlow):
    """Options flow for the poll interval and history window."""

    def __init__(self, entry: ConfigEntry) -> None:
        """Store the entry being configured."""
        self.entry = entry

    async def async_step_init(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Show or process the options form."""
        if user_input is not None:
            return self.async_create_entry(
                title="",
                data={
                    CONF_POLL_INTERVAL: int(user_input[CONF_POLL_INTERVAL]),
                    CONF_HISTORY_DAYS: int(user_input[CONF_HISTORY_DAYS]),
                },
            )

        poll_default = int(
            self.entry.options.get(
                CONF_POLL_INTERVAL,
                self.entry.data.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
            )
        )
        days_default = int(
            self.entry.options.get(
                CONF_HISTORY_DAYS,
                self.entry.data.get(CONF_HISTORY_DAYS, DEFAULT_HISTORY_DAYS),
            )
        )
        return self.async_show_form(
            step_id="init", data_schema=options_schema(poll_default, days_default)
        )
