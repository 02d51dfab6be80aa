"""Config flow for the Stromer platform."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.config_entries import ConfigEntry, ConfigFlowResult
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.core import callback
from homeassistant.helpers.httpx_client import get_async_client

from .const import (
    CONF_ACTIVE_POLL_INTERVAL,
    CONF_CLIENT_ID,
    CONF_CLIENT_SECRET,
    CONF_ODOMETER_BASELINE,
    CONF_POLL_INTERVAL,
    CONF_USER_TOTAL_BASELINE,
    DEFAULT_ACTIVE_POLL_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
)
from .pystromer.exception import (
    AuthErrorKind,
    StromerAuthException,
    StromerException,
)
from .pystromer.models import Credentials
from .pystromer.stromer import StromerApi

_LOGGER = logging.getLogger(__name__)


class NoBikesFoundException(Exception):
    pass


@config_entries.HANDLERS.register(DOMAIN)
class FlowHandler(config_entries.ConfigFlow):
    """Handle a config flow."""

    VERSION = 1
    CONNECTION_CLASS = config_entries.CONN_CLASS_CLOUD_POLL

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlowHandler:
        return OptionsFlowHandler()

    async def async_step_user(self, user_input: dict | None = None) -> ConfigFlowResult:
        """User initiated config flow."""
        _errors = {}

        if user_input is not None:
            credentials = Credentials(
                email=user_input[CONF_EMAIL],
                password=user_input[CONF_PASSWORD],
                client_id=user_input[CONF_CLIENT_ID],
                client_secret=user_input.get(CONF_CLIENT_SECRET) or None,
            )

            await self.async_set_unique_id(credentials.email.lower())
            self._abort_if_unique_id_configured()

            if (error := await self._test_credentials(credentials)) is not None:
                _errors["base"] = error
            else:
                return self.async_create_entry(
                    title=f"Stromer for {credentials.email}",
                    data={
                        CONF_EMAIL: credentials.email,
                        CONF_PASSWORD: credentials.password,
                        CONF_CLIENT_ID: credentials.client_id,
                        CONF_CLIENT_SECRET: credentials.client_secret,
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_EMAIL): str,
                    vol.Required(CONF_PASSWORD): str,
                    vol.Required(CONF_CLIENT_ID): str,
                    vol.Optional(CONF_CLIENT_SECRET): str,
                }
            ),
            errors=_errors,
        )

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> ConfigFlowResult:
        """Credentials were rejected while polling."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict | None = None
    ) -> ConfigFlowResult:
        _errors = {}
        entry = self._get_reauth_entry()

        if user_input is not None:
            credentials = Credentials(
                email=entry.data[CONF_EMAIL],
                password=user_input[CONF_PASSWORD],
                client_id=entry.data[CONF_CLIENT_ID],
                client_secret=entry.data.get(CONF_CLIENT_SECRET),
            )
            if (error := await self._test_credentials(credentials)) is not None:
                _errors["base"] = error
            else:
                return self.async_update_reload_and_abort(
                    entry, data_updates={CONF_PASSWORD: credentials.password}
                )

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=vol.Schema({vol.Required(CONF_PASSWORD): str}),
            description_placeholders={"email": entry.data[CONF_EMAIL]},
            errors=_errors,
        )

    async def _test_credentials(self, credentials: Credentials) -> str | None:
        """Log in and list bikes, returning an error key on failure."""

        api_client = StromerApi(
            credentials=credentials,
            client_session=get_async_client(self.hass),
        )

        try:
            await api_client.async_authenticate()

            if bikes := await api_client.async_get_bikes():
                _LOGGER.debug("Found %d bikes for %s", len(bikes), credentials.email)
            else:
                _LOGGER.warning("No bikes found for %s", credentials.email)
                raise NoBikesFoundException
        except NoBikesFoundException:
            return "no_bikes_found"
        except StromerAuthException as exc:
            if exc.kind == AuthErrorKind.INVALID_CREDENTIALS:
                _LOGGER.warning(exc)
                return "invalid_auth"
            _LOGGER.error(exc)
            return "cannot_connect"
        except StromerException as exc:
            _LOGGER.error(exc)
            return "cannot_connect"
        finally:
            await api_client.async_logout()

        return None


class OptionsFlowHandler(config_entries.OptionsFlow):
    """Poll intervals and reference baselines."""

    async def async_step_init(self, user_input: dict | None = None) -> ConfigFlowResult:
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        options = self.config_entry.options
        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_ACTIVE_POLL_INTERVAL,
                        default=options.get(
                            CONF_ACTIVE_POLL_INTERVAL, DEFAULT_ACTIVE_POLL_INTERVAL
                        ),
                    ): vol.All(vol.Coerce(int), vol.Range(min=10, max=3600)),
                    vol.Required(
                        CONF_POLL_INTERVAL,
                        default=options.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
                    ): vol.All(vol.Coerce(int), vol.Range(min=1, max=1440)),
                    vol.Required(
                        CONF_USER_TOTAL_BASELINE,
                        default=options.get(CONF_USER_TOTAL_BASELINE, 0),
                    ): vol.All(vol.Coerce(float), vol.Range(min=0)),
                    vol.Required(
                        CONF_ODOMETER_BASELINE,
                        default=options.get(CONF_ODOMETER_BASELINE, 0),
                    ): vol.All(vol.Coerce(float), vol.Range(min=0)),
                }
            ),
        )
