"""Stromer e-bike integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady
from homeassistant.helpers.httpx_client import create_async_httpx_client
from homeassistant.loader import async_get_loaded_integration

from .const import (
    CONF_ACTIVE_POLL_INTERVAL,
    CONF_CLIENT_ID,
    CONF_CLIENT_SECRET,
    CONF_ODOMETER_BASELINE,
    CONF_POLL_INTERVAL,
    CONF_USER_TOTAL_BASELINE,
    DEFAULT_ACTIVE_POLL_INTERVAL,
    DEFAULT_POLL_INTERVAL,
)
from .coordinator import StromerCoordinator
from .data import StromerData
from .pystromer import Credentials, PollingEngine, StromerApi, StromerBikeController
from .pystromer.exception import StromerException
from .pystromer.polling import is_auth_failure
from .settings import StromerSettingsStore

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .data import StromerConfigEntry

_LOGGER = logging.getLogger(__name__)


def _poll_intervals(entry: StromerConfigEntry) -> tuple[timedelta, timedelta]:
    return (
        timedelta(
            seconds=entry.options.get(
                CONF_ACTIVE_POLL_INTERVAL, DEFAULT_ACTIVE_POLL_INTERVAL
            )
        ),
        timedelta(minutes=entry.options.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)),
    )


def _apply_reference_baselines(
    entry: StromerConfigEntry, controller: StromerBikeController
) -> None:
    controller.set_reference_baselines(
        user_total_baseline=entry.options.get(CONF_USER_TOTAL_BASELINE, 0),
        odometer_baseline=entry.options.get(CONF_ODOMETER_BASELINE, 0),
    )


async def async_setup_entry(hass: HomeAssistant, entry: StromerConfigEntry) -> bool:
    """Set up Stromer from a config entry."""

    _LOGGER.debug("async_setup_entry: %s", entry.entry_id)

    settings = StromerSettingsStore(hass, entry.entry_id)
    await settings.async_load()

    api_client = StromerApi(
        credentials=Credentials(
            email=entry.data[CONF_EMAIL],
            password=entry.data[CONF_PASSWORD],
            client_id=entry.data[CONF_CLIENT_ID],
            client_secret=entry.data.get(CONF_CLIENT_SECRET),
        ),
        store=settings,
        client_session=create_async_httpx_client(hass),
        unique_id=entry.entry_id,
    )
    await api_client.async_init()

    try:
        bikes = await api_client.async_get_bikes()
    except StromerException as exc:
        if is_auth_failure(exc):
            raise ConfigEntryAuthFailed(exc) from exc
        raise ConfigEntryNotReady(exc) from exc

    active_interval, idle_interval = _poll_intervals(entry)
    engine = PollingEngine(
        active_interval=active_interval,
        idle_interval=idle_interval,
        unique_id=entry.entry_id,
    )
    entry.async_on_unload(engine.stop_all)

    coordinators = []

    for bike in bikes:
        controller = StromerBikeController(api_client, bike.bike_id, settings)
        _apply_reference_baselines(entry, controller)
        coordinator = StromerCoordinator(
            hass,
            config_entry=entry,
            controller=controller,
            bike=bike,
            engine=engine,
        )
        await coordinator.async_start()
        coordinators.append(coordinator)
        _LOGGER.debug("Added bike %s for %s", bike.bike_id, entry.entry_id)

    entry.runtime_data = StromerData(
        api_client=api_client,
        engine=engine,
        settings=settings,
        coordinators=coordinators,
        integration=async_get_loaded_integration(hass, entry.domain),
    )

    entry.async_on_unload(entry.add_update_listener(async_update_options))

    return True


async def async_update_options(hass: HomeAssistant, entry: StromerConfigEntry) -> None:
    """Apply changed poll intervals and reference baselines."""
    data = entry.runtime_data
    data.engine.set_intervals(*_poll_intervals(entry))
    for coordinator in data.coordinators:
        _apply_reference_baselines(entry, coordinator.controller)
        await data.engine.async_poll_now(coordinator.bike_id)


async def async_unload_entry(hass: HomeAssistant, entry: StromerConfigEntry) -> bool:
    """Handle removal of an entry."""

    _LOGGER.debug("async_unload_entry: %s", entry.entry_id)
    entry.runtime_data.engine.stop_all()
    return True


async def async_remove_entry(hass: HomeAssistant, entry: StromerConfigEntry) -> None:
    """Drop persisted tokens and baselines."""
    await StromerSettingsStore(hass, entry.entry_id).async_remove()
