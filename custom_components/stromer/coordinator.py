"""Stromer bike coordinator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homeassistant.core import callback
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .pystromer import (
    PollingEngine,
    StromerBike,
    StromerBikeController,
    StromerBikeSnapshot,
)

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .data import StromerConfigEntry

_LOGGER = logging.getLogger(__name__)


class StromerCoordinator(DataUpdateCoordinator[StromerBikeSnapshot]):
    """Shares one bike's snapshots with listeners.

    Scheduling is owned by the PollingEngine, so the coordinator has no
    update interval of its own and receives data pushed by the controller.
    """

    config_entry: StromerConfigEntry

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: StromerConfigEntry,
        controller: StromerBikeController,
        bike: StromerBike,
        engine: PollingEngine,
    ) -> None:
        """Initialize the Stromer bike."""
        super().__init__(
            hass,
            logger=_LOGGER,
            config_entry=config_entry,
            name=f"Stromer {bike.name}",
            update_interval=None,
        )
        self.bike = bike
        self.controller = controller
        self.engine = engine
        controller.on_update = self._handle_snapshot
        controller.attach(
            engine,
            on_available=self._handle_available,
            on_unavailable=self._handle_unavailable,
        )

    @property
    def bike_id(self) -> str:
        return self.bike.bike_id

    async def async_start(self) -> None:
        await self.engine.async_start(self.bike_id)

    async def _async_update_data(self) -> StromerBikeSnapshot:
        """Run an out of schedule cycle."""
        await self.engine.async_poll_now(self.bike_id)
        state = self.engine.states[self.bike_id]
        if not state.available or self.controller.snapshot is None:
            raise UpdateFailed(state.unavailable_reason or "No data received")
        return self.controller.snapshot

    @callback
    def _handle_snapshot(self, snapshot: StromerBikeSnapshot) -> None:
        signals = snapshot.signals
        if signals.theft_activated:
            _LOGGER.warning("Theft alarm activated for bike %s", self.bike.name)
        if signals.bike_unlocked:
            _LOGGER.debug("Bike %s unlocked", self.bike.name)
        self.async_set_updated_data(snapshot)

    @callback
    def _handle_available(self) -> None:
        _LOGGER.info("Bike %s is available again", self.bike.name)

    @callback
    def _handle_unavailable(self, reason: str, auth_failed: bool) -> None:
        self.async_set_update_error(UpdateFailed(reason))
        if auth_failed:
            self.config_entry.async_start_reauth(self.hass)

