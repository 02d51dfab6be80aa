"""Persisted token and baseline state for a Stromer config entry."""

from __future__ import annotations

from typing import Any

from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.storage import Store

from .const import STORE_KEY_FMT, STORE_SAVE_DELAY, STORE_VERSION


class StromerSettingsStore:
    """Key-value view over a Home Assistant Store, saved with a short delay."""

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        self._store: Store[dict[str, Any]] = Store(
            hass, STORE_VERSION, STORE_KEY_FMT.format(entry_id=entry_id)
        )
        self._data: dict[str, Any] = {}

    async def async_load(self) -> None:
        self._data = await self._store.async_load() or {}

    async def async_remove(self) -> None:
        self._data = {}
        await self._store.async_remove()

    def get(self, key: str) -> Any:
        return self._data.get(key)

    @callback
    def set(self, key: str, value: Any) -> None:
        if self._data.get(key) == value:
            return
        self._data[key] = value
        self._store.async_delay_save(lambda: self._data, STORE_SAVE_DELAY)
