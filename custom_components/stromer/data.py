from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.loader import Integration

    from .coordinator import StromerCoordinator
    from .pystromer import PollingEngine, StromerApi
    from .settings import StromerSettingsStore


type StromerConfigEntry = ConfigEntry[StromerData]


@dataclass(frozen=True)
class StromerData:
    api_client: StromerApi
    engine: PollingEngine
    settings: StromerSettingsStore
    coordinators: list[StromerCoordinator]
    integration: Integration
