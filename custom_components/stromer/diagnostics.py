"""Provides diagnostics for Stromer."""

from __future__ import annotations

from typing import Any

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.const import CONF_PASSWORD
from homeassistant.core import HomeAssistant

from .const import CONF_CLIENT_SECRET
from .data import StromerConfigEntry

TO_REDACT = {CONF_PASSWORD, CONF_CLIENT_SECRET}


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: StromerConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry."""

    api = entry.runtime_data.api_client
    engine = entry.runtime_data.engine
    expires_at = api.tokens.expires_at

    return {
        "config_entry_data": async_redact_data(dict(entry.data), TO_REDACT),
        "config_entry_options": dict(entry.options),
        "bikes": [
            {
                "bike_id": coordinator.bike_id,
                "name": coordinator.bike.name,
                "biketype": coordinator.bike.biketype,
            }
            for coordinator in entry.runtime_data.coordinators
        ],
        "auth_api": {
            "variant": api.variant.name,
            "state": api.state,
            "access_token_valid": api.is_token_valid(),
            "token_expires_at": expires_at.isoformat() if expires_at else None,
            "status": api.auth.get_status_code(),
        },
        "data_api": {"endpoint": api.base_url, "status": api.get_status_code()},
        "polling": {
            bike_id: {
                "mode": state.mode,
                "retry_count": state.retry_count,
                "delay": state.delay,
                "available": state.available,
                "unavailable_reason": state.unavailable_reason,
                "stopped": state.stopped,
            }
            for bike_id, state in engine.states.items()
        },
    }
