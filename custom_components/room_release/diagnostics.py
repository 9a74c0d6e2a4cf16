"""Diagnostics support for Room Release."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers import entity_registry as er

from .const import (
    CONF_ACCESS_TOKEN,
    CONF_GRAPH_CLIENT_SECRET,
    CONF_WEBEX_BOT_TOKEN,
)
from .coordinator import RoomReleaseCoordinator

# Keys to redact from diagnostics
TO_REDACT = {
    CONF_ACCESS_TOKEN,
    CONF_GRAPH_CLIENT_SECRET,
    CONF_WEBEX_BOT_TOKEN,
    "mailbox",
}


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry."""
    coordinator: RoomReleaseCoordinator = entry.runtime_data

    entity_reg = er.async_get(hass)
    entities = []
    for entity in er.async_entries_for_config_entry(entity_reg, entry.entry_id):
        state = hass.states.get(entity.entity_id)
        entities.append(
            {
                "entity_id": entity.entity_id,
                "unique_id": entity.unique_id,
                "disabled": entity.disabled,
                "state": state.state if state else None,
            }
        )

    return {
        "config_entry": {
            "title": entry.title,
            "version": entry.version,
            "data": async_redact_data(dict(entry.data), TO_REDACT),
            "options": async_redact_data(dict(entry.options), TO_REDACT),
        },
        "effective_options": async_redact_data(asdict(coordinator.options), TO_REDACT),
        "coordinator": async_redact_data(coordinator.as_dict(), TO_REDACT),
        "entities": entities,
    }
