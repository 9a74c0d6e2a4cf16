"""Binary sensor platform for the Room Release integration."""
from __future__ import annotations

import logging

from homeassistant.components.binary_sensor import (
    BinarySensorDeviceClass,
    BinarySensorEntity,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .coordinator import RoomReleaseCoordinator
from .entity import RoomReleaseEntity

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up binary sensor entities."""
    coordinator: RoomReleaseCoordinator = entry.runtime_data

    entities: list[BinarySensorEntity] = []
    for device_id in coordinator.device_ids:
        entities.append(RoomOccupiedBinarySensor(coordinator, entry, device_id))
        entities.append(CheckInPromptBinarySensor(coordinator, entry, device_id))

    async_add_entities(entities)


class RoomOccupiedBinarySensor(RoomReleaseEntity, BinarySensorEntity):
    """Binary sensor showing the occupancy verdict of a room."""

    _attr_device_class = BinarySensorDeviceClass.OCCUPANCY

    def __init__(
        self,
        coordinator: RoomReleaseCoordinator,
        entry: ConfigEntry,
        device_id: str,
    ) -> None:
        """Initialize the binary sensor."""
        super().__init__(coordinator, entry, device_id, "occupied")
        self._attr_name = "Room Occupied"

    @property
    def is_on(self) -> bool | None:
        """Return True if the latest metrics show the room in use."""
        if (session := self.session) is None:
            return None
        return session.occupied

    @property
    def extra_state_attributes(self) -> dict:
        """Return extra state attributes."""
        if (session := self.session) is None:
            return {}
        return {
            **session.metrics.as_dict(),
            "consolidated": session.evaluator.consolidated,
            "ghost": session.ghost,
        }


class CheckInPromptBinarySensor(RoomReleaseEntity, BinarySensorEntity):
    """Binary sensor that is on while the check-in prompt counts down."""

    _attr_icon = "mdi:timer-alert-outline"

    def __init__(
        self,
        coordinator: RoomReleaseCoordinator,
        entry: ConfigEntry,
        device_id: str,
    ) -> None:
        """Initialize the binary sensor."""
        super().__init__(coordinator, entry, device_id, "check_in_prompt")
        self._attr_name = "Check-In Prompt"

    @property
    def is_on(self) -> bool | None:
        """Return True while the countdown is running."""
        if (session := self.session) is None:
            return None
        return session.countdown_active

    @property
    def extra_state_attributes(self) -> dict:
        """Return extra state attributes."""
        if (session := self.session) is None:
            return {}
        countdown = session.countdown
        return {
            "remaining": countdown.remaining if countdown.active else None,
            "started_at": countdown.started_at.isoformat()
            if countdown.active and countdown.started_at
            else None,
        }
