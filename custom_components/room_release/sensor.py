"""Sensor platform for the Room Release integration."""
from __future__ import annotations

import logging

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .coordinator import RoomReleaseCoordinator
from .entity import RoomReleaseEntity
from .notify import describe_result
from .occupancy import RoomState
from .release import ReleaseStatus

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up sensor entities."""
    coordinator: RoomReleaseCoordinator = entry.runtime_data

    entities: list[SensorEntity] = []
    for device_id in coordinator.device_ids:
        entities.append(RoomStateSensor(coordinator, entry, device_id))
        entities.append(LastReleaseSensor(coordinator, entry, device_id))

    async_add_entities(entities)


class RoomStateSensor(RoomReleaseEntity, SensorEntity):
    """Sensor showing where the room is in the release cycle."""

    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [state.value for state in RoomState]
    _attr_translation_key = "room_state"
    _attr_icon = "mdi:door"

    def __init__(
        self,
        coordinator: RoomReleaseCoordinator,
        entry: ConfigEntry,
        device_id: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator, entry, device_id, "room_state")
        self._attr_name = "Room State"

    @property
    def native_value(self) -> str | None:
        """Return the room state."""
        if (session := self.session) is None:
            return None
        return session.room_state.value

    @property
    def extra_state_attributes(self) -> dict:
        """Return extra state attributes."""
        if (session := self.session) is None:
            return {}
        booking = session.booking
        tracker = session.tracker
        return {
            "booking_id": booking.id if booking else None,
            "title": booking.title if booking else None,
            "organizer": booking.organizer.display_name if booking else None,
            "checks_active": session.listener_should_check,
            "last_full": tracker.last_full.isoformat() if tracker.last_full else None,
            "last_empty": tracker.last_empty.isoformat() if tracker.last_empty else None,
            "initial_delay": session.initial_delay.isoformat()
            if session.initial_delay
            else None,
        }


class LastReleaseSensor(RoomReleaseEntity, SensorEntity):
    """Sensor showing the outcome of the last release attempt."""

    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [status.value for status in ReleaseStatus]
    _attr_translation_key = "last_release"
    _attr_icon = "mdi:calendar-remove"

    def __init__(
        self,
        coordinator: RoomReleaseCoordinator,
        entry: ConfigEntry,
        device_id: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator, entry, device_id, "last_release")
        self._attr_name = "Last Release"

    @property
    def native_value(self) -> str | None:
        """Return the status of the last release."""
        if (session := self.session) is None or session.last_result is None:
            return None
        return session.last_result.status.value

    @property
    def extra_state_attributes(self) -> dict:
        """Return extra state attributes."""
        session = self.session
        if session is None or session.last_result is None:
            return {}
        booking = session.last_released
        return {
            "message": describe_result(session.last_result),
            "organizer": booking.organizer.display_name if booking else None,
            "title": booking.title if booking else None,
            "start_time": booking.start_time.isoformat()
            if booking and booking.start_time
            else None,
        }
