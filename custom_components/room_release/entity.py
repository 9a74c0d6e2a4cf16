"""Base entity for the Room Release integration."""
from __future__ import annotations

from homeassistant.config_entries import ConfigEntry
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN
from .coordinator import RoomReleaseCoordinator
from .session import DeviceSession


class RoomReleaseEntity(CoordinatorEntity[RoomReleaseCoordinator]):
    """Entity bound to one configured device."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: RoomReleaseCoordinator,
        entry: ConfigEntry,
        device_id: str,
        key: str,
    ) -> None:
        """Initialize the entity."""
        super().__init__(coordinator)
        self._entry = entry
        self._device_id = device_id
        self._attr_unique_id = f"{entry.entry_id}_{device_id}_{key}"

    @property
    def session(self) -> DeviceSession | None:
        """Return the session of the device, if enrolled."""
        return self.coordinator.get_session(self._device_id)

    @property
    def available(self) -> bool:
        """Return True if the device is enrolled."""
        return super().available and self.session is not None

    @property
    def device_info(self):
        """Return device info."""
        info = {
            "identifiers": {(DOMAIN, self._device_id)},
            "name": f"Room Release {self._device_id[-8:]}",
            "manufacturer": "Cisco",
            "model": "Collaboration Device",
        }
        if (session := self.session) is not None:
            info["name"] = session.sys_info.name
            if session.sys_info.platform:
                info["model"] = session.sys_info.platform
            if session.sys_info.version:
                info["sw_version"] = session.sys_info.version
            if session.sys_info.serial:
                info["serial_number"] = session.sys_info.serial
        return info
