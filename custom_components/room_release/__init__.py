"""The Room Release integration."""
from __future__ import annotations

import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import ServiceValidationError

from .const import DOMAIN, PLATFORMS
from .coordinator import RoomReleaseCoordinator
from .session import DeviceSession

_LOGGER = logging.getLogger(__name__)

# Service constants
SERVICE_CHECK_IN = "check_in"
SERVICE_REFRESH = "refresh"
ATTR_ENTRY_ID = "entry_id"
ATTR_DEVICE_ID = "device_id"

CHECK_IN_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_ENTRY_ID): str,
        vol.Required(ATTR_DEVICE_ID): str,
    }
)

REFRESH_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_ENTRY_ID): str,
        vol.Optional(ATTR_DEVICE_ID): str,
    }
)

RoomReleaseConfigEntry = ConfigEntry


async def async_setup_entry(hass: HomeAssistant, entry: RoomReleaseConfigEntry) -> bool:
    """Set up Room Release from a config entry."""
    _LOGGER.debug("Setting up Room Release: %s", entry.title)

    coordinator = RoomReleaseCoordinator(
        hass,
        config_entry_id=entry.entry_id,
        data=dict(entry.data),
        options=dict(entry.options),
        config_entry=entry,
    )
    entry.runtime_data = coordinator

    await coordinator.async_setup()

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    # Register services (only once for the domain)
    await _async_setup_services(hass)

    entry.async_on_unload(entry.add_update_listener(async_update_options))

    _LOGGER.info("Room Release setup complete: %s", entry.title)
    return True


def _get_coordinator_by_entry_id(
    hass: HomeAssistant, entry_id: str
) -> RoomReleaseCoordinator:
    """Get coordinator by entry ID."""
    entry = hass.config_entries.async_get_entry(entry_id)
    if entry is None or entry.domain != DOMAIN or not hasattr(entry, "runtime_data"):
        raise ServiceValidationError(
            f"Config entry {entry_id} not found",
            translation_domain=DOMAIN,
            translation_key="entry_not_found",
        )
    return entry.runtime_data


def _get_session(coordinator: RoomReleaseCoordinator, device_id: str) -> DeviceSession:
    """Get the session of an enrolled device."""
    session = coordinator.get_session(device_id)
    if session is None:
        raise ServiceValidationError(
            f"Device {device_id} is not enrolled",
            translation_domain=DOMAIN,
            translation_key="device_not_found",
            translation_placeholders={"device_id": device_id},
        )
    return session


async def _async_setup_services(hass: HomeAssistant) -> None:
    """Set up services for the integration."""
    if hass.services.has_service(DOMAIN, SERVICE_CHECK_IN):
        return

    async def async_handle_check_in(call: ServiceCall) -> None:
        """Handle the check_in service call."""
        coordinator = _get_coordinator_by_entry_id(hass, call.data[ATTR_ENTRY_ID])
        session = _get_session(coordinator, call.data[ATTR_DEVICE_ID])

        if not session.booking_is_active:
            _LOGGER.info("%s: No monitored booking to check in to", session.id)
            return

        await session.async_check_in()
        _LOGGER.info("%s: Checked in via service call", session.id)

    async def async_handle_refresh(call: ServiceCall) -> None:
        """Handle the refresh service call."""
        coordinator = _get_coordinator_by_entry_id(hass, call.data[ATTR_ENTRY_ID])

        if ATTR_DEVICE_ID in call.data:
            sessions = [_get_session(coordinator, call.data[ATTR_DEVICE_ID])]
        else:
            sessions = list(coordinator.sessions.values())

        for session in sessions:
            await session.async_refresh_metrics(process=session.booking_is_active)
        coordinator.async_set_updated_data(None)
        _LOGGER.info("Occupancy refreshed via service call")

    hass.services.async_register(
        DOMAIN, SERVICE_CHECK_IN, async_handle_check_in, schema=CHECK_IN_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_REFRESH, async_handle_refresh, schema=REFRESH_SCHEMA
    )


async def async_unload_entry(hass: HomeAssistant, entry: RoomReleaseConfigEntry) -> bool:
    """Unload a config entry."""
    _LOGGER.debug("Unloading Room Release: %s", entry.title)

    await entry.runtime_data.async_shutdown()

    return await hass.config_entries.async_unload_platforms(entry, PLATFORMS)


async def async_update_options(hass: HomeAssistant, entry: RoomReleaseConfigEntry) -> None:
    """Handle options update."""
    _LOGGER.debug("Updating options for: %s", entry.title)

    # Sessions hold a frozen copy of the options, rebuild them
    await hass.config_entries.async_reload(entry.entry_id)
