"""Coordinator for the Room Release integration."""
from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator
from homeassistant.util import dt as dt_util

from .const import (
    CONF_ACCESS_TOKEN,
    CONF_DEVICE_IDS,
    CONF_GRAPH_CLIENT_ID,
    CONF_GRAPH_CLIENT_SECRET,
    CONF_GRAPH_TENANT_ID,
    DOMAIN,
)
from .exceptions import DeviceNotSupportedError, DeviceUnavailableError
from .ghost import GhostStore, GhostTracker
from .graph import GraphClient
from .notify import ReleaseNotifier
from .options import RoomReleaseOptions
from .session import DeviceSession
from .xapi import DeviceChannel, WebexXapiChannel, normalize_path

_LOGGER = logging.getLogger(__name__)

PATH_SYSTEM_STATE = "SystemUnit.State.System"
PATH_BOOT_EVENT = "BootEvent"
PATH_BOOKING_START = "Bookings.Start"


class RoomReleaseCoordinator(DataUpdateCoordinator):
    """Own the device sessions of a config entry and route their telemetry."""

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry_id: str,
        data: dict[str, Any],
        options: dict[str, Any],
        channel: DeviceChannel | None = None,
        config_entry: ConfigEntry | None = None,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=None,  # Telemetry driven
        )
        self.config_entry_id = config_entry_id
        self.device_ids: list[str] = list(data.get(CONF_DEVICE_IDS, []))
        self.options = RoomReleaseOptions.from_mapping(options)
        self.channel = channel or WebexXapiChannel(hass, data[CONF_ACCESS_TOKEN])
        self.sessions: dict[str, DeviceSession] = {}
        self.unsupported: set[str] = set()
        self._unsub_telemetry: CALLBACK_TYPE | None = None

        http_session = async_get_clientsession(hass)
        self.notifier = ReleaseNotifier(hass, self.options, http_session)

        self.ghost_store: GhostStore | None = None
        self.ghost_tracker: GhostTracker | None = None
        tenant_id = data.get(CONF_GRAPH_TENANT_ID)
        client_id = data.get(CONF_GRAPH_CLIENT_ID)
        client_secret = data.get(CONF_GRAPH_CLIENT_SECRET)
        if tenant_id and client_id and client_secret:
            self.ghost_store = GhostStore(hass, config_entry_id)
            self.ghost_tracker = GhostTracker(
                GraphClient(http_session, tenant_id, client_id, client_secret),
                self.ghost_store,
                self.options,
            )
        elif self.options.ghost_enabled:
            _LOGGER.warning(
                "Ghost booking tracking enabled without calendar credentials, "
                "bookings will be declined directly"
            )

    async def async_setup(self) -> None:
        """Load persisted data, subscribe to telemetry and enroll devices."""
        if self.ghost_store is not None and self.options.ghost_enabled:
            await self.ghost_store.async_load()

        self._unsub_telemetry = self.channel.async_subscribe(self.async_handle_telemetry)

        for device_id in self.device_ids:
            await self.async_enroll(device_id)

        _LOGGER.info(
            "Room Release monitoring %d of %d devices",
            len(self.sessions),
            len(self.device_ids),
        )
        self.async_set_updated_data(None)

    async def async_shutdown(self) -> None:
        """Shut down the coordinator."""
        if self._unsub_telemetry:
            self._unsub_telemetry()
            self._unsub_telemetry = None

        for session in self.sessions.values():
            session.shutdown()
        self.sessions.clear()

        await super().async_shutdown()

    async def _async_update_data(self) -> None:
        """Nothing to poll; sessions push their updates."""
        return None

    async def async_enroll(
        self, device_id: str, now: datetime | None = None
    ) -> DeviceSession | None:
        """Configure a device and start its session.

        Returns None if the device cannot be monitored.
        """
        session = DeviceSession(
            self.hass,
            device_id,
            self.channel,
            self.options,
            notifier=self.notifier,
            ghost_tracker=self.ghost_tracker,
            on_update=self._async_session_updated,
        )

        try:
            sys_info = await session.async_configure()
        except DeviceNotSupportedError as err:
            if device_id not in self.unsupported:
                _LOGGER.warning("Device not enrolled: %s", err)
            self.unsupported.add(device_id)
            return None
        except DeviceUnavailableError as err:
            _LOGGER.warning("Device not enrolled: %s", err)
            return None

        self.unsupported.discard(device_id)
        if (previous := self.sessions.pop(device_id, None)) is not None:
            previous.shutdown()
        self.sessions[device_id] = session
        _LOGGER.info("%s: Device enrolled (%s)", session.id, sys_info.platform)

        await session.async_start(now)
        self.async_set_updated_data(None)
        return session

    def async_remove_session(self, device_id: str) -> None:
        """Drop the session of a device that went away."""
        session = self.sessions.pop(device_id, None)
        if session is None:
            return
        session.shutdown()
        _LOGGER.info("%s: Device rebooted, session removed", session.id)
        self.async_set_updated_data(None)

    async def async_handle_telemetry(
        self, device_id: str, path: str, value: Any, now: datetime | None = None
    ) -> None:
        """Route a telemetry event to the session of its device."""
        if device_id not in self.device_ids:
            return

        now = now or dt_util.utcnow()
        key = normalize_path(path)
        session = self.sessions.get(device_id)

        if key == PATH_SYSTEM_STATE:
            if value == "Initialized" and session is None:
                await self.async_enroll(device_id, now)
            return

        if key == PATH_BOOT_EVENT:
            self.async_remove_session(device_id)
            return

        if session is None:
            if key.startswith(PATH_BOOKING_START):
                _LOGGER.debug("Booking started on unknown device %s, enrolling", device_id)
                await self.async_enroll(device_id, now)
            return

        await session.async_handle_telemetry(path, value, now)

    def get_session(self, device_id: str) -> DeviceSession | None:
        """Return the session of an enrolled device."""
        return self.sessions.get(device_id)

    @callback
    def _async_session_updated(self) -> None:
        self.async_update_listeners()

    def as_dict(self) -> dict[str, Any]:
        """Return coordinator state for diagnostics."""
        return {
            "device_ids": self.device_ids,
            "unsupported": sorted(self.unsupported),
            "sessions": {
                device_id: session.as_dict()
                for device_id, session in self.sessions.items()
            },
            "ghost_store": self.ghost_store.as_dict() if self.ghost_store else None,
        }
