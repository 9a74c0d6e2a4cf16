"""Exceptions for the Room Release integration."""
from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class RoomReleaseError(HomeAssistantError):
    """Base error for Room Release."""


class DeviceNotSupportedError(RoomReleaseError):
    """Device cannot provide the telemetry Room Release depends on."""


class BookingParseError(RoomReleaseError, ValueError):
    """Booking data has no usable time information."""


class GraphError(RoomReleaseError):
    """A directory/calendar API call failed."""


class DeviceUnavailableError(RoomReleaseError):
    """Device details could not be read."""
