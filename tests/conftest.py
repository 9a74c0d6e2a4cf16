"""Fixtures for Room Release tests."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from homeassistant.config_entries import ConfigEntryState
from homeassistant.core import CALLBACK_TYPE, HomeAssistant
from homeassistant.util import dt as dt_util
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.room_release.const import (
    CONF_ACCESS_TOKEN,
    CONF_DEVICE_IDS,
    CONF_NOTIFY_SERVICE,
    DOMAIN,
)
from custom_components.room_release.options import RoomReleaseOptions
from custom_components.room_release.session import DeviceSession
from custom_components.room_release.xapi import DeviceChannel, XapiResult

# Test identifiers
TEST_DEVICE_ID = "Y2lzY29zcGFyazovL3VzL0RFVklDRS9hYmNkMTIzNA"
TEST_DEVICE_ID_2 = "Y2lzY29zcGFyazovL3VzL0RFVklDRS9lZmdoNTY3OA"
TEST_WORKSPACE_ID = "Y2lzY29zcGFyazovL3VzL1BMQUNFUy8xMjM0"
TEST_MAILBOX = "room-1@example.com"
TEST_BOOKING_ID = "42"
TEST_MEETING_ID = "meeting-42"
TEST_NOTIFY_SERVICE = "notify.test_notify"

BOOKING_START = datetime(2026, 3, 2, 9, 0, tzinfo=dt_util.UTC)


@pytest.fixture(autouse=True)
async def auto_enable_custom_integrations(
    hass: HomeAssistant,
    enable_custom_integrations: None,
) -> None:
    """Enable custom integrations for all tests."""
    pass


def booking_payload(
    booking_id: str = TEST_BOOKING_ID,
    start: datetime = BOOKING_START,
    hours: float = 1,
    title: str = "Weekly sync",
    first_name: str = "Ada",
    last_name: str = "Lovelace",
) -> dict[str, Any]:
    """Return a Bookings.Get result for a booking that just started."""
    seconds = int(hours * 3600)
    return {
        "Booking": {
            "Id": booking_id,
            "MeetingId": TEST_MEETING_ID,
            "Title": title,
            "Organizer": {"FirstName": first_name, "LastName": last_name},
            "Time": {
                "StartTime": start.isoformat(),
                "EndTime": (start + timedelta(seconds=seconds)).isoformat(),
                "SecondsSinceStart": 0,
                "SecondsUntilEnd": seconds,
            },
        }
    }


def device_payload(
    device_id: str = TEST_DEVICE_ID,
    software: str = "RoomOS 11.14.1.5 5d7a3e2ad51",
    product: str = "Cisco Room Kit Pro",
) -> dict[str, Any]:
    """Return a device details document."""
    return {
        "id": device_id,
        "displayName": "Boardroom",
        "serial": "FOC1234ABCD",
        "product": product,
        "software": software,
        "workspaceId": TEST_WORKSPACE_ID,
    }


class FakeChannel(DeviceChannel):
    """Scripted device channel recording every call."""

    def __init__(self) -> None:
        self.status: dict[str, Any] = {
            "Bookings.Availability.Status": "BookedUntil",
            "Bookings.Current.Id": TEST_BOOKING_ID,
            "SystemUnit.State.NumberOfActiveCalls": 0,
            "RoomAnalytics.UltrasoundPresence": "No",
            "RoomAnalytics.PeoplePresence": "No",
            "RoomAnalytics.PeopleCount.Current": -1,
            "RoomAnalytics.Sound.Level.A": 30,
            "RoomAnalytics.RoomInUse": "False",
            "SystemUnit.Extensions.Microsoft.Supported": "False",
        }
        self.failing: set[str] = {"Conference.Presentation.LocalInstance"}
        self.command_results: dict[str, XapiResult] = {
            "Bookings.Get": XapiResult.success(booking_payload()),
        }
        self.devices: dict[str, dict[str, Any]] = {
            TEST_DEVICE_ID: device_payload(TEST_DEVICE_ID),
            TEST_DEVICE_ID_2: device_payload(TEST_DEVICE_ID_2),
        }
        self.mailbox: str | None = TEST_MAILBOX
        self.commands: list[tuple[str, str, dict[str, Any]]] = []
        self.configured: list[tuple[str, str, Any]] = []
        self.handlers: list[Any] = []

    def set_occupied(self, occupied: bool = True) -> None:
        """Script the presence detector."""
        self.status["RoomAnalytics.PeoplePresence"] = "Yes" if occupied else "No"

    def command_names(self) -> list[str]:
        """Return the names of the commands sent so far."""
        return [name for _, name, _ in self.commands]

    async def async_get(self, device_id: str, path: str) -> XapiResult:
        if path in self.failing or path not in self.status:
            return XapiResult.failure(f"path not found: {path}")
        return XapiResult.success(self.status[path])

    async def async_set(self, device_id: str, path: str, value: Any) -> bool:
        self.configured.append((device_id, path, value))
        return True

    async def async_command(
        self, device_id: str, name: str, params: Mapping[str, Any] | None = None
    ) -> XapiResult:
        self.commands.append((device_id, name, dict(params or {})))
        return self.command_results.get(name, XapiResult.success({}))

    async def async_get_device(self, device_id: str) -> XapiResult:
        if device_id not in self.devices:
            return XapiResult.failure("HTTP 404: not found")
        return XapiResult.success(self.devices[device_id])

    async def async_get_mailbox(self, workspace_id: str) -> XapiResult:
        if self.mailbox is None:
            return XapiResult.failure("workspace has no calendar mailbox")
        return XapiResult.success(self.mailbox)

    def async_subscribe(self, handler: Any) -> CALLBACK_TYPE:
        self.handlers.append(handler)

        def _unsubscribe() -> None:
            self.handlers.remove(handler)

        return _unsubscribe


@pytest.fixture
def channel() -> FakeChannel:
    """Return a scripted device channel."""
    return FakeChannel()


@pytest.fixture
def options() -> RoomReleaseOptions:
    """Return default options."""
    return RoomReleaseOptions.from_mapping({})


def make_session(
    hass: HomeAssistant,
    channel: FakeChannel,
    options: RoomReleaseOptions | None = None,
    **kwargs: Any,
) -> DeviceSession:
    """Create a session for the primary test device."""
    return DeviceSession(
        hass,
        TEST_DEVICE_ID,
        channel,
        options or RoomReleaseOptions.from_mapping({}),
        **kwargs,
    )


@pytest.fixture
async def session(hass: HomeAssistant, channel: FakeChannel, options: RoomReleaseOptions):
    """Return a session that is shut down after the test."""
    device_session = make_session(hass, channel, options)
    yield device_session
    device_session.shutdown()


@pytest.fixture
def mock_config_entry() -> MockConfigEntry:
    """Create a mock config entry."""
    return MockConfigEntry(
        domain=DOMAIN,
        title="Test Room Release",
        version=1,
        data={
            "name": "Test Room Release",
            CONF_ACCESS_TOKEN: "test-access-token",
            CONF_DEVICE_IDS: [TEST_DEVICE_ID],
        },
        options={
            CONF_NOTIFY_SERVICE: TEST_NOTIFY_SERVICE,
        },
        entry_id="test_entry_id",
        unique_id=TEST_DEVICE_ID,
    )


@pytest.fixture
def patch_channel(channel: FakeChannel):
    """Route the integration's device channel to the scripted channel."""
    with patch(
        "custom_components.room_release.coordinator.WebexXapiChannel",
        return_value=channel,
    ):
        yield channel


@pytest.fixture
async def setup_integration(
    hass: HomeAssistant, mock_config_entry: MockConfigEntry, patch_channel: FakeChannel
):
    """Set up the integration with the scripted channel."""
    # Nothing is booked at setup
    patch_channel.status.pop("Bookings.Current.Id", None)
    mock_config_entry.add_to_hass(hass)
    await hass.config_entries.async_setup(mock_config_entry.entry_id)
    await hass.async_block_till_done()
    yield mock_config_entry
    if mock_config_entry.state is ConfigEntryState.LOADED:
        await hass.config_entries.async_unload(mock_config_entry.entry_id)
        await hass.async_block_till_done()


@pytest.fixture
def mock_notify_service(hass: HomeAssistant) -> AsyncMock:
    """Mock the notify service."""
    mock_service = AsyncMock()
    hass.services.async_register(
        "notify",
        "test_notify",
        mock_service,
    )
    return mock_service
