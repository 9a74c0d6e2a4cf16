"""Tests for the binary sensor platform."""
from __future__ import annotations

from datetime import timedelta

from homeassistant.const import STATE_OFF, STATE_ON, STATE_UNAVAILABLE
from homeassistant.core import HomeAssistant
from homeassistant.helpers import entity_registry as er
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.room_release.const import DOMAIN

from .conftest import BOOKING_START, TEST_BOOKING_ID, TEST_DEVICE_ID, FakeChannel


def _entity_id(hass: HomeAssistant, entry: MockConfigEntry, key: str) -> str:
    entity_id = er.async_get(hass).async_get_entity_id(
        "binary_sensor", DOMAIN, f"{entry.entry_id}_{TEST_DEVICE_ID}_{key}"
    )
    assert entity_id is not None
    return entity_id


class TestRoomOccupiedBinarySensor:
    """Tests for the room occupied binary sensor."""

    async def test_initial_state(
        self, hass: HomeAssistant, setup_integration: MockConfigEntry
    ) -> None:
        """Test the sensor is off for an empty room."""
        state = hass.states.get(_entity_id(hass, setup_integration, "occupied"))

        assert state.state == STATE_OFF
        assert state.attributes["device_class"] == "occupancy"
        assert state.attributes["people_presence"] is False
        assert state.attributes["consolidated"] is False

    async def test_follows_telemetry(
        self,
        hass: HomeAssistant,
        setup_integration: MockConfigEntry,
        patch_channel: FakeChannel,
    ) -> None:
        """Test presence telemetry turns the sensor on."""
        coordinator = setup_integration.runtime_data
        session = coordinator.get_session(TEST_DEVICE_ID)
        await session.async_start_booking(TEST_BOOKING_ID, BOOKING_START)

        await coordinator.async_handle_telemetry(
            TEST_DEVICE_ID,
            "RoomAnalytics.PeoplePresence",
            "Yes",
            BOOKING_START + timedelta(minutes=1),
        )
        await hass.async_block_till_done()

        state = hass.states.get(_entity_id(hass, setup_integration, "occupied"))
        assert state.state == STATE_ON
        assert state.attributes["ghost"] is False

    async def test_unavailable_after_reboot(
        self, hass: HomeAssistant, setup_integration: MockConfigEntry
    ) -> None:
        """Test the sensor is unavailable while the device is not enrolled."""
        coordinator = setup_integration.runtime_data

        await coordinator.async_handle_telemetry(TEST_DEVICE_ID, "BootEvent", "Restart")
        await hass.async_block_till_done()

        state = hass.states.get(_entity_id(hass, setup_integration, "occupied"))
        assert state.state == STATE_UNAVAILABLE


class TestCheckInPromptBinarySensor:
    """Tests for the check-in prompt binary sensor."""

    async def test_prompt(
        self, hass: HomeAssistant, setup_integration: MockConfigEntry
    ) -> None:
        """Test the sensor is on while the countdown runs."""
        entity_id = _entity_id(hass, setup_integration, "check_in_prompt")
        assert hass.states.get(entity_id).state == STATE_OFF

        session = setup_integration.runtime_data.get_session(TEST_DEVICE_ID)
        await session.async_start_booking(TEST_BOOKING_ID, BOOKING_START)
        await session.countdown.async_start(BOOKING_START + timedelta(minutes=11))
        setup_integration.runtime_data.async_update_listeners()
        await hass.async_block_till_done()

        state = hass.states.get(entity_id)
        assert state.state == STATE_ON
        assert state.attributes["remaining"] == 60

        await session.countdown.async_cancel()
        setup_integration.runtime_data.async_update_listeners()
        await hass.async_block_till_done()

        assert hass.states.get(entity_id).state == STATE_OFF
