"""Immutable runtime options for the Room Release integration.

Config entry options are validated once with a voluptuous schema and turned
into a frozen dataclass which is handed to every device session. Sessions
never mutate it; an options change reloads the config entry.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from typing import Any

import voluptuous as vol

from homeassistant.helpers import config_validation as cv

from .const import (
    CONF_BUTTON_STOP_CHECKS,
    CONF_CONSIDERED_OCCUPIED,
    CONF_DETECT_ACTIVE_CALLS,
    CONF_DETECT_INTERACTION,
    CONF_DETECT_PRESENTATION,
    CONF_DETECT_SOUND,
    CONF_DETECT_ULTRASOUND,
    CONF_EMPTY_BEFORE_RELEASE,
    CONF_FEEDBACK_ID,
    CONF_GHOST_ENABLED,
    CONF_GHOST_END_BOOKING,
    CONF_GHOST_LOOKAHEAD_DAYS,
    CONF_GHOST_RESET_DAILY,
    CONF_GHOST_RESET_MONTHLY,
    CONF_GHOST_RESET_WEEKLY,
    CONF_GHOST_RESET_YEARLY,
    CONF_GHOST_STRIKES,
    CONF_IGNORE_LONGER_THAN,
    CONF_INITIAL_RELEASE_DELAY,
    CONF_NOTIFY_SERVICE,
    CONF_OCCUPIED_STOP_CHECKS,
    CONF_PERIODIC_INTERVAL,
    CONF_PLAY_ANNOUNCEMENT,
    CONF_PROMPT_DURATION,
    CONF_REQUIRE_ULTRASOUND,
    CONF_SOUND_LEVEL,
    CONF_TEST_MODE,
    CONF_USE_ROOM_IN_USE,
    CONF_WEBEX_BOT_TOKEN,
    CONF_WEBEX_NOTIFY,
    CONF_WEBEX_ROOM_ID,
    DEFAULT_BUTTON_STOP_CHECKS,
    DEFAULT_CONSIDERED_OCCUPIED,
    DEFAULT_DETECT_ACTIVE_CALLS,
    DEFAULT_DETECT_INTERACTION,
    DEFAULT_DETECT_PRESENTATION,
    DEFAULT_DETECT_SOUND,
    DEFAULT_DETECT_ULTRASOUND,
    DEFAULT_EMPTY_BEFORE_RELEASE,
    DEFAULT_FEEDBACK_ID,
    DEFAULT_GHOST_ENABLED,
    DEFAULT_GHOST_END_BOOKING,
    DEFAULT_GHOST_LOOKAHEAD_DAYS,
    DEFAULT_GHOST_RESET_DAILY,
    DEFAULT_GHOST_RESET_MONTHLY,
    DEFAULT_GHOST_RESET_WEEKLY,
    DEFAULT_GHOST_RESET_YEARLY,
    DEFAULT_GHOST_STRIKES,
    DEFAULT_IGNORE_LONGER_THAN,
    DEFAULT_INITIAL_RELEASE_DELAY,
    DEFAULT_OCCUPIED_STOP_CHECKS,
    DEFAULT_PERIODIC_INTERVAL,
    DEFAULT_PLAY_ANNOUNCEMENT,
    DEFAULT_PROMPT_DURATION,
    DEFAULT_REQUIRE_ULTRASOUND,
    DEFAULT_SOUND_LEVEL,
    DEFAULT_TEST_MODE,
    DEFAULT_USE_ROOM_IN_USE,
    DEFAULT_WEBEX_NOTIFY,
)

_LOGGER = logging.getLogger(__name__)


def _minutes(minimum: int = 0) -> vol.All:
    """Whole number option; number selectors hand back floats."""
    return vol.All(vol.Coerce(int), vol.Range(min=minimum))


OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DETECT_SOUND, default=DEFAULT_DETECT_SOUND): cv.boolean,
        vol.Optional(
            CONF_DETECT_ULTRASOUND, default=DEFAULT_DETECT_ULTRASOUND
        ): cv.boolean,
        vol.Optional(
            CONF_REQUIRE_ULTRASOUND, default=DEFAULT_REQUIRE_ULTRASOUND
        ): cv.boolean,
        vol.Optional(
            CONF_DETECT_ACTIVE_CALLS, default=DEFAULT_DETECT_ACTIVE_CALLS
        ): cv.boolean,
        vol.Optional(
            CONF_DETECT_INTERACTION, default=DEFAULT_DETECT_INTERACTION
        ): cv.boolean,
        vol.Optional(
            CONF_DETECT_PRESENTATION, default=DEFAULT_DETECT_PRESENTATION
        ): cv.boolean,
        vol.Optional(CONF_USE_ROOM_IN_USE, default=DEFAULT_USE_ROOM_IN_USE): cv.boolean,
        vol.Optional(
            CONF_BUTTON_STOP_CHECKS, default=DEFAULT_BUTTON_STOP_CHECKS
        ): cv.boolean,
        vol.Optional(
            CONF_OCCUPIED_STOP_CHECKS, default=DEFAULT_OCCUPIED_STOP_CHECKS
        ): cv.boolean,
        vol.Optional(
            CONF_CONSIDERED_OCCUPIED, default=DEFAULT_CONSIDERED_OCCUPIED
        ): _minutes(1),
        vol.Optional(
            CONF_EMPTY_BEFORE_RELEASE, default=DEFAULT_EMPTY_BEFORE_RELEASE
        ): _minutes(1),
        vol.Optional(
            CONF_INITIAL_RELEASE_DELAY, default=DEFAULT_INITIAL_RELEASE_DELAY
        ): _minutes(0),
        vol.Optional(CONF_SOUND_LEVEL, default=DEFAULT_SOUND_LEVEL): _minutes(0),
        vol.Optional(
            CONF_IGNORE_LONGER_THAN, default=DEFAULT_IGNORE_LONGER_THAN
        ): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Optional(CONF_PROMPT_DURATION, default=DEFAULT_PROMPT_DURATION): _minutes(5),
        vol.Optional(
            CONF_PERIODIC_INTERVAL, default=DEFAULT_PERIODIC_INTERVAL
        ): _minutes(1),
        vol.Optional(CONF_TEST_MODE, default=DEFAULT_TEST_MODE): cv.boolean,
        vol.Optional(
            CONF_PLAY_ANNOUNCEMENT, default=DEFAULT_PLAY_ANNOUNCEMENT
        ): cv.boolean,
        vol.Optional(CONF_FEEDBACK_ID, default=DEFAULT_FEEDBACK_ID): cv.string,
        vol.Optional(CONF_NOTIFY_SERVICE, default=""): vol.Any(None, cv.string),
        vol.Optional(CONF_WEBEX_NOTIFY, default=DEFAULT_WEBEX_NOTIFY): cv.boolean,
        vol.Optional(CONF_WEBEX_ROOM_ID, default=""): vol.Any(None, cv.string),
        vol.Optional(CONF_WEBEX_BOT_TOKEN, default=""): vol.Any(None, cv.string),
        vol.Optional(CONF_GHOST_ENABLED, default=DEFAULT_GHOST_ENABLED): cv.boolean,
        vol.Optional(CONF_GHOST_STRIKES, default=DEFAULT_GHOST_STRIKES): _minutes(1),
        vol.Optional(
            CONF_GHOST_END_BOOKING, default=DEFAULT_GHOST_END_BOOKING
        ): cv.boolean,
        vol.Optional(
            CONF_GHOST_RESET_DAILY, default=DEFAULT_GHOST_RESET_DAILY
        ): _minutes(1),
        vol.Optional(
            CONF_GHOST_RESET_WEEKLY, default=DEFAULT_GHOST_RESET_WEEKLY
        ): _minutes(1),
        vol.Optional(
            CONF_GHOST_RESET_MONTHLY, default=DEFAULT_GHOST_RESET_MONTHLY
        ): _minutes(1),
        vol.Optional(
            CONF_GHOST_RESET_YEARLY, default=DEFAULT_GHOST_RESET_YEARLY
        ): _minutes(1),
        vol.Optional(
            CONF_GHOST_LOOKAHEAD_DAYS, default=DEFAULT_GHOST_LOOKAHEAD_DAYS
        ): _minutes(1),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True)
class RoomReleaseOptions:
    """Validated options shared by every device session of a config entry."""

    detect_sound: bool = DEFAULT_DETECT_SOUND
    detect_ultrasound: bool = DEFAULT_DETECT_ULTRASOUND
    require_ultrasound: bool = DEFAULT_REQUIRE_ULTRASOUND
    detect_active_calls: bool = DEFAULT_DETECT_ACTIVE_CALLS
    detect_interaction: bool = DEFAULT_DETECT_INTERACTION
    detect_presentation: bool = DEFAULT_DETECT_PRESENTATION
    use_room_in_use: bool = DEFAULT_USE_ROOM_IN_USE
    button_stop_checks: bool = DEFAULT_BUTTON_STOP_CHECKS
    occupied_stop_checks: bool = DEFAULT_OCCUPIED_STOP_CHECKS
    considered_occupied: int = DEFAULT_CONSIDERED_OCCUPIED
    empty_before_release: int = DEFAULT_EMPTY_BEFORE_RELEASE
    initial_release_delay: int = DEFAULT_INITIAL_RELEASE_DELAY
    sound_level: int = DEFAULT_SOUND_LEVEL
    ignore_longer_than: float = DEFAULT_IGNORE_LONGER_THAN
    prompt_duration: int = DEFAULT_PROMPT_DURATION
    periodic_interval: int = DEFAULT_PERIODIC_INTERVAL
    test_mode: bool = DEFAULT_TEST_MODE
    play_announcement: bool = DEFAULT_PLAY_ANNOUNCEMENT
    feedback_id: str = DEFAULT_FEEDBACK_ID
    notify_service: str = ""
    webex_notify: bool = DEFAULT_WEBEX_NOTIFY
    webex_room_id: str = ""
    webex_bot_token: str = ""
    ghost_enabled: bool = DEFAULT_GHOST_ENABLED
    ghost_strikes: int = DEFAULT_GHOST_STRIKES
    ghost_end_booking: bool = DEFAULT_GHOST_END_BOOKING
    ghost_reset_daily: int = DEFAULT_GHOST_RESET_DAILY
    ghost_reset_weekly: int = DEFAULT_GHOST_RESET_WEEKLY
    ghost_reset_monthly: int = DEFAULT_GHOST_RESET_MONTHLY
    ghost_reset_yearly: int = DEFAULT_GHOST_RESET_YEARLY
    ghost_lookahead_days: int = DEFAULT_GHOST_LOOKAHEAD_DAYS

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> RoomReleaseOptions:
        """Validate config entry options and build the options value.

        Raises vol.Invalid if an option has an unusable value.
        """
        validated = OPTIONS_SCHEMA(dict(data or {}))

        if validated[CONF_REQUIRE_ULTRASOUND] and not validated[CONF_DETECT_ULTRASOUND]:
            _LOGGER.warning("Ultrasound required but disabled, activating")
            validated[CONF_DETECT_ULTRASOUND] = True

        for key in (CONF_NOTIFY_SERVICE, CONF_WEBEX_ROOM_ID, CONF_WEBEX_BOT_TOKEN):
            validated[key] = (validated[key] or "").strip()

        return cls(**validated)

    @property
    def webex_notify_ready(self) -> bool:
        """Return True if Webex space notifications can be sent."""
        return self.webex_notify and bool(self.webex_room_id and self.webex_bot_token)
