"""Config flow for the Room Release integration."""
from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.const import CONF_NAME
from homeassistant.core import callback
from homeassistant.helpers import selector

from .const import (
    CONF_ACCESS_TOKEN,
    CONF_BUTTON_STOP_CHECKS,
    CONF_CONSIDERED_OCCUPIED,
    CONF_DETECT_ACTIVE_CALLS,
    CONF_DETECT_INTERACTION,
    CONF_DETECT_PRESENTATION,
    CONF_DETECT_SOUND,
    CONF_DETECT_ULTRASOUND,
    CONF_DEVICE_IDS,
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
    CONF_GRAPH_CLIENT_ID,
    CONF_GRAPH_CLIENT_SECRET,
    CONF_GRAPH_TENANT_ID,
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
    DEFAULT_NAME,
    DOMAIN,
)
from .options import RoomReleaseOptions

_LOGGER = logging.getLogger(__name__)

GRAPH_KEYS = (CONF_GRAPH_TENANT_ID, CONF_GRAPH_CLIENT_ID, CONF_GRAPH_CLIENT_SECRET)


def parse_device_ids(value: str | list[str] | None) -> list[str]:
    """Split a comma or whitespace separated list of device ids."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    device_ids: list[str] = []
    for device_id in value:
        device_id = device_id.strip()
        if device_id and device_id not in device_ids:
            device_ids.append(device_id)
    return device_ids


def _number(
    minimum: float, maximum: float, unit: str, step: float = 1
) -> selector.NumberSelector:
    return selector.NumberSelector(
        selector.NumberSelectorConfig(
            min=minimum,
            max=maximum,
            step=step,
            unit_of_measurement=unit,
            mode=selector.NumberSelectorMode.BOX,
        )
    )


def _text(password: bool = False) -> selector.TextSelector:
    return selector.TextSelector(
        selector.TextSelectorConfig(
            type=selector.TextSelectorType.PASSWORD
            if password
            else selector.TextSelectorType.TEXT,
        )
    )


class RoomReleaseConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Room Release."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle the initial step."""
        errors: dict[str, str] = {}

        if user_input is not None:
            device_ids = parse_device_ids(user_input.get(CONF_DEVICE_IDS))
            graph = {key: (user_input.get(key) or "").strip() for key in GRAPH_KEYS}

            if not (user_input.get(CONF_ACCESS_TOKEN) or "").strip():
                errors[CONF_ACCESS_TOKEN] = "no_access_token"
            elif not device_ids:
                errors[CONF_DEVICE_IDS] = "no_devices"
            elif any(graph.values()) and not all(graph.values()):
                errors["base"] = "incomplete_graph_credentials"
            else:
                await self.async_set_unique_id(",".join(sorted(device_ids)))
                self._abort_if_unique_id_configured()

                name = user_input.get(CONF_NAME) or DEFAULT_NAME
                data: dict[str, Any] = {
                    CONF_NAME: name,
                    CONF_ACCESS_TOKEN: user_input[CONF_ACCESS_TOKEN].strip(),
                    CONF_DEVICE_IDS: device_ids,
                }
                if all(graph.values()):
                    data.update(graph)

                return self.async_create_entry(title=name, data=data, options={})

        data_schema = vol.Schema(
            {
                vol.Required(CONF_NAME, default=DEFAULT_NAME): str,
                vol.Required(CONF_ACCESS_TOKEN): _text(password=True),
                vol.Required(CONF_DEVICE_IDS): _text(),
                vol.Optional(CONF_GRAPH_TENANT_ID): _text(),
                vol.Optional(CONF_GRAPH_CLIENT_ID): _text(),
                vol.Optional(CONF_GRAPH_CLIENT_SECRET): _text(password=True),
            }
        )

        return self.async_show_form(
            step_id="user",
            data_schema=data_schema,
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        """Create the options flow."""
        return RoomReleaseOptionsFlow()


class RoomReleaseOptionsFlow(config_entries.OptionsFlow):
    """Handle options flow for Room Release."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Show the main menu."""
        return self.async_show_menu(
            step_id="init",
            menu_options=["detection", "timers", "notifications", "ghost"],
        )

    @property
    def _current(self) -> RoomReleaseOptions:
        return RoomReleaseOptions.from_mapping(self.config_entry.options)

    def _async_save(
        self, step_id: str, data_schema: vol.Schema, user_input: dict[str, Any]
    ) -> config_entries.ConfigFlowResult:
        """Validate merged options and store them."""
        new_options = {**self.config_entry.options, **user_input}
        try:
            RoomReleaseOptions.from_mapping(new_options)
        except vol.Invalid as err:
            _LOGGER.debug("Invalid options: %s", err)
            return self.async_show_form(
                step_id=step_id,
                data_schema=data_schema,
                errors={"base": "invalid_options"},
            )
        return self.async_create_entry(title="", data=new_options)

    async def async_step_detection(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle occupancy detection settings."""
        options = self._current
        data_schema = vol.Schema(
            {
                vol.Optional(
                    CONF_USE_ROOM_IN_USE, default=options.use_room_in_use
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_DETECT_ACTIVE_CALLS, default=options.detect_active_calls
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_DETECT_PRESENTATION, default=options.detect_presentation
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_DETECT_INTERACTION, default=options.detect_interaction
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_DETECT_ULTRASOUND, default=options.detect_ultrasound
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_REQUIRE_ULTRASOUND, default=options.require_ultrasound
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_DETECT_SOUND, default=options.detect_sound
                ): selector.BooleanSelector(),
                vol.Optional(CONF_SOUND_LEVEL, default=options.sound_level): _number(
                    0, 120, "dB"
                ),
                vol.Optional(
                    CONF_BUTTON_STOP_CHECKS, default=options.button_stop_checks
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_OCCUPIED_STOP_CHECKS, default=options.occupied_stop_checks
                ): selector.BooleanSelector(),
            }
        )

        if user_input is not None:
            return self._async_save("detection", data_schema, user_input)

        return self.async_show_form(step_id="detection", data_schema=data_schema)

    async def async_step_timers(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle timer and threshold settings."""
        options = self._current
        data_schema = vol.Schema(
            {
                vol.Optional(
                    CONF_EMPTY_BEFORE_RELEASE, default=options.empty_before_release
                ): _number(1, 120, "minutes"),
                vol.Optional(
                    CONF_CONSIDERED_OCCUPIED, default=options.considered_occupied
                ): _number(1, 240, "minutes"),
                vol.Optional(
                    CONF_INITIAL_RELEASE_DELAY, default=options.initial_release_delay
                ): _number(0, 120, "minutes"),
                vol.Optional(
                    CONF_PERIODIC_INTERVAL, default=options.periodic_interval
                ): _number(1, 60, "minutes"),
                vol.Optional(
                    CONF_PROMPT_DURATION, default=options.prompt_duration
                ): _number(5, 600, "seconds"),
                vol.Optional(
                    CONF_IGNORE_LONGER_THAN, default=options.ignore_longer_than
                ): _number(0, 24, "hours", step=0.5),
                vol.Optional(
                    CONF_PLAY_ANNOUNCEMENT, default=options.play_announcement
                ): selector.BooleanSelector(),
                vol.Optional(CONF_FEEDBACK_ID, default=options.feedback_id): _text(),
                vol.Optional(
                    CONF_TEST_MODE, default=options.test_mode
                ): selector.BooleanSelector(),
            }
        )

        if user_input is not None:
            return self._async_save("timers", data_schema, user_input)

        return self.async_show_form(step_id="timers", data_schema=data_schema)

    async def async_step_notifications(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle notification settings."""
        options = self._current
        data_schema = vol.Schema(
            {
                vol.Optional(
                    CONF_NOTIFY_SERVICE, default=options.notify_service
                ): _text(),
                vol.Optional(
                    CONF_WEBEX_NOTIFY, default=options.webex_notify
                ): selector.BooleanSelector(),
                vol.Optional(CONF_WEBEX_ROOM_ID, default=options.webex_room_id): _text(),
                vol.Optional(
                    CONF_WEBEX_BOT_TOKEN, default=options.webex_bot_token
                ): _text(password=True),
            }
        )

        if user_input is not None:
            if user_input.get(CONF_WEBEX_NOTIFY) and not (
                user_input.get(CONF_WEBEX_ROOM_ID) and user_input.get(CONF_WEBEX_BOT_TOKEN)
            ):
                return self.async_show_form(
                    step_id="notifications",
                    data_schema=data_schema,
                    errors={"base": "webex_incomplete"},
                )
            return self._async_save("notifications", data_schema, user_input)

        return self.async_show_form(step_id="notifications", data_schema=data_schema)

    async def async_step_ghost(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle ghost booking settings."""
        options = self._current
        data_schema = vol.Schema(
            {
                vol.Optional(
                    CONF_GHOST_ENABLED, default=options.ghost_enabled
                ): selector.BooleanSelector(),
                vol.Optional(CONF_GHOST_STRIKES, default=options.ghost_strikes): _number(
                    1, 20, "strikes"
                ),
                vol.Optional(
                    CONF_GHOST_END_BOOKING, default=options.ghost_end_booking
                ): selector.BooleanSelector(),
                vol.Optional(
                    CONF_GHOST_RESET_DAILY, default=options.ghost_reset_daily
                ): _number(1, 30, "intervals"),
                vol.Optional(
                    CONF_GHOST_RESET_WEEKLY, default=options.ghost_reset_weekly
                ): _number(1, 30, "intervals"),
                vol.Optional(
                    CONF_GHOST_RESET_MONTHLY, default=options.ghost_reset_monthly
                ): _number(1, 60, "intervals"),
                vol.Optional(
                    CONF_GHOST_RESET_YEARLY, default=options.ghost_reset_yearly
                ): _number(1, 400, "intervals"),
                vol.Optional(
                    CONF_GHOST_LOOKAHEAD_DAYS, default=options.ghost_lookahead_days
                ): _number(1, 365, "days"),
            }
        )

        if user_input is not None:
            if user_input.get(CONF_GHOST_ENABLED) and not all(
                self.config_entry.data.get(key) for key in GRAPH_KEYS
            ):
                return self.async_show_form(
                    step_id="ghost",
                    data_schema=data_schema,
                    errors={"base": "graph_required"},
                )
            return self._async_save("ghost", data_schema, user_input)

        return self.async_show_form(step_id="ghost", data_schema=data_schema)
