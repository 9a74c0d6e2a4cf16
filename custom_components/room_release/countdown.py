"""Check-in countdown for the Room Release integration."""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import StrEnum
import logging

from homeassistant.core import CALLBACK_TYPE, HomeAssistant
from homeassistant.helpers.event import async_call_later, async_track_time_interval
from homeassistant.util import dt as dt_util

from .const import (
    ALERT_HINT,
    ALERT_TEXT,
    DECISION_BUFFER_SECONDS,
    PROMPT_OPTION,
    PROMPT_REISSUE_SECONDS,
    PROMPT_TEXT,
    PROMPT_TITLE,
)
from .options import RoomReleaseOptions
from .xapi import DeviceChannel

_LOGGER = logging.getLogger(__name__)

# Alert position for desk and board platforms
MOVED_ALERT_X = 5000
MOVED_ALERT_Y = 2000


class CountdownState(StrEnum):
    """Countdown states."""

    IDLE = "idle"
    PROMPTING = "prompting"
    EXPIRED = "expired"
    ABORTED = "aborted"


class CountdownController:
    """Drive the check-in prompt and the final release decision.

    While prompting exactly two timers are pending: the one second tick that
    refreshes the on-screen countdown and the decision timer that fires
    prompt_duration plus a small buffer after the start.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        channel: DeviceChannel,
        device_id: str,
        options: RoomReleaseOptions,
        check_occupied: Callable[[], Awaitable[bool]],
        on_expired: Callable[[datetime], Awaitable[None]],
        on_aborted: Callable[[datetime], Awaitable[None]],
        log_prefix: str = "",
    ) -> None:
        """Initialize the controller.

        Args:
            hass: The Home Assistant instance.
            channel: Device channel used for prompts and alerts.
            device_id: Device the prompt is shown on.
            options: Integration options.
            check_occupied: Re-polls metrics and returns the occupancy verdict.
            on_expired: Called when the room is still empty at the final check.
            on_aborted: Called when occupancy reappeared at the final check.
            log_prefix: Short device id used in log messages.
        """
        self.hass = hass
        self._channel = channel
        self._device_id = device_id
        self._options = options
        self._check_occupied = check_occupied
        self._on_expired = on_expired
        self._on_aborted = on_aborted
        self.log_prefix = log_prefix
        self.move_alert = False
        self.state = CountdownState.IDLE
        self.remaining = 0
        self.started_at: datetime | None = None
        self._unsub_tick: CALLBACK_TYPE | None = None
        self._unsub_decision: CALLBACK_TYPE | None = None

    @property
    def active(self) -> bool:
        """Return True while the prompt is shown."""
        return self.state == CountdownState.PROMPTING

    @property
    def timers_pending(self) -> int:
        """Return the number of armed timers."""
        return int(self._unsub_tick is not None) + int(self._unsub_decision is not None)

    async def async_start(self, now: datetime | None = None) -> bool:
        """Show the prompt and arm both timers.

        Returns False if a countdown is already running.
        """
        if self.active:
            _LOGGER.debug("%s: Countdown already active", self.log_prefix)
            return False

        _LOGGER.debug("%s: Start countdown initiated", self.log_prefix)
        self.state = CountdownState.PROMPTING
        self.started_at = now or dt_util.utcnow()
        self.remaining = self._options.prompt_duration

        self._unsub_tick = async_track_time_interval(
            self.hass, self._async_tick, timedelta(seconds=1)
        )
        self._unsub_decision = async_call_later(
            self.hass,
            self._options.prompt_duration + DECISION_BUFFER_SECONDS,
            self._async_decide,
        )

        await self._async_prompt_user(announce=self._options.play_announcement)
        return True

    async def async_cancel(self) -> None:
        """Cancel the countdown and clear the device UI."""
        was_active = self.active
        self.cancel_timers()
        if was_active:
            self.state = CountdownState.ABORTED
        await self._async_clear_display()

    def cancel_timers(self) -> None:
        """Cancel the tick and the decision timer."""
        if self._unsub_tick:
            self._unsub_tick()
            self._unsub_tick = None
        if self._unsub_decision:
            self._unsub_decision()
            self._unsub_decision = None

    def reset(self) -> None:
        """Return to idle without touching the device."""
        self.cancel_timers()
        self.state = CountdownState.IDLE
        self.remaining = 0
        self.started_at = None

    async def _async_tick(self, now: datetime) -> None:
        """Update the on-screen countdown."""
        self.remaining -= 1
        # The tick stays armed until the decision timer fires
        if self.remaining <= 0:
            if self.remaining == 0:
                await self._channel.async_command(
                    self._device_id, "UserInterface.Message.TextLine.Clear"
                )
            return

        text = ALERT_TEXT.format(seconds=self.remaining)
        params: dict[str, str | int] = {"Text": text, "Duration": 0}
        if self.move_alert:
            params["X"] = MOVED_ALERT_X
            params["Y"] = MOVED_ALERT_Y
        else:
            params["Text"] = text + ALERT_HINT
        await self._channel.async_command(
            self._device_id, "UserInterface.Message.TextLine.Display", params
        )

        if self.remaining % PROMPT_REISSUE_SECONDS == 0:
            await self._async_prompt_user(announce=False)

    async def _async_decide(self, now: datetime) -> None:
        """Run the final occupancy check."""
        self.cancel_timers()
        started_at = self.started_at

        occupied = await self._check_occupied()
        # A check-in may have cancelled the countdown during the final read
        if self.state is not CountdownState.PROMPTING or self.started_at != started_at:
            _LOGGER.debug("%s: Countdown cancelled during final check", self.log_prefix)
            return

        if occupied:
            _LOGGER.info(
                "%s: Occupancy detected at final check, aborting release",
                self.log_prefix,
            )
            await self.async_cancel()
            await self._on_aborted(now)
            return

        _LOGGER.debug("%s: Initiate booking removal from device", self.log_prefix)
        self.state = CountdownState.EXPIRED
        await self._async_clear_display(stop_sound=True)
        await self._on_expired(now)

    async def _async_prompt_user(self, announce: bool) -> None:
        await self._channel.async_command(
            self._device_id,
            "UserInterface.Message.Prompt.Display",
            {
                "Title": PROMPT_TITLE,
                "Text": PROMPT_TEXT,
                "FeedbackId": self._options.feedback_id,
                "Option.1": PROMPT_OPTION,
            },
        )
        if announce:
            await self._channel.async_command(
                self._device_id,
                "Audio.Sound.Play",
                {"Loop": "Off", "Sound": "Announcement"},
            )

    async def _async_clear_display(self, stop_sound: bool = False) -> None:
        await self._channel.async_command(
            self._device_id,
            "UserInterface.Message.Prompt.Clear",
            {"FeedbackId": self._options.feedback_id},
        )
        if stop_sound:
            await self._channel.async_command(self._device_id, "Audio.Sound.Stop")
        await self._channel.async_command(
            self._device_id, "UserInterface.Message.TextLine.Clear"
        )
