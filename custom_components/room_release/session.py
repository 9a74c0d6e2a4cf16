"""Per-device session for the Room Release integration.

A DeviceSession owns the occupancy evaluator, the hysteresis tracker, the
check-in countdown, the booking lifecycle and the release executor of one
device. Telemetry for the device is routed here and is only allowed to
influence state while a booking is being monitored.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime
import logging
import re
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .booking import Booking, BookingLifecycle
from .const import MIN_SOFTWARE_VERSION
from .countdown import CountdownController
from .exceptions import DeviceNotSupportedError, DeviceUnavailableError
from .ghost import GhostTracker
from .notify import ReleaseNotifier
from .occupancy import (
    HysteresisTracker,
    MetricsSnapshot,
    RoomState,
    create_evaluator,
)
from .options import RoomReleaseOptions
from .release import ReleaseExecutor, ReleaseResult
from .xapi import DeviceChannel, normalize_path

_LOGGER = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^\D*(\d+)\.(\d+)\.(\d+)\.(\d+)")

PATH_ACTIVE_CALLS = "SystemUnit.State.NumberOfActiveCalls"
PATH_TEAMS_IN_CALL = "MicrosoftTeams.Calling.InCall"
PATH_ULTRASOUND = "RoomAnalytics.UltrasoundPresence"
PATH_PRESENCE = "RoomAnalytics.PeoplePresence"
PATH_PEOPLE_COUNT = "RoomAnalytics.PeopleCount.Current"
PATH_SOUND_LEVEL = "RoomAnalytics.Sound.Level.A"
PATH_PRESENTATION = "Conference.Presentation.LocalInstance"
PATH_ROOM_IN_USE = "RoomAnalytics.RoomInUse"

# Device configuration applied on enrollment
DEVICE_CONFIGURATION = (
    "HttpClient.Mode",
    "RoomAnalytics.PeopleCountOutOfCall",
    "RoomAnalytics.PeoplePresenceDetector",
)


def version_supported(version: str | None, minimum: str = MIN_SOFTWARE_VERSION) -> bool:
    """Return True if a RoomOS version string is at least the minimum."""
    match = _VERSION_RE.match(version or "")
    required = _VERSION_RE.match(minimum)
    if match is None or required is None:
        return False
    return tuple(int(part) for part in match.groups()) >= tuple(
        int(part) for part in required.groups()
    )


def _is_true(value: Any) -> bool:
    return str(value).lower() in ("true", "yes", "on", "1")


def _to_int(value: Any) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SystemInfo:
    """Device details read once at configuration time."""

    name: str
    serial: str = ""
    platform: str = ""
    version: str = ""
    mailbox: str | None = None
    teams_mode: bool = False
    move_alert: bool = False


class DeviceSession:
    """State machine for one enrolled device."""

    def __init__(
        self,
        hass: HomeAssistant,
        device_id: str,
        channel: DeviceChannel,
        options: RoomReleaseOptions,
        notifier: ReleaseNotifier | None = None,
        ghost_tracker: GhostTracker | None = None,
        on_update: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the session."""
        self.hass = hass
        self.device_id = device_id
        self.id = device_id[-8:]
        self.channel = channel
        self.options = options
        self._on_update = on_update

        self.booking_is_active = False
        self.listener_should_check = True
        self.releasing = False
        self.metrics = MetricsSnapshot()
        self.initial_delay: datetime | None = None
        self.ghost = False
        self.sys_info = SystemInfo(name=self.id)
        self.booking: Booking | None = None
        self.last_result: ReleaseResult | None = None
        self.last_released: Booking | None = None

        self.evaluator = create_evaluator(options)
        self.tracker = HysteresisTracker(
            options.considered_occupied, options.empty_before_release
        )
        self.countdown = CountdownController(
            hass,
            channel,
            device_id,
            options,
            check_occupied=self._async_final_check,
            on_expired=self._async_countdown_expired,
            on_aborted=self._async_countdown_aborted,
            log_prefix=self.id,
        )
        self.lifecycle = BookingLifecycle(hass, self, options)
        self.releaser = ReleaseExecutor(self, options, notifier, ghost_tracker)

        self._handlers: dict[str, Callable[[Any, datetime], Awaitable[None]]] = {
            "Bookings.Start": self._async_handle_booking_start,
            "Bookings.ExtensionRequested": self._async_handle_booking_extension,
            "Bookings.End": self._async_handle_booking_end,
            "UserInterface.Extensions": self._async_handle_interaction,
            "UserInterface.Message.Prompt.Response": self._async_handle_prompt_response,
            PATH_ACTIVE_CALLS: self._async_handle_active_call,
            PATH_TEAMS_IN_CALL: self._async_handle_teams_call,
            PATH_PRESENCE: self._async_handle_presence,
            PATH_ULTRASOUND: self._async_handle_ultrasound,
            PATH_PRESENTATION: self._async_handle_presentation,
            PATH_PEOPLE_COUNT: self._async_handle_people_count,
            PATH_SOUND_LEVEL: self._async_handle_sound,
            PATH_ROOM_IN_USE: self._async_handle_room_in_use,
        }

    @property
    def room_is_empty(self) -> bool:
        """Return True once the room has been empty long enough."""
        return self.tracker.room_is_empty

    @property
    def countdown_active(self) -> bool:
        """Return True while the check-in prompt is shown."""
        return self.countdown.active

    @property
    def occupied(self) -> bool:
        """Return the occupancy verdict for the latest readings."""
        return self.evaluator.is_occupied(self.evaluator.signals(self.metrics))

    @property
    def room_state(self) -> RoomState:
        """Return the coarse room state of the monitored booking."""
        if not self.booking_is_active:
            return RoomState.IDLE
        return self.tracker.state

    # ----- configuration ----- #

    async def async_configure(self) -> SystemInfo:
        """Read device details and prepare the device for monitoring.

        Raises DeviceNotSupportedError if the device cannot provide the
        required telemetry, DeviceUnavailableError if it could not be read.
        """
        device = await self.channel.async_get_device(self.device_id)
        if not device.ok:
            raise DeviceUnavailableError(
                f"Unable to read device {self.device_id}: {device.error}"
            )
        info = device.value or {}

        version = info.get("software", "")
        if not version_supported(version):
            raise DeviceNotSupportedError(
                f"Device {self.device_id} runs unsupported software {version!r},"
                f" {MIN_SOFTWARE_VERSION} or newer is required"
            )

        if self.evaluator.consolidated:
            room_in_use = await self.channel.async_get(self.device_id, PATH_ROOM_IN_USE)
            if not room_in_use.ok:
                raise DeviceNotSupportedError(
                    f"Device {self.device_id} does not report {PATH_ROOM_IN_USE}"
                )

        teams_mode = False
        supported = await self.channel.async_get(
            self.device_id, "SystemUnit.Extensions.Microsoft.Supported"
        )
        if supported.ok and _is_true(supported.value):
            listing = await self.channel.async_command(self.device_id, "MicrosoftTeams.List")
            if listing.ok:
                entries = (listing.value or {}).get("Entry", [])
                teams_mode = any(entry.get("Status") == "Installed" for entry in entries)
                if teams_mode:
                    _LOGGER.info("%s: Device in Microsoft Teams mode", self.id)

        mailbox = None
        if workspace_id := info.get("workspaceId"):
            result = await self.channel.async_get_mailbox(workspace_id)
            if result.ok:
                mailbox = result.value

        for path in DEVICE_CONFIGURATION:
            await self.channel.async_set(self.device_id, path, "On")

        platform = info.get("product", "") or ""
        serial = info.get("serial", "") or ""
        name = info.get("displayName") or serial or self.id
        self.sys_info = SystemInfo(
            name=name,
            serial=serial,
            platform=platform,
            version=version,
            mailbox=mailbox,
            teams_mode=teams_mode,
            move_alert=any(kind in platform.lower() for kind in ("desk", "board")),
        )
        self.id = name
        self.countdown.log_prefix = name
        self.countdown.move_alert = self.sys_info.move_alert
        return self.sys_info

    async def async_start(self, now: datetime | None = None) -> None:
        """Clear leftover alerts and pick up a booking already in progress."""
        await self.countdown.async_cancel()
        current = await self.channel.async_get(self.device_id, "Bookings.Current.Id")
        if current.ok and current.value:
            _LOGGER.info("%s: Booking %s in progress", self.id, current.value)
            await self.async_start_booking(str(current.value), now)

    def shutdown(self) -> None:
        """Cancel all timers of the session."""
        self.cancel_pending_work()
        self.countdown.reset()

    # ----- booking scope ----- #

    async def async_start_booking(self, booking_id: str, now: datetime | None = None) -> None:
        """Start monitoring a new booking."""
        await self.async_clear_alerts()
        self.reset_booking_state()
        await self.lifecycle.async_process_booking(booking_id, now)
        self._notify_update()

    def cancel_pending_work(self) -> None:
        """Cancel every timer scoped to the current booking."""
        self.countdown.cancel_timers()
        self.lifecycle.cancel_poll()
        self.lifecycle.cancel_ghost_reset()

    def reset_booking_state(self) -> None:
        """Drop all booking scoped state."""
        self.cancel_pending_work()
        self.countdown.reset()
        self.tracker.reset()
        self.booking_is_active = False
        self.listener_should_check = False
        self.initial_delay = None
        self.booking = None
        self._notify_update()

    async def async_clear_alerts(self) -> None:
        """Cancel a running countdown and clear the device UI."""
        self.tracker.room_is_empty = False
        if self.countdown.active:
            await self.countdown.async_cancel()
        self._notify_update()

    async def async_check_in(self, now: datetime | None = None) -> None:
        """Handle an explicit check-in."""
        now = now or dt_util.utcnow()
        _LOGGER.debug("%s: Check-in performed", self.id)
        await self.async_clear_alerts()
        self.tracker.mark_checked_in(now)
        self.ghost = False
        if self.options.button_stop_checks:
            self.lifecycle.stop_checks()
        self._notify_update()

    # ----- occupancy ----- #

    async def async_refresh_metrics(
        self, process: bool = False, now: datetime | None = None
    ) -> bool | None:
        """Poll occupancy metrics from the device.

        Returns the occupancy verdict, or None if no metric could be read.
        """
        call_path = PATH_TEAMS_IN_CALL if self.sys_info.teams_mode else PATH_ACTIVE_CALLS
        paths = [
            call_path,
            PATH_ULTRASOUND,
            PATH_PRESENCE,
            PATH_PEOPLE_COUNT,
            PATH_SOUND_LEVEL,
            PATH_PRESENTATION,
        ]
        if self.evaluator.consolidated:
            paths.append(PATH_ROOM_IN_USE)

        results = await asyncio.gather(
            *(self.channel.async_get(self.device_id, path) for path in paths)
        )
        readings = dict(zip(paths, results))
        if not any(result.ok for result in results):
            _LOGGER.warning("%s: Unable to process occupancy metrics from device", self.id)
            return None

        metrics = self.metrics
        if (result := readings[PATH_PRESENCE]).ok:
            metrics.people_presence = result.value == "Yes"
        if (result := readings[PATH_ULTRASOUND]).ok:
            metrics.ultrasound_presence = result.value == "Yes"
        if (result := readings[PATH_PEOPLE_COUNT]).ok:
            metrics.people_count = max(0, _to_int(result.value) or 0)
        if (result := readings[PATH_SOUND_LEVEL]).ok:
            metrics.sound_level = _to_int(result.value) or 0
            metrics.presence_sound = (
                self.options.detect_sound and metrics.sound_level > self.options.sound_level
            )
        result = readings[PATH_PRESENTATION]
        metrics.sharing = result.ok and bool(result.value)
        if PATH_ROOM_IN_USE in readings and (result := readings[PATH_ROOM_IN_USE]).ok:
            metrics.room_in_use = _is_true(result.value)
        if (result := readings[call_path]).ok:
            in_call = (
                _is_true(result.value)
                if self.sys_info.teams_mode
                else (_to_int(result.value) or 0) > 0
            )
            metrics.in_call = in_call and self.options.detect_active_calls
            # A call implies people in the room
            if metrics.in_call:
                metrics.people_presence = True

        occupied = self.evaluator.evaluate(metrics, self.id)
        if process:
            await self.async_process_occupancy(now)
        return occupied

    async def async_process_occupancy(self, now: datetime | None = None) -> None:
        """Evaluate occupancy and start the countdown when the room is empty."""
        now = now or dt_util.utcnow()
        occupied = self.evaluator.evaluate(self.metrics, self.id)
        if occupied:
            self.ghost = False

        if self.tracker.update(occupied, now):
            _LOGGER.debug("%s: consideredOccupied reached, room considered occupied", self.id)
            if self.options.occupied_stop_checks:
                self.lifecycle.stop_checks()
        self._notify_update()

        if not self.tracker.room_is_empty or self.countdown.active:
            return
        if self.releasing or not self.booking_is_active:
            return
        if self.initial_delay is not None and now < self.initial_delay:
            _LOGGER.debug(
                "%s: Booking removal bypassed as meeting has not yet reached initial delay",
                self.id,
            )
            return

        # Re-poll once; a fresh reading may show the room is in use after all
        if await self.async_refresh_metrics(process=False) is not False:
            return
        if self.countdown.active or self.releasing or not self.booking_is_active:
            return

        _LOGGER.warning("%s: Room is empty, start countdown for booking release", self.id)
        await self.countdown.async_start(now)
        self._notify_update()

    async def _async_final_check(self) -> bool:
        # An unreadable device aborts the release; the next poll retries
        return await self.async_refresh_metrics(process=False) is not False

    async def _async_countdown_expired(self, now: datetime) -> None:
        self.releasing = True
        try:
            result = await self.releaser.async_release(now)
        finally:
            self.releasing = False
        if result is not None:
            _LOGGER.info("%s: Release finished: %s", self.id, result.status)
        self._notify_update()

    async def _async_countdown_aborted(self, now: datetime) -> None:
        self.tracker.room_is_empty = False
        await self.async_process_occupancy(now)

    # ----- telemetry ----- #

    async def async_handle_telemetry(
        self, path: str, value: Any, now: datetime | None = None
    ) -> bool:
        """Route a telemetry event; returns False if the path is not handled."""
        key = normalize_path(path)
        handler = self._handlers.get(key)
        if handler is None:
            handler = next(
                (
                    candidate
                    for prefix, candidate in self._handlers.items()
                    if key.startswith(f"{prefix}.")
                ),
                None,
            )
        if handler is None:
            _LOGGER.debug("%s: Ignoring telemetry for %s", self.id, path)
            return False

        await handler(value, now or dt_util.utcnow())
        return True

    async def _async_metric_changed(
        self, now: datetime, detected: bool, consolidated: bool = False
    ) -> None:
        """Clear alerts on a detection from the active mode, then re-evaluate."""
        if detected and consolidated == self.evaluator.consolidated:
            await self.async_clear_alerts()
        if self.listener_should_check:
            await self.async_process_occupancy(now)

    async def _async_handle_booking_start(self, value: Any, now: datetime) -> None:
        booking_id = value.get("Id") if isinstance(value, dict) else value
        if not booking_id:
            return
        _LOGGER.info("%s: Booking %s detected", self.id, booking_id)
        await self.async_start_booking(str(booking_id), now)

    async def _async_handle_booking_extension(self, value: Any, now: datetime) -> None:
        if isinstance(value, dict):
            booking_id = value.get("Id") or value.get("OriginalMeetingId")
        else:
            booking_id = value
        if not booking_id:
            return
        _LOGGER.info("%s: Booking %s updated", self.id, booking_id)
        await self.lifecycle.async_handle_extension(str(booking_id), now)
        self._notify_update()

    async def _async_handle_booking_end(self, value: Any, now: datetime) -> None:
        _LOGGER.info("%s: Booking ended, stop checking", self.id)
        await self.lifecycle.async_handle_end()

    async def _async_handle_interaction(self, value: Any, now: datetime) -> None:
        if not (self.booking_is_active and self.options.detect_interaction):
            return
        _LOGGER.debug("%s: UI interaction detected", self.id)
        await self.async_clear_alerts()
        self.tracker.mark_checked_in(now)
        self.ghost = False
        if self.listener_should_check:
            await self.async_process_occupancy(now)

    async def _async_handle_prompt_response(self, value: Any, now: datetime) -> None:
        if not isinstance(value, dict):
            return
        if value.get("FeedbackId") != self.options.feedback_id:
            return
        if str(value.get("OptionId")) != "1":
            return
        _LOGGER.debug("%s: Local check-in performed from touch panel", self.id)
        await self.async_check_in(now)

    async def _async_handle_active_call(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        self.metrics.in_call = (_to_int(value) or 0) > 0
        await self._async_metric_changed(
            now, self.options.detect_active_calls and self.metrics.in_call
        )

    async def _async_handle_teams_call(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        self.metrics.in_call = _is_true(value)
        await self._async_metric_changed(
            now, self.options.detect_active_calls and self.metrics.in_call
        )

    async def _async_handle_presence(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        self.metrics.people_presence = value == "Yes"
        await self._async_metric_changed(now, self.metrics.people_presence)

    async def _async_handle_ultrasound(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        self.metrics.ultrasound_presence = value == "Yes"
        await self._async_metric_changed(
            now, self.options.detect_ultrasound and self.metrics.ultrasound_presence
        )

    async def _async_handle_presentation(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        # A removed local instance is reported with ghost="True"
        stopped = isinstance(value, dict) and _is_true(value.get("ghost"))
        self.metrics.sharing = not stopped
        await self._async_metric_changed(
            now, self.options.detect_presentation and self.metrics.sharing
        )

    async def _async_handle_people_count(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        self.metrics.people_count = max(0, _to_int(value) or 0)
        await self._async_metric_changed(now, self.metrics.people_count > 0)

    async def _async_handle_sound(self, value: Any, now: datetime) -> None:
        if not (self.booking_is_active and self.options.detect_sound):
            return
        self.metrics.sound_level = _to_int(value) or 0
        self.metrics.presence_sound = self.metrics.sound_level > self.options.sound_level
        await self._async_metric_changed(now, self.metrics.presence_sound)

    async def _async_handle_room_in_use(self, value: Any, now: datetime) -> None:
        if not self.booking_is_active:
            return
        self.metrics.room_in_use = _is_true(value)
        await self._async_metric_changed(now, self.metrics.room_in_use, consolidated=True)

    # ----- reporting ----- #

    def _notify_update(self) -> None:
        if self._on_update is not None:
            self._on_update()

    def as_dict(self) -> dict[str, Any]:
        """Return the session state for diagnostics."""
        return {
            "device_id": self.device_id,
            "id": self.id,
            "booking_is_active": self.booking_is_active,
            "listener_should_check": self.listener_should_check,
            "room_state": self.room_state,
            "room_is_empty": self.room_is_empty,
            "countdown_active": self.countdown_active,
            "countdown_state": self.countdown.state,
            "releasing": self.releasing,
            "ghost": self.ghost,
            "last_full": self.tracker.last_full.isoformat() if self.tracker.last_full else None,
            "last_empty": self.tracker.last_empty.isoformat()
            if self.tracker.last_empty
            else None,
            "initial_delay": self.initial_delay.isoformat() if self.initial_delay else None,
            "polling": self.lifecycle.polling,
            "metrics": self.metrics.as_dict(),
            "sys_info": asdict(self.sys_info),
            "booking_id": self.booking.id if self.booking else None,
            "last_result": asdict(self.last_result) if self.last_result else None,
        }
