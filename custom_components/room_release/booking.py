"""Booking lifecycle for the Room Release integration.

A booking is validated when it starts. Long bookings are exempt, everything
else gets an initial grace delay and a periodic metrics poll for as long as
the booking stays active.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import TYPE_CHECKING, Any

from homeassistant.core import CALLBACK_TYPE, HomeAssistant
from homeassistant.helpers.event import async_call_later, async_track_time_interval
from homeassistant.util import dt as dt_util

from .const import GHOST_RESET_MAX_MINUTES, POLL_JITTER_SECONDS
from .exceptions import BookingParseError
from .options import RoomReleaseOptions

if TYPE_CHECKING:
    from .session import DeviceSession

_LOGGER = logging.getLogger(__name__)

AVAILABILITY_BOOKED_UNTIL = "BookedUntil"


@dataclass(frozen=True)
class Organizer:
    """Booking organizer."""

    first_name: str = ""
    last_name: str = ""

    @property
    def display_name(self) -> str:
        """Return the organizer name as shown in notifications."""
        name = f"{self.first_name} {self.last_name}".strip()
        return name or "Unknown"


@dataclass(frozen=True)
class Booking:
    """A calendar booking as reported by the device."""

    id: str
    meeting_id: str
    title: str
    organizer: Organizer
    start_time: datetime | None
    end_time: datetime | None
    duration_hours: float

    @classmethod
    def from_xapi(cls, payload: Mapping[str, Any]) -> Booking:
        """Build a booking from a Bookings.Get result.

        Raises BookingParseError when the booking has no usable times.
        """
        data = payload.get("Booking") if isinstance(payload, Mapping) else None
        if not isinstance(data, Mapping):
            raise BookingParseError("Bookings.Get returned no booking")

        time = data.get("Time") or {}
        try:
            duration = round(
                (float(time["SecondsUntilEnd"]) + float(time["SecondsSinceStart"])) / 3600,
                2,
            )
        except (KeyError, TypeError, ValueError) as err:
            raise BookingParseError(f"Unable to parse meeting length: {err}") from err

        organizer = data.get("Organizer") or {}
        return cls(
            id=str(data.get("Id", "")),
            meeting_id=str(data.get("MeetingId", "")),
            title=str(data.get("Title", "")),
            organizer=Organizer(
                first_name=organizer.get("FirstName", "") or "",
                last_name=organizer.get("LastName", "") or "",
            ),
            start_time=_parse_time(time.get("StartTime")),
            end_time=_parse_time(time.get("EndTime")),
            duration_hours=duration,
        )


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = dt_util.parse_datetime(str(value))
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_util.UTC)
    return parsed


class BookingLifecycle:
    """Start, extend and end booking monitoring for one device session."""

    def __init__(
        self,
        hass: HomeAssistant,
        session: DeviceSession,
        options: RoomReleaseOptions,
    ) -> None:
        """Initialize the lifecycle."""
        self.hass = hass
        self._session = session
        self._options = options
        self._unsub_poll: CALLBACK_TYPE | None = None
        self._unsub_ghost_reset: CALLBACK_TYPE | None = None

    @property
    def polling(self) -> bool:
        """Return True while the periodic poll is armed."""
        return self._unsub_poll is not None

    @property
    def ghost_reset_pending(self) -> bool:
        """Return True while the ghost reset timer is armed."""
        return self._unsub_ghost_reset is not None

    @property
    def ghost_reset_delay(self) -> timedelta | None:
        """Delay before the ghost flag is re-armed, or None if disabled."""
        minutes = min(GHOST_RESET_MAX_MINUTES, self._options.initial_release_delay - 1)
        if minutes <= 0:
            return None
        return timedelta(minutes=minutes)

    async def async_process_booking(
        self,
        booking_id: str,
        now: datetime | None = None,
        extension: bool = False,
    ) -> Booking | None:
        """Validate a booking and start monitoring it.

        Returns the booking if it was accepted, None otherwise.
        """
        session = self._session
        now = now or dt_util.utcnow()

        availability = await session.channel.async_get(
            session.device_id, "Bookings.Availability.Status"
        )
        if not availability.ok:
            _LOGGER.warning("%s: Unable to read booking availability", session.id)
            return None
        if availability.value != AVAILABILITY_BOOKED_UNTIL:
            session.reset_booking_state()
            _LOGGER.warning("%s: Booking was detected without end time!", session.id)
            return None

        fetched = await session.channel.async_command(
            session.device_id, "Bookings.Get", {"Id": booking_id}
        )
        if not fetched.ok:
            _LOGGER.warning("%s: Unable to retrieve booking %s", session.id, booking_id)
            return None

        try:
            booking = Booking.from_xapi(fetched.value)
        except BookingParseError as err:
            _LOGGER.warning("%s: Booking %s is not checkable: %s", session.id, booking_id, err)
            return None

        session.booking = booking
        session.booking_is_active = True
        session.listener_should_check = True

        _LOGGER.debug("%s: calculated meeting length: %s", session.id, booking.duration_hours)
        if booking.duration_hours >= self._options.ignore_longer_than:
            _LOGGER.info(
                "%s: Booking %s ignored as equal/longer than %s hours",
                session.id,
                booking_id,
                self._options.ignore_longer_than,
            )
            session.booking_is_active = False
            session.listener_should_check = False
            return booking

        start = booking.start_time or now
        session.initial_delay = start + timedelta(
            minutes=self._options.initial_release_delay
        )

        if not extension:
            session.ghost = True

        # Only one poll per booking
        self.cancel_poll()
        occupied = await session.async_refresh_metrics(process=True, now=now)

        if occupied and not extension:
            self._arm_ghost_reset()

        if session.booking_is_active and session.listener_should_check:
            self._unsub_poll = async_track_time_interval(
                self.hass,
                self._async_poll,
                timedelta(
                    minutes=self._options.periodic_interval,
                    seconds=POLL_JITTER_SECONDS,
                ),
            )
        return booking

    async def async_handle_extension(
        self, booking_id: str, now: datetime | None = None
    ) -> None:
        """Re-validate an extended booking unless checks were stopped."""
        session = self._session
        if not (session.booking_is_active and session.listener_should_check):
            _LOGGER.debug("%s: Extension ignored, checks not active", session.id)
            return
        await self.async_process_booking(booking_id, now, extension=True)

    async def async_handle_end(self) -> None:
        """Tear down everything scoped to the booking."""
        await self._session.async_clear_alerts()
        self._session.reset_booking_state()

    def stop_checks(self) -> None:
        """Suspend periodic checks for the remainder of the booking."""
        _LOGGER.debug("%s: future checks stopped for this booking", self._session.id)
        self._session.booking_is_active = False
        self._session.listener_should_check = False
        self.cancel_poll()

    def cancel_poll(self) -> None:
        """Cancel the periodic metrics poll."""
        if self._unsub_poll:
            self._unsub_poll()
            self._unsub_poll = None

    def cancel_ghost_reset(self) -> None:
        """Cancel the ghost reset timer."""
        if self._unsub_ghost_reset:
            self._unsub_ghost_reset()
            self._unsub_ghost_reset = None

    def _arm_ghost_reset(self) -> None:
        delay = self.ghost_reset_delay
        if delay is None:
            return
        self.cancel_ghost_reset()
        _LOGGER.debug(
            "%s: Room occupied at booking start, ghost flag re-armed in %s",
            self._session.id,
            delay,
        )
        self._unsub_ghost_reset = async_call_later(
            self.hass, delay, self._async_ghost_reset
        )

    async def _async_ghost_reset(self, now: datetime) -> None:
        """Treat the booking as unattended again once the grace window passed."""
        self.cancel_ghost_reset()
        self._session.ghost = True
        _LOGGER.debug("%s: Ghost flag reset", self._session.id)

    async def _async_poll(self, now: datetime) -> None:
        _LOGGER.debug(
            "%s: initiating periodic processing of occupancy metrics", self._session.id
        )
        await self._session.async_refresh_metrics(process=True, now=now)
