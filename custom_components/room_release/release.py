"""Final release of an unattended booking."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
import logging
from typing import TYPE_CHECKING

from .booking import Booking
from .exceptions import BookingParseError
from .options import RoomReleaseOptions

if TYPE_CHECKING:
    from .ghost import GhostTracker, PendingStrike
    from .notify import ReleaseNotifier
    from .session import DeviceSession

_LOGGER = logging.getLogger(__name__)


class ReleaseStatus(StrEnum):
    """Outcome of a release attempt."""

    DECLINED = "declined"
    SERIES_DECLINED = "series_declined"
    ENDED = "ended"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ReleaseResult:
    """Result record handed to the notifiers."""

    success: bool
    message: str
    status: ReleaseStatus


class ReleaseExecutor:
    """Decline (or shorten) the current booking and report the outcome."""

    def __init__(
        self,
        session: DeviceSession,
        options: RoomReleaseOptions,
        notifier: ReleaseNotifier | None = None,
        ghost_tracker: GhostTracker | None = None,
    ) -> None:
        """Initialize the executor."""
        self._session = session
        self._options = options
        self._notifier = notifier
        self._ghost_tracker = ghost_tracker

    async def async_release(self, now: datetime) -> ReleaseResult | None:
        """Release the booking currently shown on the device.

        Returns None when the current booking could not be determined; the
        booking state is left untouched so the next poll retries.
        """
        session = self._session
        booking = await self._async_current_booking()
        if booking is None:
            return None

        result: ReleaseResult | None = None
        strike: PendingStrike | None = None
        tracker = self._ghost_tracker
        if tracker is not None and tracker.enabled and (
            session.ghost or self._options.ghost_end_booking
        ):
            handling = await tracker.async_handle(session, booking, now)
            result, strike = handling.result, handling.strike

        if result is None:
            result = await self._async_decline(booking)

        # Strikes only count for bookings that were actually released
        if tracker is not None and strike is not None and result.success:
            await tracker.async_commit_strike(session, strike)

        if self._notifier is not None:
            await self._notifier.async_notify(session.sys_info, booking, result)

        session.last_result = result
        session.last_released = booking
        session.reset_booking_state()
        return result

    async def _async_current_booking(self) -> Booking | None:
        session = self._session
        current = await session.channel.async_get(session.device_id, "Bookings.Current.Id")
        if not current.ok or not current.value:
            _LOGGER.warning(
                "%s: Unable to retrieve current booking id, aborting decline", session.id
            )
            return None

        fetched = await session.channel.async_command(
            session.device_id, "Bookings.Get", {"Id": current.value}
        )
        if not fetched.ok:
            _LOGGER.error(
                "%s: Unable to retrieve meeting info for %s", session.id, current.value
            )
            return None

        try:
            booking = Booking.from_xapi(fetched.value)
        except BookingParseError as err:
            _LOGGER.warning("%s: Current booking is not checkable: %s", session.id, err)
            return None

        _LOGGER.debug("%s: %s contains %s", session.id, current.value, booking.meeting_id)
        return booking

    async def _async_decline(self, booking: Booking) -> ReleaseResult:
        session = self._session
        if self._options.test_mode:
            _LOGGER.info("%s: Test mode enabled, booking decline skipped", session.id)
            return ReleaseResult(
                success=True, message="Skipped (Test Mode)", status=ReleaseStatus.SKIPPED
            )

        response = await session.channel.async_command(
            session.device_id,
            "Bookings.Respond",
            {"Type": "Decline", "MeetingId": booking.meeting_id},
        )
        if not response.ok:
            _LOGGER.error(
                "%s: Unable to respond to meeting %s: %s",
                session.id,
                booking.meeting_id,
                response.error,
            )
            return ReleaseResult(
                success=False,
                message=response.error or "Decline failed",
                status=ReleaseStatus.FAILED,
            )

        _LOGGER.info("%s: Booking %s declined", session.id, booking.meeting_id)
        return ReleaseResult(success=True, message="OK", status=ReleaseStatus.DECLINED)
