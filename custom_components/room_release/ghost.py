"""Ghost booking tracking for the Room Release integration.

A booking is a "ghost" when nobody showed up at all. For recurring series
every ghosted occurrence is recorded as a strike against the series. Once a
series collects enough strikes inside its reset window, the near-term
exception instances and then the series master are declined.

Strike counters are persisted per device with the Home Assistant storage
helper:

    {"devices": {device_id: {series_id: GhostStoreEntry}}}
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import TYPE_CHECKING, Any

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.storage import Store
from homeassistant.util import dt as dt_util

from .booking import Booking
from .const import DOMAIN, STORAGE_VERSION
from .exceptions import GraphError
from .graph import GraphClient
from .options import RoomReleaseOptions
from .release import ReleaseResult, ReleaseStatus

if TYPE_CHECKING:
    from .session import DeviceSession

_LOGGER = logging.getLogger(__name__)

DECLINE_COMMENT = "Room released: booking was not attended."
MIN_BOOKING_LENGTH = timedelta(minutes=5)
SERIES_EVENT_TYPES = ("occurrence", "exception")


@dataclass
class GhostStoreEntry:
    """Strike counter for one recurring series."""

    count: int = 0
    organizer: str = ""
    strikes: list[datetime] = field(default_factory=list)
    updated: datetime | None = None
    subject: str = ""

    def to_storage_dict(self) -> dict[str, Any]:
        """Serialize the entry for storage."""
        return {
            "count": self.count,
            "organizer": self.organizer,
            "strikes": [strike.isoformat() for strike in self.strikes],
            "updated": self.updated.isoformat() if self.updated else None,
            "subject": self.subject,
        }

    @classmethod
    def from_storage_dict(cls, data: dict[str, Any]) -> GhostStoreEntry:
        """Restore an entry from storage."""
        strikes = []
        for value in data.get("strikes", []):
            if (parsed := dt_util.parse_datetime(value)) is not None:
                strikes.append(parsed)
        updated = dt_util.parse_datetime(data["updated"]) if data.get("updated") else None
        return cls(
            count=int(data.get("count", 0)),
            organizer=data.get("organizer", ""),
            strikes=strikes,
            updated=updated,
            subject=data.get("subject", ""),
        )


@dataclass
class PendingStrike:
    """Series entry updated for a ghosted occurrence, not yet stored."""

    series_id: str
    entry: GhostStoreEntry


@dataclass
class GhostHandling:
    """Outcome of handling a booking through the calendar."""

    result: ReleaseResult | None = None
    strike: PendingStrike | None = None


class GhostStore:
    """Persisted strike counters, keyed by device and series."""

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        """Initialize the store."""
        self._store: Store = Store(hass, STORAGE_VERSION, f"{DOMAIN}.{entry_id}.ghost")
        self._devices: dict[str, dict[str, Any]] = {}
        self.valid = False

    async def async_load(self) -> bool:
        """Load stored counters.

        Ghost tracking is disabled for the entry if the stored data is
        unreadable.
        """
        try:
            stored = await self._store.async_load()
        except (HomeAssistantError, OSError, ValueError) as err:
            _LOGGER.error("Unable to load ghost store, ghost tracking disabled: %s", err)
            self.valid = False
            return False

        if stored is None:
            stored = {"devices": {}}
        if not isinstance(stored, dict) or not isinstance(stored.get("devices"), dict):
            _LOGGER.error("Ghost store is invalid, ghost tracking disabled")
            self.valid = False
            return False

        self._devices = stored["devices"]
        self.valid = True
        _LOGGER.debug("Loaded ghost store for %d devices", len(self._devices))
        return True

    def read(self, device_id: str) -> dict[str, GhostStoreEntry]:
        """Return the strike counters of a device."""
        return {
            series_id: GhostStoreEntry.from_storage_dict(entry)
            for series_id, entry in self._devices.get(device_id, {}).items()
        }

    async def async_write(self, device_id: str, entries: dict[str, GhostStoreEntry]) -> None:
        """Replace and persist the strike counters of a device."""
        self._devices[device_id] = {
            series_id: entry.to_storage_dict() for series_id, entry in entries.items()
        }
        await self._store.async_save({"devices": self._devices})

    def as_dict(self) -> dict[str, Any]:
        """Return the raw stored data."""
        return {"devices": self._devices}


def round_to_five_minutes(value: datetime) -> datetime:
    """Round a datetime to the nearest 5 minutes."""
    base = value.replace(second=0, microsecond=0) - timedelta(minutes=value.minute % 5)
    if value - base >= timedelta(minutes=2, seconds=30):
        base += timedelta(minutes=5)
    return base


class GhostTracker:
    """Escalate repeatedly unattended recurring bookings."""

    def __init__(
        self,
        graph: GraphClient,
        store: GhostStore,
        options: RoomReleaseOptions,
    ) -> None:
        """Initialize the tracker."""
        self._graph = graph
        self._store = store
        self._options = options

    @property
    def enabled(self) -> bool:
        """Return True if ghost tracking can run."""
        return self._options.ghost_enabled and self._store.valid

    def reset_window(self, recurrence: dict[str, Any] | None) -> timedelta | None:
        """Return how long strikes stay valid for a recurrence pattern."""
        pattern = (recurrence or {}).get("pattern") or {}
        pattern_type = str(pattern.get("type", "")).lower()
        interval = max(1, int(pattern.get("interval") or 1))

        if pattern_type == "daily":
            days = self._options.ghost_reset_daily
        elif pattern_type == "weekly":
            days = self._options.ghost_reset_weekly
        elif pattern_type.endswith("monthly"):
            days = self._options.ghost_reset_monthly
        elif pattern_type.endswith("yearly"):
            days = self._options.ghost_reset_yearly
        else:
            return None
        return timedelta(days=days * interval)

    async def async_handle(
        self, session: DeviceSession, booking: Booking, now: datetime
    ) -> GhostHandling:
        """Release a booking through the calendar API.

        A handling without a result means the booking should be declined on
        the device instead. A pending strike is only stored once the release
        succeeded, see async_commit_strike.
        """
        handling = GhostHandling()
        mailbox = session.sys_info.mailbox if session.sys_info else None
        if not mailbox or booking.start_time is None:
            _LOGGER.debug("%s: No mailbox or start time, ghost handling skipped", session.id)
            return handling

        try:
            event = await self._graph.async_find_event(
                mailbox, booking.start_time, booking.end_time, booking.title
            )
            if event is None:
                _LOGGER.warning("%s: Booking not found in room calendar", session.id)
                return handling

            if session.ghost and event.get("type") in SERIES_EVENT_TYPES:
                handling.strike = await self._async_prepare_strike(session, mailbox, event, now)

            strike = handling.strike
            if strike is not None and strike.entry.count >= self._options.ghost_strikes:
                handling.result = await self._async_decline_series(
                    session, mailbox, strike, now
                )
            elif strike is not None or self._options.ghost_end_booking:
                handling.result = await self._async_end_event(
                    session, mailbox, event, booking, now
                )
        except GraphError as err:
            _LOGGER.warning("%s: Ghost booking handling failed: %s", session.id, err)
        return handling

    async def async_commit_strike(self, session: DeviceSession, strike: PendingStrike) -> None:
        """Store a strike once the booking it belongs to was released."""
        entries = self._store.read(session.device_id)
        entries[strike.series_id] = strike.entry
        await self._store.async_write(session.device_id, entries)
        _LOGGER.info(
            "%s: Ghost strikes for series %s now %d/%d",
            session.id,
            strike.entry.subject,
            strike.entry.count,
            self._options.ghost_strikes,
        )

    async def _async_prepare_strike(
        self,
        session: DeviceSession,
        mailbox: str,
        event: dict[str, Any],
        now: datetime,
    ) -> PendingStrike | None:
        """Return the series entry with one more strike, without storing it."""
        master_id = event.get("seriesMasterId")
        if not master_id:
            return None
        master = await self._graph.async_get_event(mailbox, master_id)

        entry = self._store.read(session.device_id).get(master_id)
        if entry is None:
            organizer = ((master.get("organizer") or {}).get("emailAddress") or {})
            entry = GhostStoreEntry(
                organizer=organizer.get("name") or organizer.get("address", ""),
                subject=master.get("subject", ""),
            )

        window = self.reset_window(master.get("recurrence"))
        if entry.updated and window and now - entry.updated > window:
            _LOGGER.debug("%s: Reset window elapsed for series %s", session.id, master_id)
            entry.count = 0
            entry.strikes = []

        entry.count += 1
        entry.strikes.append(now)
        entry.updated = now
        _LOGGER.debug(
            "%s: Ghost strike %d/%d pending for series %s",
            session.id,
            entry.count,
            self._options.ghost_strikes,
            entry.subject,
        )
        return PendingStrike(series_id=master_id, entry=entry)

    async def _async_decline_series(
        self, session: DeviceSession, mailbox: str, strike: PendingStrike, now: datetime
    ) -> ReleaseResult:
        count = strike.entry.count
        if self._options.test_mode:
            _LOGGER.info("%s: Test mode enabled, series decline skipped", session.id)
            result = ReleaseResult(
                success=True,
                message="Skipped (Test Mode)",
                status=ReleaseStatus.SKIPPED,
            )
        else:
            instances = await self._graph.async_instances(
                mailbox,
                strike.series_id,
                now,
                now + timedelta(days=self._options.ghost_lookahead_days),
            )
            # Exceptions are declined first so they reflect the release even if
            # the series decline fails
            for instance in instances:
                if instance.get("type") != "exception":
                    continue
                try:
                    await self._graph.async_decline(mailbox, instance["id"], DECLINE_COMMENT)
                except GraphError as err:
                    _LOGGER.warning(
                        "%s: Unable to decline exception %s: %s",
                        session.id,
                        instance.get("id"),
                        err,
                    )

            await self._graph.async_decline(mailbox, strike.series_id, DECLINE_COMMENT)
            _LOGGER.info("%s: Series %s declined", session.id, strike.series_id)
            result = ReleaseResult(
                success=True,
                message=f"Series declined after {count} unattended bookings",
                status=ReleaseStatus.SERIES_DECLINED,
            )

        strike.entry.count = 0
        strike.entry.strikes = []
        return result

    async def _async_end_event(
        self,
        session: DeviceSession,
        mailbox: str,
        event: dict[str, Any],
        booking: Booking,
        now: datetime,
    ) -> ReleaseResult:
        end = round_to_five_minutes(now)
        if booking.start_time is not None:
            end = max(end, booking.start_time + MIN_BOOKING_LENGTH)

        if self._options.test_mode:
            _LOGGER.info("%s: Test mode enabled, booking end skipped", session.id)
            return ReleaseResult(
                success=True, message="Skipped (Test Mode)", status=ReleaseStatus.SKIPPED
            )

        await self._graph.async_set_end(mailbox, event["id"], end)
        _LOGGER.info("%s: Booking end moved to %s", session.id, end.isoformat())
        return ReleaseResult(
            success=True,
            message=f"Booking ended at {dt_util.as_local(end).strftime('%H:%M')}",
            status=ReleaseStatus.ENDED,
        )
