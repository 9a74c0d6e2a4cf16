"""Tests for ghost booking tracking."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from custom_components.room_release.booking import Booking
from custom_components.room_release.exceptions import GraphError
from custom_components.room_release.ghost import (
    DECLINE_COMMENT,
    GhostStore,
    GhostStoreEntry,
    GhostTracker,
    round_to_five_minutes,
)
from custom_components.room_release.graph import GraphClient
from custom_components.room_release.options import RoomReleaseOptions
from custom_components.room_release.release import ReleaseResult, ReleaseStatus
from custom_components.room_release.session import SystemInfo

from .conftest import (
    BOOKING_START,
    TEST_DEVICE_ID,
    TEST_MAILBOX,
    FakeChannel,
    booking_payload,
    make_session,
)

MASTER_ID = "series-master"
STORAGE_KEY = "room_release.test_entry_id.ghost"


def occurrence(event_id: str = "occurrence-1", event_type: str = "occurrence") -> dict[str, Any]:
    return {
        "id": event_id,
        "type": event_type,
        "seriesMasterId": MASTER_ID,
        "subject": "Weekly sync",
        "start": {"dateTime": "2026-03-02T09:00:00.0000000", "timeZone": "UTC"},
    }


def series_master(pattern: str = "weekly") -> dict[str, Any]:
    return {
        "id": MASTER_ID,
        "type": "seriesMaster",
        "subject": "Weekly sync",
        "organizer": {"emailAddress": {"name": "Ada Lovelace", "address": "ada@example.com"}},
        "recurrence": {"pattern": {"type": pattern, "interval": 1}},
    }


@pytest.fixture
def graph() -> AsyncMock:
    """Return a mocked calendar client."""
    client = AsyncMock(spec=GraphClient)
    client.async_find_event.return_value = occurrence()
    client.async_get_event.return_value = series_master()
    client.async_instances.return_value = [
        occurrence("occurrence-2"),
        occurrence("exception-1", "exception"),
    ]
    return client


@pytest.fixture
async def store(hass: HomeAssistant, hass_storage: dict[str, Any]) -> GhostStore:
    """Return a loaded ghost store."""
    ghost_store = GhostStore(hass, "test_entry_id")
    assert await ghost_store.async_load()
    return ghost_store


def make_tracker(graph: AsyncMock, store: GhostStore, **options: Any) -> GhostTracker:
    return GhostTracker(
        graph, store, RoomReleaseOptions.from_mapping({"ghost_enabled": True, **options})
    )


@pytest.fixture
async def ghost_session(hass: HomeAssistant, channel: FakeChannel):
    """Return a session with a known mailbox and a ghosted booking."""
    device_session = make_session(hass, channel)
    device_session.sys_info = SystemInfo(name="Boardroom", mailbox=TEST_MAILBOX)
    device_session.ghost = True
    yield device_session
    device_session.shutdown()


BOOKING = Booking.from_xapi(booking_payload())


class TestGhostStore:
    """Tests for the persisted strike counters."""

    async def test_round_trip(self, hass: HomeAssistant, store: GhostStore) -> None:
        """Test entries are persisted per device and series."""
        when = datetime(2026, 3, 2, 9, 0, tzinfo=dt_util.UTC)
        await store.async_write(
            TEST_DEVICE_ID,
            {MASTER_ID: GhostStoreEntry(count=2, organizer="Ada", strikes=[when], updated=when)},
        )

        entry = store.read(TEST_DEVICE_ID)[MASTER_ID]

        assert entry.count == 2
        assert entry.strikes == [when]
        assert entry.updated == when
        assert store.read("other-device") == {}

    async def test_invalid_data_disables_tracking(
        self, hass: HomeAssistant, hass_storage: dict[str, Any]
    ) -> None:
        """Test unreadable stored data disables ghost tracking."""
        hass_storage[STORAGE_KEY] = {"version": 1, "key": STORAGE_KEY, "data": ["bad"]}
        ghost_store = GhostStore(hass, "test_entry_id")

        assert not await ghost_store.async_load()
        assert not ghost_store.valid

        tracker = make_tracker(AsyncMock(spec=GraphClient), ghost_store)
        assert not tracker.enabled


async def handle_and_commit(
    tracker: GhostTracker, session, now: datetime
) -> ReleaseResult | None:
    """Handle a booking and store its strike once released."""
    handling = await tracker.async_handle(session, BOOKING, now)
    if handling.strike is not None and handling.result is not None:
        await tracker.async_commit_strike(session, handling.strike)
    return handling.result


class TestGhostStrikes:
    """Tests for series escalation."""

    async def test_third_strike_declines_series(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test the series is declined on the third ghosted occurrence."""
        tracker = make_tracker(graph, store, ghost_strikes=3)
        now = BOOKING_START + timedelta(minutes=11)

        for week in range(2):
            result = await handle_and_commit(tracker, ghost_session, now + timedelta(weeks=week))
            assert result.status == ReleaseStatus.ENDED
        assert store.read(TEST_DEVICE_ID)[MASTER_ID].count == 2
        graph.async_decline.assert_not_awaited()

        result = await handle_and_commit(tracker, ghost_session, now + timedelta(weeks=2))

        assert result.status == ReleaseStatus.SERIES_DECLINED
        assert [call.args[1] for call in graph.async_decline.await_args_list] == [
            "exception-1",
            MASTER_ID,
        ]
        assert graph.async_decline.await_args.args[2] == DECLINE_COMMENT
        entry = store.read(TEST_DEVICE_ID)[MASTER_ID]
        assert entry.count == 0
        assert entry.strikes == []
        assert entry.organizer == "Ada Lovelace"

    async def test_strike_not_stored_before_commit(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test handling a booking leaves the stored counters untouched."""
        tracker = make_tracker(graph, store)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.strike.series_id == MASTER_ID
        assert handling.strike.entry.count == 1
        assert store.read(TEST_DEVICE_ID) == {}

    async def test_reset_window_expires_strikes(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test strikes older than the reset window are forgotten."""
        tracker = make_tracker(graph, store, ghost_strikes=3)
        now = BOOKING_START + timedelta(minutes=11)

        await handle_and_commit(tracker, ghost_session, now)
        await handle_and_commit(tracker, ghost_session, now + timedelta(days=9))

        entry = store.read(TEST_DEVICE_ID)[MASTER_ID]
        assert entry.count == 1
        assert entry.strikes == [now + timedelta(days=9)]

    async def test_test_mode_skips_series_decline(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test test mode never declines the series but resets the counter."""
        tracker = make_tracker(graph, store, ghost_strikes=1, test_mode=True)

        result = await handle_and_commit(tracker, ghost_session, BOOKING_START)

        assert result.status == ReleaseStatus.SKIPPED
        graph.async_decline.assert_not_awaited()
        assert store.read(TEST_DEVICE_ID)[MASTER_ID].count == 0

    async def test_series_decline_failure_keeps_strike(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test a failed series decline falls back to the device with the strike pending."""
        graph.async_instances.side_effect = GraphError("HTTP 503")
        tracker = make_tracker(graph, store, ghost_strikes=1)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.result is None
        assert handling.strike.entry.count == 1

    async def test_attended_booking_not_counted(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test a booking that saw occupancy is not a strike."""
        ghost_session.ghost = False
        tracker = make_tracker(graph, store)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.result is None
        assert handling.strike is None
        graph.async_get_event.assert_not_awaited()

    async def test_single_event_not_counted(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test non recurring bookings never collect strikes."""
        graph.async_find_event.return_value = {"id": "single", "type": "singleInstance"}
        tracker = make_tracker(graph, store)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.result is None
        assert handling.strike is None

    @pytest.mark.parametrize(
        ("pattern", "days"),
        [
            ("daily", 2),
            ("weekly", 8),
            ("absoluteMonthly", 32),
            ("relativeYearly", 366),
        ],
    )
    async def test_reset_window(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, pattern, days
    ) -> None:
        """Test the reset window per recurrence pattern."""
        tracker = make_tracker(graph, store)

        assert tracker.reset_window({"pattern": {"type": pattern, "interval": 1}}) == (
            timedelta(days=days)
        )
        assert tracker.reset_window({"pattern": {"type": pattern, "interval": 2}}) == (
            timedelta(days=days * 2)
        )
        assert tracker.reset_window(None) is None


class TestGhostEndBooking:
    """Tests for shortening bookings instead of declining them."""

    async def test_end_booking(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test the booking end is moved to the rounded release time."""
        ghost_session.ghost = False
        tracker = make_tracker(graph, store, ghost_end_booking=True)
        now = BOOKING_START + timedelta(minutes=11, seconds=40)

        handling = await tracker.async_handle(ghost_session, BOOKING, now)

        assert handling.result.status == ReleaseStatus.ENDED
        assert handling.strike is None
        graph.async_set_end.assert_awaited_once_with(
            TEST_MAILBOX, "occurrence-1", BOOKING_START + timedelta(minutes=10)
        )

    async def test_end_booking_minimum_length(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test a shortened booking is at least five minutes long."""
        ghost_session.ghost = False
        tracker = make_tracker(graph, store, ghost_end_booking=True)

        await tracker.async_handle(ghost_session, BOOKING, BOOKING_START + timedelta(minutes=1))

        assert graph.async_set_end.await_args.args[2] == BOOKING_START + timedelta(minutes=5)

    async def test_strike_counted_when_ending(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test a ghosted occurrence is shortened and still collects a strike."""
        tracker = make_tracker(graph, store, ghost_end_booking=True)

        result = await handle_and_commit(
            tracker, ghost_session, BOOKING_START + timedelta(minutes=11)
        )

        assert result.status == ReleaseStatus.ENDED
        assert store.read(TEST_DEVICE_ID)[MASTER_ID].count == 1

    async def test_below_threshold_ends_booking(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test a ghosted occurrence below the threshold is shortened, not declined."""
        tracker = make_tracker(graph, store)

        handling = await tracker.async_handle(
            ghost_session, BOOKING, BOOKING_START + timedelta(minutes=11)
        )

        assert handling.result.status == ReleaseStatus.ENDED
        graph.async_set_end.assert_awaited_once_with(
            TEST_MAILBOX, "occurrence-1", BOOKING_START + timedelta(minutes=10)
        )
        graph.async_decline.assert_not_awaited()
        assert handling.strike.entry.count == 1

    async def test_end_failure_keeps_strike_pending(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test a failed shortening leaves the decision to the device decline."""
        graph.async_set_end.side_effect = GraphError("HTTP 403")
        tracker = make_tracker(graph, store)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.result is None
        assert handling.strike is not None
        assert store.read(TEST_DEVICE_ID) == {}

    async def test_graph_error(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test calendar failures fall back to a direct decline."""
        graph.async_find_event.side_effect = GraphError("HTTP 503")
        tracker = make_tracker(graph, store, ghost_end_booking=True)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.result is None
        assert handling.strike is None

    async def test_no_mailbox(
        self, hass: HomeAssistant, graph: AsyncMock, store: GhostStore, ghost_session
    ) -> None:
        """Test devices without a calendar mailbox are declined directly."""
        ghost_session.sys_info = SystemInfo(name="Boardroom")
        tracker = make_tracker(graph, store, ghost_end_booking=True)

        handling = await tracker.async_handle(ghost_session, BOOKING, BOOKING_START)

        assert handling.result is None
        graph.async_find_event.assert_not_awaited()


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (datetime(2026, 3, 2, 9, 12, 29, tzinfo=dt_util.UTC), datetime(2026, 3, 2, 9, 10, tzinfo=dt_util.UTC)),
        (datetime(2026, 3, 2, 9, 12, 30, tzinfo=dt_util.UTC), datetime(2026, 3, 2, 9, 15, tzinfo=dt_util.UTC)),
        (datetime(2026, 3, 2, 9, 58, 0, tzinfo=dt_util.UTC), datetime(2026, 3, 2, 10, 0, tzinfo=dt_util.UTC)),
    ],
)
def test_round_to_five_minutes(value: datetime, expected: datetime) -> None:
    """Test rounding to the nearest five minutes."""
    assert round_to_five_minutes(value) == expected
