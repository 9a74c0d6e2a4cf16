"""Tests for occupancy evaluation and hysteresis."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from homeassistant.util import dt as dt_util

from custom_components.room_release.occupancy import (
    ConsolidatedEvaluator,
    HysteresisTracker,
    LegacyEvaluator,
    MetricsSnapshot,
    RoomState,
    create_evaluator,
)
from custom_components.room_release.options import RoomReleaseOptions

T = datetime(2026, 3, 2, 9, 0, tzinfo=dt_util.UTC)


def evaluator(**options) -> LegacyEvaluator | ConsolidatedEvaluator:
    return create_evaluator(RoomReleaseOptions.from_mapping(options))


class TestLegacyEvaluator:
    """Tests for multi-detector occupancy."""

    def test_empty_room(self) -> None:
        """Test no signals means unoccupied."""
        assert evaluator().evaluate(MetricsSnapshot()) is False

    def test_presence_counts(self) -> None:
        """Test people presence alone marks the room occupied."""
        assert evaluator().evaluate(MetricsSnapshot(people_presence=True)) is True

    @pytest.mark.parametrize(
        ("option", "snapshot"),
        [
            ("detect_active_calls", MetricsSnapshot(in_call=True)),
            ("detect_sound", MetricsSnapshot(presence_sound=True)),
            ("detect_presentation", MetricsSnapshot(sharing=True)),
            ("detect_ultrasound", MetricsSnapshot(ultrasound_presence=True)),
        ],
    )
    def test_detectors_follow_options(self, option: str, snapshot: MetricsSnapshot) -> None:
        """Test each detector only counts when enabled."""
        assert evaluator(**{option: True}).evaluate(snapshot) is True
        assert evaluator(**{option: False}).evaluate(snapshot) is False

    def test_require_ultrasound_overrides_presence(self) -> None:
        """Test presence without ultrasound is not enough when required."""
        ev = evaluator(require_ultrasound=True)

        assert ev.evaluate(MetricsSnapshot(people_presence=True)) is False
        assert (
            ev.evaluate(MetricsSnapshot(people_presence=True, ultrasound_presence=True))
            is True
        )

    def test_require_ultrasound_enables_detection(self) -> None:
        """Test requiring ultrasound forces ultrasound detection on."""
        options = RoomReleaseOptions.from_mapping(
            {"require_ultrasound": True, "detect_ultrasound": False}
        )

        assert options.detect_ultrasound is True

    def test_room_in_use_ignored(self) -> None:
        """Test the consolidated signal does not count in legacy mode."""
        ev = evaluator()

        assert ev.consolidated is False
        assert ev.evaluate(MetricsSnapshot(room_in_use=True)) is False

    def test_describe(self) -> None:
        """Test the debug line marks enabled and required detectors."""
        line = evaluator(require_ultrasound=True).describe(MetricsSnapshot())

        assert "[R] Ultrasound" in line
        assert "[X] In Call" in line
        assert "[ ] Sound" in line


class TestConsolidatedEvaluator:
    """Tests for RoomInUse based occupancy."""

    def test_room_in_use_is_authoritative(self) -> None:
        """Test only RoomInUse is consulted."""
        ev = evaluator(use_room_in_use=True)

        assert isinstance(ev, ConsolidatedEvaluator)
        assert ev.evaluate(MetricsSnapshot(people_presence=True, in_call=True)) is False
        assert ev.evaluate(MetricsSnapshot(room_in_use=True)) is True


class TestHysteresisTracker:
    """Tests for the occupied/empty timers."""

    @pytest.fixture
    def tracker(self) -> HysteresisTracker:
        return HysteresisTracker(considered_occupied=15, empty_before_release=5)

    def test_initial_state(self, tracker: HysteresisTracker) -> None:
        """Test a new tracker is idle."""
        assert tracker.state == RoomState.IDLE
        assert tracker.last_full is None
        assert tracker.last_empty is None

    def test_empty_needs_full_window(self, tracker: HysteresisTracker) -> None:
        """Test the room is only empty after empty_before_release minutes."""
        tracker.update(False, T)
        assert tracker.state == RoomState.RECENTLY_EMPTY

        tracker.update(False, T + timedelta(minutes=4, seconds=59))
        assert not tracker.room_is_empty

        tracker.update(False, T + timedelta(minutes=5))
        assert tracker.room_is_empty
        assert tracker.state == RoomState.CONFIRMED_EMPTY

    def test_occupied_clears_empty(self, tracker: HysteresisTracker) -> None:
        """Test any occupied reading clears the empty state."""
        tracker.update(False, T)
        tracker.update(False, T + timedelta(minutes=6))
        assert tracker.room_is_empty

        tracker.update(True, T + timedelta(minutes=7))

        assert not tracker.room_is_empty
        assert tracker.last_full == T + timedelta(minutes=7)
        assert tracker.last_empty is None
        assert tracker.state == RoomState.OCCUPIED

    def test_timestamps_are_exclusive(self, tracker: HysteresisTracker) -> None:
        """Test only one of last_full and last_empty is ever set."""
        readings = [True, False, False, True, True, False]
        for minute, occupied in enumerate(readings):
            tracker.update(occupied, T + timedelta(minutes=minute))
            assert tracker.last_full is None or tracker.last_empty is None

    def test_considered_occupied_restamps(self, tracker: HysteresisTracker) -> None:
        """Test continuous occupancy re-stamps last_full every window."""
        assert tracker.update(True, T) is False
        assert tracker.update(True, T + timedelta(minutes=14)) is False
        assert tracker.last_full == T

        assert tracker.update(True, T + timedelta(minutes=15)) is True
        assert tracker.last_full == T + timedelta(minutes=15)

    def test_mark_checked_in(self, tracker: HysteresisTracker) -> None:
        """Test a check-in stamps the room as full."""
        tracker.update(False, T)
        tracker.update(False, T + timedelta(minutes=5))

        tracker.mark_checked_in(T + timedelta(minutes=6))

        assert tracker.last_full == T + timedelta(minutes=6)
        assert tracker.last_empty is None
        assert not tracker.room_is_empty

    def test_reset(self, tracker: HysteresisTracker) -> None:
        """Test reset forgets everything."""
        tracker.update(False, T)
        tracker.update(False, T + timedelta(minutes=5))

        tracker.reset()

        assert tracker.state == RoomState.IDLE
