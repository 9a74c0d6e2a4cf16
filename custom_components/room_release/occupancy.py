"""Room occupancy evaluation for the Room Release integration.

This module turns device readings into an occupied/unoccupied verdict and
applies hysteresis so a room is only treated as empty after it has stayed
empty for a configurable number of minutes.

Two detection modes exist and exactly one is used per config entry:
- legacy: people presence combined with the enabled detectors (active call,
  sound level, presentation, ultrasound)
- consolidated: the device's single RoomInUse signal
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
import logging

from .options import RoomReleaseOptions

_LOGGER = logging.getLogger(__name__)


@dataclass
class MetricsSnapshot:
    """Latest occupancy related readings for one device."""

    people_count: int = 0
    people_presence: bool = False
    in_call: bool = False
    presence_sound: bool = False
    sound_level: int = 0
    sharing: bool = False
    room_in_use: bool = False
    ultrasound_presence: bool = False

    def as_dict(self) -> dict[str, int | bool]:
        """Return the readings as a plain dict."""
        return {
            "people_count": self.people_count,
            "people_presence": self.people_presence,
            "in_call": self.in_call,
            "presence_sound": self.presence_sound,
            "sound_level": self.sound_level,
            "sharing": self.sharing,
            "room_in_use": self.room_in_use,
            "ultrasound_presence": self.ultrasound_presence,
        }


@dataclass(frozen=True)
class LegacySignals:
    """Occupancy input for multi-detector mode."""

    people_presence: bool
    in_call: bool
    presence_sound: bool
    sharing: bool
    ultrasound_presence: bool


@dataclass(frozen=True)
class ConsolidatedSignal:
    """Occupancy input for devices reporting RoomInUse."""

    room_in_use: bool


OccupancySignals = LegacySignals | ConsolidatedSignal


class OccupancyEvaluator(ABC):
    """Decide whether a room is occupied from a metrics snapshot."""

    consolidated = False

    def __init__(self, options: RoomReleaseOptions) -> None:
        """Initialize the evaluator."""
        self._options = options

    @abstractmethod
    def signals(self, snapshot: MetricsSnapshot) -> OccupancySignals:
        """Extract the input this evaluator consumes."""

    @abstractmethod
    def is_occupied(self, signals: OccupancySignals) -> bool:
        """Return the verdict for the given input."""

    def evaluate(self, snapshot: MetricsSnapshot, log_prefix: str = "") -> bool:
        """Return True if the snapshot indicates an occupied room."""
        signals = self.signals(snapshot)
        occupied = self.is_occupied(signals)
        _LOGGER.debug("%s: %s | OCCUPIED: %s", log_prefix, self.describe(snapshot), occupied)
        return occupied

    def describe(self, snapshot: MetricsSnapshot) -> str:
        """Return a one line summary of the readings."""
        return f"Presence: {snapshot.people_presence} | Count: {snapshot.people_count}"


class LegacyEvaluator(OccupancyEvaluator):
    """Presence OR any enabled detector."""

    def signals(self, snapshot: MetricsSnapshot) -> LegacySignals:
        return LegacySignals(
            people_presence=snapshot.people_presence,
            in_call=snapshot.in_call,
            presence_sound=snapshot.presence_sound,
            sharing=snapshot.sharing,
            ultrasound_presence=snapshot.ultrasound_presence,
        )

    def is_occupied(self, signals: LegacySignals) -> bool:
        opts = self._options
        occupied = (
            signals.people_presence
            or (opts.detect_active_calls and signals.in_call)
            or (opts.detect_sound and signals.presence_sound)
            or (opts.detect_presentation and signals.sharing)
            or (opts.detect_ultrasound and signals.ultrasound_presence)
        )

        # Presence alone is not enough when ultrasound is required
        if opts.require_ultrasound and signals.people_presence:
            occupied = signals.ultrasound_presence

        return occupied

    def describe(self, snapshot: MetricsSnapshot) -> str:
        opts = self._options

        def flag(enabled: bool) -> str:
            return "X" if enabled else " "

        ultrasound_flag = "R" if opts.require_ultrasound else flag(opts.detect_ultrasound)
        return (
            f"{super().describe(snapshot)}"
            f" | [{ultrasound_flag}] Ultrasound: {snapshot.ultrasound_presence}"
            f" | [{flag(opts.detect_active_calls)}] In Call: {snapshot.in_call}"
            f" | [{flag(opts.detect_sound)}] Sound (> {opts.sound_level}):"
            f" {snapshot.presence_sound}"
            f" | [{flag(opts.detect_presentation)}] Share: {snapshot.sharing}"
        )


class ConsolidatedEvaluator(OccupancyEvaluator):
    """RoomInUse is authoritative."""

    consolidated = True

    def signals(self, snapshot: MetricsSnapshot) -> ConsolidatedSignal:
        return ConsolidatedSignal(room_in_use=snapshot.room_in_use)

    def is_occupied(self, signals: ConsolidatedSignal) -> bool:
        return signals.room_in_use

    def describe(self, snapshot: MetricsSnapshot) -> str:
        return f"{super().describe(snapshot)} | Room In Use: {snapshot.room_in_use}"


def create_evaluator(options: RoomReleaseOptions) -> OccupancyEvaluator:
    """Return the evaluator for the configured detection mode."""
    if options.use_room_in_use:
        return ConsolidatedEvaluator(options)
    return LegacyEvaluator(options)


class RoomState(StrEnum):
    """Coarse room state derived by the hysteresis tracker."""

    IDLE = "idle"
    OCCUPIED = "occupied"
    RECENTLY_EMPTY = "recently_empty"
    CONFIRMED_EMPTY = "confirmed_empty"


class HysteresisTracker:
    """Track how long a room has been continuously occupied or empty.

    Only one of last_full/last_empty is ever set. room_is_empty becomes True
    once the room has been empty for empty_before_release minutes and is
    cleared by any occupied reading.
    """

    def __init__(self, considered_occupied: int, empty_before_release: int) -> None:
        """Initialize the tracker.

        Args:
            considered_occupied: Minutes after which an occupied room is
                                 re-stamped and considered occupied.
            empty_before_release: Minutes of continuous emptiness before the
                                  room is considered empty.
        """
        self._considered_occupied = timedelta(minutes=considered_occupied)
        self._empty_before_release = timedelta(minutes=empty_before_release)
        self.last_full: datetime | None = None
        self.last_empty: datetime | None = None
        self.room_is_empty = False

    @property
    def state(self) -> RoomState:
        """Return the coarse room state."""
        if self.last_full is not None:
            return RoomState.OCCUPIED
        if self.room_is_empty:
            return RoomState.CONFIRMED_EMPTY
        if self.last_empty is not None:
            return RoomState.RECENTLY_EMPTY
        return RoomState.IDLE

    def update(self, occupied: bool, now: datetime) -> bool:
        """Apply one occupancy evaluation.

        Returns True when the room has just been occupied for at least
        considered_occupied minutes.
        """
        if occupied:
            self.room_is_empty = False
            if self.last_full is None:
                self.last_full = now
                self.last_empty = None
                return False
            if now - self.last_full >= self._considered_occupied:
                # Keep the full stamp hot
                self.last_full = now
                return True
            return False

        if self.last_empty is None:
            self.last_empty = now
            self.last_full = None
        elif not self.room_is_empty and now - self.last_empty >= self._empty_before_release:
            self.room_is_empty = True
        return False

    def mark_checked_in(self, now: datetime) -> None:
        """Record an explicit check-in."""
        self.last_full = now
        self.last_empty = None
        self.room_is_empty = False

    def reset(self) -> None:
        """Forget all booking scoped state."""
        self.last_full = None
        self.last_empty = None
        self.room_is_empty = False
