"""Stationary detection during an active workout.

Looks at the fixes recorded over the detection window: if both the path
length and the straight-line distance stay under the threshold, the user is
stationary. Callbacks fire only on state changes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

from pacematch.config import config
from pacematch.tools.location_tools import now_ms
from pacematch.utils.geo import haversine_meters


@dataclass(frozen=True)
class TimedFix:
    lat: float
    lng: float
    timestamp: int


class MovementDetector:
    def __init__(
        self,
        on_stationary: Callable[[], None],
        on_movement: Optional[Callable[[], None]] = None,
        *,
        distance_threshold_m: float | None = None,
        window_ms: int | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.on_stationary = on_stationary
        self.on_movement = on_movement
        self.distance_threshold_m = (
            config.MOVEMENT_DISTANCE_THRESHOLD_M
            if distance_threshold_m is None
            else distance_threshold_m
        )
        self.window_ms = (
            int(config.MOVEMENT_WINDOW_MINUTES * 60 * 1000) if window_ms is None else window_ms
        )
        self.clock = clock

        self.is_stationary = False
        self._history: list[TimedFix] = []
        self._started_at: Optional[int] = None
        self._last_stationary_call = 0
        self._lock = threading.Lock()

    @property
    def location_count(self) -> int:
        return len(self._history)

    def begin(self) -> None:
        """Reset state for a fresh workout."""

        with self._lock:
            self._started_at = self.clock()
            self._history = []
            self.is_stationary = False
            self._last_stationary_call = 0

    def end(self) -> None:
        with self._lock:
            self._started_at = None
            self.is_stationary = False

    def add_location(self, lat: float, lng: float) -> None:
        now = self.clock()
        cutoff = now - self.window_ms - 60_000
        with self._lock:
            self._history.append(TimedFix(lat, lng, now))
            self._history = [fix for fix in self._history if fix.timestamp > cutoff]

    def check(self, paused: bool = False) -> bool:
        """Evaluate the window and fire callbacks on transitions.

        Returns the current stationary state.
        """

        now = self.clock()
        fire: Optional[Callable[[], None]] = None

        with self._lock:
            if self._started_at is None or now - self._started_at < self.window_ms:
                return self.is_stationary

            recent = [fix for fix in self._history if fix.timestamp > now - self.window_ms]
            if len(recent) < 2:
                return self.is_stationary

            path_length = sum(
                haversine_meters(a.lat, a.lng, b.lat, b.lng)
                for a, b in zip(recent, recent[1:])
            )
            straight_line = haversine_meters(
                recent[0].lat, recent[0].lng, recent[-1].lat, recent[-1].lng
            )
            stationary = (
                path_length < self.distance_threshold_m
                and straight_line < self.distance_threshold_m
            )

            if stationary and not self.is_stationary:
                self.is_stationary = True
                if not paused and now - self._last_stationary_call > self.window_ms:
                    self._last_stationary_call = now
                    fire = self.on_stationary
            elif not stationary and self.is_stationary:
                self.is_stationary = False
                fire = self.on_movement

            state = self.is_stationary

        if fire is not None:
            fire()
        return state
