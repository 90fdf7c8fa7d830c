"""One user's proximity session.

A session owns every moving part for a single user: the location watch,
the nearby watcher (subscription + re-evaluation timer), the encounter
dedup state and, optionally, stationary detection. Nothing is shared
between sessions.
"""

from __future__ import annotations

from typing import Callable, Optional

from pacematch.config import config
from pacematch.models import Candidate
from pacematch.tools.encounter_tools import EncounterTracker
from pacematch.tools.filter_tools import NearbyFilters
from pacematch.tools.location_tools import now_ms
from pacematch.tools.store import Store
from pacematch.tracking.geolocation import GeolocationProvider, Position
from pacematch.tracking.location_tracker import LocationTracker
from pacematch.tracking.movement import MovementDetector
from pacematch.tracking.nearby_watcher import NearbyWatcher
from pacematch.tracking.timer import RepeatingTimer
from pacematch.utils.logging_config import logger


class ProximitySession:
    def __init__(
        self,
        store: Store,
        provider: GeolocationProvider,
        user_id: str,
        *,
        visible: bool = True,
        max_distance_km: float | None = None,
        filters: NearbyFilters | None = None,
        track_encounters: bool = True,
        movement_detector: Optional[MovementDetector] = None,
        on_results: Optional[Callable[[list[Candidate]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.user_id = user_id
        self.encounters = (
            EncounterTracker(store, clock=clock) if track_encounters else None
        )
        self.watcher = NearbyWatcher(
            store,
            user_id,
            max_distance_km=max_distance_km,
            filters=filters,
            encounter_tracker=self.encounters,
            on_results=on_results,
            clock=clock,
        )
        self.tracker = LocationTracker(
            provider,
            store,
            user_id,
            visible=visible,
            on_location=self._on_location,
            on_error=on_error,
            clock=clock,
        )
        self.movement = movement_detector
        self._movement_timer = (
            RepeatingTimer(
                config.MOVEMENT_CHECK_INTERVAL_S,
                self.movement.check,
                name=f"movement-check-{user_id}",
            )
            if self.movement is not None
            else None
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def nearby(self) -> list[Candidate]:
        return self.watcher.results

    def _on_location(self, position: Position) -> None:
        self.watcher.set_location(position.lat, position.lng)
        if self.movement is not None:
            self.movement.add_location(position.lat, position.lng)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info("Proximity session starting for user")
        self.watcher.start()
        if self.movement is not None:
            self.movement.begin()
            self._movement_timer.start()
        self.tracker.start()

    def stop(self) -> None:
        """Tear down watch, timers and subscription. Safe to call repeatedly."""

        self.tracker.stop()
        self.watcher.stop()
        if self._movement_timer is not None:
            self._movement_timer.stop()
            self.movement.end()
        if self.encounters is not None:
            self.encounters.reset()
        if self._started:
            logger.info("Proximity session stopped")
        self._started = False

    def __enter__(self) -> "ProximitySession":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
