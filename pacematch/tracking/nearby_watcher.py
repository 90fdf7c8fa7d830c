"""Push- and timer-driven re-evaluation of nearby users.

The filter runs whenever a new users/ snapshot arrives and again on a fixed
interval against the last cached snapshot. The timer pass is what makes a
user who stopped pushing locations drop out once their timestamp goes
stale, even if nobody else writes to the store.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from pacematch.config import config
from pacematch.models import Candidate, UserLocationRecord
from pacematch.tools.encounter_tools import EncounterTracker
from pacematch.tools.filter_tools import NearbyFilters, filter_nearby
from pacematch.tools.location_tools import listen_to_all_users, now_ms
from pacematch.tools.store import Store, Unsubscribe
from pacematch.tracking.timer import RepeatingTimer
from pacematch.utils.logging_config import logger

ResultsCallback = Callable[[list[Candidate]], None]


class NearbyWatcher:
    def __init__(
        self,
        store: Store,
        user_id: str,
        *,
        max_distance_km: float | None = None,
        filters: NearbyFilters | None = None,
        interval_s: float | None = None,
        encounter_tracker: Optional[EncounterTracker] = None,
        on_results: Optional[ResultsCallback] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.user_id = user_id
        self.max_distance_km = (
            config.DEFAULT_NEARBY_RADIUS_KM if max_distance_km is None else max_distance_km
        )
        self.filters = filters or NearbyFilters()
        self.encounter_tracker = encounter_tracker
        self.on_results = on_results
        self.clock = clock

        self.location: Optional[tuple[float, float]] = None
        self.results: list[Candidate] = []

        self._snapshot: Mapping[str, UserLocationRecord] = MappingProxyType({})
        self._unsubscribe: Optional[Unsubscribe] = None
        self._timer = RepeatingTimer(
            config.REEVALUATION_INTERVAL_S if interval_s is None else interval_s,
            self.evaluate,
            name=f"nearby-reevaluate-{user_id}",
        )
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Mapping[str, UserLocationRecord]:
        return self._snapshot

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        """Subscribe to users/ and start the re-evaluation timer."""

        if self._unsubscribe is None:
            self._unsubscribe = listen_to_all_users(self.store, self._on_snapshot)
        self._timer.start()

    def stop(self) -> None:
        """Stop the timer and unsubscribe. Each step is idempotent."""

        self._timer.stop()
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def set_location(self, lat: float, lng: float) -> list[Candidate]:
        self.location = (lat, lng)
        return self.evaluate()

    def _on_snapshot(self, users: dict[str, UserLocationRecord]) -> None:
        # Replace, never mutate: a timer pass may be reading the old one.
        self._snapshot = MappingProxyType(dict(users))
        self.evaluate()

    def evaluate(self) -> list[Candidate]:
        """Run one filter pass against the cached snapshot."""

        with self._lock:
            snapshot = self._snapshot
            location = self.location
            if location is None:
                results: list[Candidate] = []
            else:
                results = filter_nearby(
                    snapshot,
                    location[0],
                    location[1],
                    self.max_distance_km,
                    exclude_user_id=self.user_id,
                    filters=self.filters,
                    now_ms=self.clock(),
                )
            self.results = results

        if self.on_results is not None:
            try:
                self.on_results(results)
            except Exception:
                logger.exception("Nearby results callback failed")

        if self.encounter_tracker is not None and results:
            self.encounter_tracker.record_encounters(self.user_id, results)

        return results
