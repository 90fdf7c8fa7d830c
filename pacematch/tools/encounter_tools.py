"""Encounter tracking under encounteredUsers/{observerId}/{candidateId}.

Encounters are best-effort telemetry: every store failure in this module is
logged and swallowed so it can never interfere with location or discovery.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from pydantic import ValidationError

from pacematch.config import config
from pacematch.models import Candidate, EncounterRecord
from pacematch.tools.location_tools import now_ms
from pacematch.tools.store import Store
from pacematch.utils.logging_config import logger

ENCOUNTERS_PATH = "encounteredUsers"
DAY_MS = 24 * 60 * 60 * 1000


def encounter_path(observer_id: str, candidate_id: str | None = None) -> str:
    if candidate_id is None:
        return f"{ENCOUNTERS_PATH}/{observer_id}"
    return f"{ENCOUNTERS_PATH}/{observer_id}/{candidate_id}"


def add_encountered_user(
    store: Store,
    observer_id: str,
    candidate_id: str,
    distance_km: float,
    lat: float,
    lng: float,
    *,
    timestamp_ms: int | None = None,
) -> EncounterRecord:
    """Create or update one encounter record.

    The first write sets ``count=1`` and ``encounteredAt``; later writes
    bump ``count`` and refresh ``lastSeenAt``/``distance``/``lat``/``lng``
    while keeping the first ``encounteredAt``.

    Raises:
        StoreUnavailableError: If the store read or write fails.
    """

    now = timestamp_ms if timestamp_ms is not None else now_ms()
    path = encounter_path(observer_id, candidate_id)
    existing = store.get(path)

    if isinstance(existing, dict):
        record = EncounterRecord(
            userId=candidate_id,
            encounteredAt=existing.get("encounteredAt") or now,
            lastSeenAt=now,
            distance=distance_km,
            lat=lat,
            lng=lng,
            count=int(existing.get("count") or 1) + 1,
        )
    else:
        record = EncounterRecord(
            userId=candidate_id,
            encounteredAt=now,
            lastSeenAt=now,
            distance=distance_km,
            lat=lat,
            lng=lng,
            count=1,
        )

    store.set(path, record.to_store())
    return record


class EncounterTracker:
    """Session-scoped, deduplicated encounter recording.

    A candidate is recorded at most once per dedup window, and a whole
    recording pass is skipped when the previous one ran less than the
    minimum pass gap ago. Entries leave the dedup set lazily once their
    window has elapsed.
    """

    def __init__(
        self,
        store: Store,
        *,
        dedup_window_ms: int | None = None,
        min_pass_gap_ms: int | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.dedup_window_ms = (
            config.ENCOUNTER_DEDUP_WINDOW_MS if dedup_window_ms is None else dedup_window_ms
        )
        self.min_pass_gap_ms = (
            config.ENCOUNTER_MIN_PASS_GAP_MS if min_pass_gap_ms is None else min_pass_gap_ms
        )
        self.clock = clock
        self._tracked: dict[str, int] = {}
        self._last_pass_at: int | None = None
        self._lock = threading.Lock()

    def _claim(self, candidate_id: str, now: int) -> bool:
        with self._lock:
            expired = [
                cid for cid, at in self._tracked.items()
                if now - at >= self.dedup_window_ms
            ]
            for cid in expired:
                del self._tracked[cid]
            if candidate_id in self._tracked:
                return False
            self._tracked[candidate_id] = now
            return True

    def _release(self, candidate_id: str, claimed_at: int) -> None:
        with self._lock:
            if self._tracked.get(candidate_id) == claimed_at:
                del self._tracked[candidate_id]

    def is_tracked(self, candidate_id: str) -> bool:
        now = self.clock()
        with self._lock:
            tracked_at = self._tracked.get(candidate_id)
            return tracked_at is not None and now - tracked_at < self.dedup_window_ms

    def record_encounter(self, observer_id: str, candidate: Candidate) -> bool:
        """Record one encounter unless it was already tracked this window.

        Returns True when a write was made. Never raises.
        """

        now = self.clock()
        if not self._claim(candidate.id, now):
            return False

        try:
            add_encountered_user(
                self.store,
                observer_id,
                candidate.id,
                candidate.distance,
                candidate.lat,
                candidate.lng,
                timestamp_ms=now,
            )
            return True
        except Exception as exc:
            logger.error("Error adding encountered user: %s", str(exc))
            self._release(candidate.id, now)
            return False

    def record_encounters(self, observer_id: str, candidates: Iterable[Candidate]) -> int:
        """Run one recording pass over filtered candidates.

        Returns the number of writes made; 0 when the pass was throttled.
        """

        now = self.clock()
        with self._lock:
            if (
                self._last_pass_at is not None
                and now - self._last_pass_at < self.min_pass_gap_ms
            ):
                return 0
            self._last_pass_at = now

        written = sum(
            1 for candidate in candidates
            if candidate.id != observer_id and self.record_encounter(observer_id, candidate)
        )
        if written:
            logger.debug("Recorded %s encounter(s)", written)
        return written

    def reset(self) -> None:
        with self._lock:
            self._tracked.clear()
            self._last_pass_at = None


def get_encountered_users(store: Store, observer_id: str) -> dict[str, EncounterRecord]:
    """One-shot read of an observer's encounters. Empty on any failure."""

    try:
        raw = store.get(encounter_path(observer_id))
    except Exception as exc:
        logger.error("Error getting encountered users: %s", str(exc))
        return {}

    if not isinstance(raw, dict):
        return {}

    encounters: dict[str, EncounterRecord] = {}
    for candidate_id, data in raw.items():
        if not isinstance(data, dict):
            continue
        try:
            encounters[str(candidate_id)] = EncounterRecord.model_validate(
                {"userId": candidate_id, **data}
            )
        except ValidationError as exc:
            logger.debug("Skipping malformed encounter %s: %s", candidate_id, exc)
    return encounters


def cleanup_old_encounters(
    store: Store,
    observer_id: str,
    *,
    at_ms: int | None = None,
    max_age_days: int | None = None,
) -> int:
    """Remove encounters whose ``lastSeenAt`` is older than the max age.

    Returns the number of records removed. Never raises.
    """

    now = at_ms if at_ms is not None else now_ms()
    max_age_days = config.ENCOUNTER_MAX_AGE_DAYS if max_age_days is None else max_age_days
    cutoff = now - max_age_days * DAY_MS

    try:
        raw = store.get(encounter_path(observer_id))
    except Exception as exc:
        logger.error("Error cleaning up old encounters: %s", str(exc))
        return 0

    if not isinstance(raw, dict):
        return 0

    removed = 0
    for candidate_id, data in raw.items():
        last_seen = data.get("lastSeenAt") if isinstance(data, dict) else None
        if not isinstance(last_seen, (int, float)) or last_seen >= cutoff:
            continue
        try:
            store.remove(encounter_path(observer_id, str(candidate_id)))
            removed += 1
            logger.debug("Cleaned up old encounter: %s", candidate_id)
        except Exception as exc:
            logger.error("Error removing encounter %s: %s", candidate_id, str(exc))

    if removed:
        logger.info("Cleaned up %s old encounter(s)", removed)
    return removed
