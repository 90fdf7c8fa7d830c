"""Nearby-user filtering.

``filter_nearby`` is pure: it never mutates the snapshot it is given and
never raises on bad records. Every exclusion is logged at DEBUG with the
stage that rejected the user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from math import isfinite
from typing import Any, Mapping

from pacematch.config import config
from pacematch.models import Candidate, UserLocationRecord, parse_user_record
from pacematch.tools.location_tools import now_ms as _now_ms
from pacematch.utils.geo import calculate_distance, has_coordinates
from pacematch.utils.logging_config import logger


@dataclass(frozen=True)
class NearbyFilters:
    """Caller-side filter settings for one nearby pass.

    ``discovery`` selects visibility semantics: discovery surfaces also hide
    users with ``profileVisible`` false, workout-visibility surfaces only
    honour ``visible``.
    """

    activity: str = "all"
    gender: str = "all"
    discovery: bool = True
    active_threshold_ms: int = field(default_factory=lambda: config.ACTIVE_THRESHOLD_MS)
    require_recent: bool = True


def _exclusion_reason(
    record: UserLocationRecord,
    distance: float | None,
    max_distance_km: float,
    filters: NearbyFilters,
    now: int,
) -> str | None:
    if not record.is_locatable:
        return "no location"
    if record.visible is False:
        return "visible: false"
    if filters.discovery and record.profile_visible is False:
        return "profileVisible: false"
    if distance is None:
        return "distance calculation failed"
    if not distance <= max_distance_km:
        return f"too far: {distance:.2f}km (max: {max_distance_km}km)"
    if filters.activity != "all" and record.activity != filters.activity:
        return f"activity {record.activity} != {filters.activity}"
    if filters.gender != "all" and record.gender != filters.gender:
        return "gender mismatch"
    if filters.require_recent:
        if record.timestamp is None:
            return "no timestamp (not actively tracking)"
        age = now - record.timestamp
        if age > filters.active_threshold_ms:
            return f"timestamp too old ({round(age / 1000)}s ago)"
    return None


def filter_nearby(
    all_users: Mapping[str, Any] | None,
    self_lat: float | None,
    self_lng: float | None,
    max_distance_km: float,
    exclude_user_id: str | None = None,
    filters: NearbyFilters | None = None,
    *,
    now_ms: int | None = None,
) -> list[Candidate]:
    """Return users near the caller, closest first.

    Args:
        all_users: Snapshot of users/ keyed by user id. Values may be raw
            dicts or parsed ``UserLocationRecord`` instances.
        self_lat: Caller latitude.
        self_lng: Caller longitude.
        max_distance_km: Inclusive distance limit.
        exclude_user_id: The caller's own id.
        filters: Activity/gender/visibility/recency settings.
        now_ms: Evaluation time; defaults to the wall clock.

    Returns:
        Candidates sorted by ascending distance in kilometers.
    """

    filters = filters or NearbyFilters()
    if not has_coordinates(self_lat, self_lng):
        logger.debug("No caller location provided for nearby filter")
        return []
    if not isinstance(max_distance_km, (int, float)) or not isfinite(max_distance_km):
        logger.debug("Unusable nearby radius: %r", max_distance_km)
        return []
    if not all_users:
        return []

    now = now_ms if now_ms is not None else _now_ms()
    results: list[Candidate] = []

    for user_id, raw in all_users.items():
        user_id = str(user_id)
        if exclude_user_id is not None and user_id == exclude_user_id:
            continue

        record = parse_user_record(user_id, raw)
        distance = (
            calculate_distance(self_lat, self_lng, record.lat, record.lng)
            if record.is_locatable
            else None
        )
        reason = _exclusion_reason(
            record, distance, max_distance_km, filters, now
        )
        if reason is not None:
            logger.debug("User %s filtered out - %s", user_id, reason)
            continue

        results.append(
            Candidate.model_validate(
                {**record.model_dump(), "id": user_id, "distance": distance}
            )
        )

    results.sort(key=lambda c: (c.distance, c.id))
    logger.debug(
        "Nearby filter result: %s of %s users within %skm",
        len(results),
        len(all_users),
        max_distance_km,
    )
    return results
