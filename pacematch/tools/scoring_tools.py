"""Deterministic scoring utilities for workout-partner matching.

A match score is a weighted sum of four components, each in [0, 1]:

    distance   max(0, 1 - d / radius)                        weight 0.40
    pace       max(0, 1 - |pace_a - pace_b| / pace_a)        weight 0.25
               0.5 when either side has no pace
    fitness    same level 1.0, adjacent 0.5, beginner/pro 0.0 weight 0.20
    activity   same 1.0, different 0.0, unknown 0.5          weight 0.15

The sum is clamped to [0, 1]. Results are sorted by score, then by
distance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from pacematch.config import config
from pacematch.models import (
    FITNESS_LEVELS,
    Candidate,
    MatchedUser,
    MatchProfile,
    MatchResult,
    VisibilitySettings,
)
from pacematch.tools.filter_tools import NearbyFilters, filter_nearby
from pacematch.utils.logging_config import logger

NEUTRAL_COMPONENT = 0.5


@dataclass(frozen=True)
class ScoreWeights:
    distance: float = 0.40
    pace: float = 0.25
    fitness: float = 0.20
    activity: float = 0.15


@dataclass(frozen=True)
class MatchSettings:
    """Tunable matching parameters, defaulting to the loaded config."""

    weights: ScoreWeights = ScoreWeights()
    active_threshold_ms: int | None = None
    pace_tolerance: float | None = None
    limit: int | None = None
    base_radius_meters: Mapping[str, int] | None = None
    radius_multipliers: Mapping[str, float] | None = None

    def resolved_threshold(self) -> int:
        if self.active_threshold_ms is not None:
            return self.active_threshold_ms
        return config.MATCH_ACTIVE_THRESHOLD_MS

    def resolved_tolerance(self) -> float:
        if self.pace_tolerance is not None:
            return self.pace_tolerance
        return config.MATCH_PACE_TOLERANCE

    def resolved_limit(self) -> int:
        return self.limit if self.limit is not None else config.MATCH_RESULT_LIMIT


def compute_radius_meters(
    activity: str,
    radius_preference: str = "normal",
    *,
    base_radius_meters: Mapping[str, int] | None = None,
    radius_multipliers: Mapping[str, float] | None = None,
) -> int:
    """Match radius for an activity and preference band.

    Cycling 10km, running 2km, walking 1km, scaled by nearby 0.5x,
    normal 1x, wide 2x. Unknown values fall back to running / normal.
    """

    bases = base_radius_meters or config.BASE_RADIUS_METERS
    multipliers = radius_multipliers or config.RADIUS_MULTIPLIERS
    base = bases.get(activity) or bases.get("running", 2_000)
    multiplier = multipliers.get(radius_preference) or multipliers.get("normal", 1.0)
    return round(base * multiplier)


def fitness_allowed(caller_level: str, visibility: VisibilitySettings) -> bool:
    """Whether a candidate's visibility policy lets a caller of this level find them."""

    return visibility.allows(caller_level)


def pace_compatible(
    caller_pace: float | None,
    candidate_pace: float | None,
    tolerance: float | None = None,
) -> bool:
    """Paces within ``tolerance`` (relative to the caller) are compatible.

    A missing pace on either side never excludes.
    """

    if not caller_pace or not candidate_pace or caller_pace <= 0.001:
        return True
    tolerance = config.MATCH_PACE_TOLERANCE if tolerance is None else tolerance
    return abs(caller_pace - candidate_pace) / caller_pace <= tolerance


def calculate_distance_score(distance_m: float, radius_m: float) -> float:
    if radius_m <= 0:
        return 0.0
    return max(0.0, 1.0 - distance_m / radius_m)


def calculate_pace_score(
    caller_pace: float | None, candidate_pace: float | None
) -> float:
    if not caller_pace or not candidate_pace or caller_pace <= 0.001:
        return NEUTRAL_COMPONENT
    return max(0.0, 1.0 - abs(caller_pace - candidate_pace) / caller_pace)


def calculate_fitness_score(caller_level: str, candidate_level: str) -> float:
    try:
        gap = abs(FITNESS_LEVELS.index(caller_level) - FITNESS_LEVELS.index(candidate_level))
    except ValueError:
        return NEUTRAL_COMPONENT
    return {0: 1.0, 1: 0.5}.get(gap, 0.0)


def calculate_activity_score(caller_activity: str, candidate_activity: str | None) -> float:
    if candidate_activity is None:
        return NEUTRAL_COMPONENT
    return 1.0 if candidate_activity == caller_activity else 0.0


def score_candidate(
    profile: MatchProfile,
    candidate: Candidate,
    radius_m: float,
    weights: ScoreWeights | None = None,
) -> float:
    """Compatibility score in [0, 1] for one admitted candidate."""

    weights = weights or ScoreWeights()
    score = (
        weights.distance * calculate_distance_score(candidate.distance * 1000, radius_m)
        + weights.pace * calculate_pace_score(profile.pace, candidate.pace)
        + weights.fitness
        * calculate_fitness_score(profile.fitness_level, candidate.fitness_level)
        + weights.activity
        * calculate_activity_score(profile.activity, candidate.activity)
    )
    return min(1.0, max(0.0, score))


def _admissible(profile: MatchProfile, candidate: Candidate, tolerance: float) -> str | None:
    if profile.search_filter != "all" and candidate.fitness_level != profile.search_filter:
        return f"fitness level {candidate.fitness_level} not searched for"
    if candidate.search_filter != "all" and candidate.search_filter != profile.fitness_level:
        return "candidate searches for another level"
    if not fitness_allowed(profile.fitness_level, candidate.visibility):
        return "visibility policy excludes caller level"
    if not pace_compatible(profile.pace, candidate.pace, tolerance):
        return "pace incompatible"
    return None


def match_users(
    profile: MatchProfile | Mapping[str, Any],
    all_users: Mapping[str, Any] | None,
    *,
    now_ms: int | None = None,
    settings: MatchSettings | None = None,
) -> list[MatchResult]:
    """Rank nearby, active, mutually visible users for the caller.

    Returns at most ``MATCH_RESULT_LIMIT`` results, best first. Never raises
    on missing optional fields.
    """

    settings = settings or MatchSettings()
    if not isinstance(profile, MatchProfile):
        profile = MatchProfile.model_validate(dict(profile))

    if not profile.profile_visible:
        return []

    radius_m = compute_radius_meters(
        profile.activity,
        profile.radius_preference,
        base_radius_meters=settings.base_radius_meters,
        radius_multipliers=settings.radius_multipliers,
    )

    nearby = filter_nearby(
        all_users,
        profile.lat,
        profile.lng,
        radius_m / 1000,
        exclude_user_id=profile.uid,
        filters=NearbyFilters(
            discovery=True, active_threshold_ms=settings.resolved_threshold()
        ),
        now_ms=now_ms,
    )

    tolerance = settings.resolved_tolerance()
    ranked: list[MatchResult] = []
    for candidate in nearby:
        reason = _admissible(profile, candidate, tolerance)
        if reason is not None:
            logger.debug("Match candidate %s filtered out - %s", candidate.id, reason)
            continue

        user = MatchedUser.model_validate(
            {
                **candidate.model_dump(exclude={"id", "distance"}),
                "uid": candidate.id,
            }
        )
        ranked.append(
            MatchResult(
                user=user,
                distance=candidate.distance * 1000,
                score=score_candidate(profile, candidate, radius_m, settings.weights),
            )
        )

    ranked.sort(key=lambda m: (-m.score, m.distance, m.user.uid))
    logger.debug(
        "Matching: %s nearby users -> %s matches", len(nearby), len(ranked)
    )
    return ranked[: settings.resolved_limit()]


def calculate_pace_from_workouts(
    workouts: Iterable[Mapping[str, Any]], activity: str
) -> float | None:
    """Average pace from recent workout history.

    Uses the last 10 workouts of ``activity`` with positive distance (km)
    and duration (seconds). Cycling returns km/h (``avgSpeed`` when
    present), running and walking return min/km within (0, 30).
    """

    relevant = [w for w in workouts if w.get("activity") == activity][-10:]
    relevant = [
        w for w in relevant
        if (w.get("distance") or 0) > 0 and (w.get("duration") or 0) > 0
    ]
    if not relevant:
        return None

    if activity == "cycling":
        speeds = [
            w.get("avgSpeed") or w["distance"] / (w["duration"] / 3600)
            for w in relevant
        ]
        speeds = [s for s in speeds if s > 0]
        return sum(speeds) / len(speeds) if speeds else None

    paces = [(w["duration"] / 60) / w["distance"] for w in relevant]
    paces = [p for p in paces if 0 < p < 30]
    return sum(paces) / len(paces) if paces else None
