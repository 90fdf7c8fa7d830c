"""Shared LangGraph state definitions.

All graph states are TypedDicts so state is explicit, serializable, and
consistent across graph nodes.
"""

from __future__ import annotations

from typing import TypedDict

JsonDict = dict[str, object]
JsonList = list[JsonDict]


class NearbyState(TypedDict, total=False):
    """State for the nearby-users graph.

    Fields are optional at runtime because nodes populate them progressively.
    """

    # Identifies the requesting user.
    user_id: str
    # Optional explicit caller position; falls back to users/{user_id}.
    lat: float
    lng: float
    # Radius in kilometers.
    max_distance_km: float
    # "running" | "cycling" | "walking" | "all".
    activity_filter: str
    # Gender value or "all".
    gender_filter: str
    # True for discovery surfaces (honours profileVisible).
    discovery: bool
    # Evaluation time in epoch ms; defaults to the wall clock.
    now_ms: int
    # Raw users/ snapshot.
    users: JsonDict
    # Candidates after filtering, closest first.
    nearby_users: JsonList
    # Error string if any node fails.
    error: str
    # Response metadata for observability.
    response_metadata: JsonDict


class MatchingState(TypedDict, total=False):
    """State for the matching graph."""

    # Identifies the requesting user.
    user_id: str
    # Caller preferences from the request (activity, pace, radius, ...).
    preferences: JsonDict
    # Optional explicit caller position.
    lat: float
    lng: float
    # Evaluation time in epoch ms.
    now_ms: int
    # Caller's users/{user_id} document merged with preferences.
    user_profile: JsonDict
    # Raw users/ snapshot.
    users: JsonDict
    # Ranked match results.
    matches: JsonList
    # Error string if any node fails.
    error: str
    # Response metadata for observability.
    response_metadata: JsonDict
