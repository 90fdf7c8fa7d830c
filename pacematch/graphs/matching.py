"""Matching graph: deterministic pace/fitness/distance scoring."""

from __future__ import annotations

from langgraph.graph import StateGraph

from pacematch.config import config
from pacematch.graphs.base_graph import BaseGraph, with_state
from pacematch.models import MatchProfile
from pacematch.state import MatchingState
from pacematch.tools.location_tools import USERS_PATH, user_path
from pacematch.tools.scoring_tools import match_users
from pacematch.utils.errors import StoreUnavailableError
from pacematch.utils.geo import format_distance, has_coordinates
from pacematch.utils.logging_config import logger

PROFILE_FIELDS = (
    "activity",
    "fitnessLevel",
    "pace",
    "visibility",
    "searchFilter",
    "radiusPreference",
    "profileVisible",
)


class MatchingGraph(BaseGraph):
    """Load the caller profile and snapshot, then score and rank."""

    def build_graph(self) -> StateGraph:
        graph = StateGraph(MatchingState)

        graph.add_node("fetch_user_profile", self.node_fetch_user_profile)
        graph.add_node("query_candidates", self.node_query_candidates)
        graph.add_node("score_matches", self.node_score_matches)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("fetch_user_profile")
        graph.add_edge("fetch_user_profile", "query_candidates")
        graph.add_edge("query_candidates", "score_matches")
        graph.add_edge("score_matches", "finalize_response")
        graph.set_finish_point("finalize_response")

        return graph

    def node_fetch_user_profile(self, state: MatchingState) -> MatchingState:
        """Merge the stored profile with request preferences.

        Stored values win over request defaults, matching how the app
        prefers the saved profile to local fallbacks.
        """

        self._log_node_execution("fetch_user_profile", state)
        user_id = state.get("user_id")
        if not user_id:
            return with_state(state, error="user_id is required")

        try:
            doc = self.store.get(user_path(user_id))
        except StoreUnavailableError as exc:
            self._log_node_error("fetch_user_profile", exc)
            return with_state(
                state, error="Store unavailable. Returning empty matches."
            )

        doc = doc if isinstance(doc, dict) else {}
        profile: dict = {"uid": user_id}
        profile.update(state.get("preferences") or {})
        for field_name in PROFILE_FIELDS:
            if doc.get(field_name) is not None:
                profile[field_name] = doc[field_name]

        if has_coordinates(state.get("lat"), state.get("lng")):
            profile["lat"], profile["lng"] = state["lat"], state["lng"]
        else:
            profile["lat"], profile["lng"] = doc.get("lat"), doc.get("lng")

        if not has_coordinates(profile["lat"], profile["lng"]):
            return with_state(state, error="No location available for user")

        return with_state(state, user_profile=profile)

    def node_query_candidates(self, state: MatchingState) -> MatchingState:
        """Load the users/ snapshot."""

        if state.get("error"):
            return state

        try:
            self._log_node_execution("query_candidates", state)
            users = self.store.get(USERS_PATH)
            return with_state(state, users=users if isinstance(users, dict) else {})
        except StoreUnavailableError as exc:
            self._log_node_error("query_candidates", exc)
            return with_state(
                state,
                error="Failed to query candidates. Returning empty matches.",
                users={},
            )

    def node_score_matches(self, state: MatchingState) -> MatchingState:
        """Filter, score and rank candidates."""

        if state.get("error"):
            return state

        try:
            self._log_node_execution("score_matches", state)
            profile = MatchProfile.model_validate(state["user_profile"])
            results = match_users(
                profile, state.get("users", {}), now_ms=state.get("now_ms")
            )
        except Exception as exc:
            self._log_node_error("score_matches", exc)
            return with_state(
                state, error="Scoring failed. Returning empty matches.", matches=[]
            )

        matches = [
            {
                "user": result.user.model_dump(by_alias=True),
                "distance": result.distance,
                "distanceLabel": format_distance(result.distance / 1000),
                "score": round(result.score, 4),
            }
            for result in results
        ]
        logger.debug("score_matches result=%s", len(matches))
        return with_state(state, matches=matches)

    def node_finalize_response(self, state: MatchingState) -> MatchingState:
        """Construct response metadata."""

        metadata = {
            "success": not state.get("error"),
            "error": state.get("error"),
            "total_candidates": len(state.get("users") or {}),
            "match_count": len(state.get("matches") or []),
        }
        return with_state(
            state,
            users={},
            matches=[] if state.get("error") else state.get("matches") or [],
            response_metadata=metadata,
        )


def create_matching_graph(store=None):
    """Build and compile the matching graph for server usage."""

    graph_builder = MatchingGraph(timeout=config.GRAPH_TIMEOUT, store=store)
    return graph_builder.compile()
