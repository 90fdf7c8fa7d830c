"""Nearby-users graph: one filter pass over the current users/ snapshot."""

from __future__ import annotations

from math import isfinite

from langgraph.graph import StateGraph

from pacematch.config import config
from pacematch.graphs.base_graph import BaseGraph, with_state
from pacematch.state import NearbyState
from pacematch.tools.filter_tools import NearbyFilters, filter_nearby
from pacematch.tools.location_tools import USERS_PATH, get_user_location
from pacematch.utils.errors import InvalidInputError, StoreUnavailableError
from pacematch.utils.geo import format_distance, has_coordinates


def _radius_km(value) -> float:
    if value is None:
        return config.DEFAULT_NEARBY_RADIUS_KM
    try:
        radius = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"max_distance_km must be a number, got {value!r}") from exc
    if not isfinite(radius) or radius <= 0:
        raise InvalidInputError("max_distance_km must be a positive finite number")
    return radius


class NearbyGraph(BaseGraph):
    """Resolve caller location, load the snapshot, filter, respond."""

    def build_graph(self) -> StateGraph:
        graph = StateGraph(NearbyState)

        graph.add_node("resolve_location", self.node_resolve_location)
        graph.add_node("query_users", self.node_query_users)
        graph.add_node("filter_users", self.node_filter_users)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("resolve_location")
        graph.add_edge("resolve_location", "query_users")
        graph.add_edge("query_users", "filter_users")
        graph.add_edge("filter_users", "finalize_response")
        graph.set_finish_point("finalize_response")

        return graph

    def node_resolve_location(self, state: NearbyState) -> NearbyState:
        """Use the request position, or the caller's last stored one."""

        self._log_node_execution("resolve_location", state)
        if not state.get("user_id"):
            return with_state(state, error="user_id is required")

        if has_coordinates(state.get("lat"), state.get("lng")):
            return state

        try:
            record = get_user_location(self.store, state["user_id"])
        except StoreUnavailableError as exc:
            self._log_node_error("resolve_location", exc)
            return with_state(
                state, error="Store unavailable. Returning empty nearby list."
            )

        if record is None or not record.is_locatable:
            return with_state(state, error="No location available for user")
        return with_state(state, lat=record.lat, lng=record.lng)

    def node_query_users(self, state: NearbyState) -> NearbyState:
        """Load the users/ snapshot."""

        if state.get("error"):
            return state

        try:
            self._log_node_execution("query_users", state)
            users = self.store.get(USERS_PATH)
            return with_state(state, users=users if isinstance(users, dict) else {})
        except StoreUnavailableError as exc:
            self._log_node_error("query_users", exc)
            return with_state(
                state,
                error="Failed to query users. Returning empty nearby list.",
                users={},
            )

    def node_filter_users(self, state: NearbyState) -> NearbyState:
        """Run the nearby filter pipeline."""

        if state.get("error"):
            return state

        self._log_node_execution("filter_users", state)
        try:
            max_distance_km = _radius_km(state.get("max_distance_km"))
        except InvalidInputError as exc:
            self._log_node_error("filter_users", exc)
            return with_state(state, error=str(exc), nearby_users=[])

        filters = NearbyFilters(
            activity=state.get("activity_filter") or "all",
            gender=state.get("gender_filter") or "all",
            discovery=bool(state.get("discovery", True)),
        )
        candidates = filter_nearby(
            state.get("users", {}),
            state.get("lat"),
            state.get("lng"),
            max_distance_km,
            exclude_user_id=state["user_id"],
            filters=filters,
            now_ms=state.get("now_ms"),
        )
        nearby = [
            {
                **c.model_dump(by_alias=True),
                "distanceLabel": format_distance(c.distance),
            }
            for c in candidates
        ]
        return with_state(state, nearby_users=nearby)

    def node_finalize_response(self, state: NearbyState) -> NearbyState:
        """Drop the raw snapshot from the response and attach metadata."""

        metadata = {
            "success": not state.get("error"),
            "error": state.get("error"),
            "total_users": len(state.get("users") or {}),
            "nearby_count": len(state.get("nearby_users") or []),
        }
        return with_state(
            state,
            users={},
            nearby_users=state.get("nearby_users") or [],
            response_metadata=metadata,
        )


def create_nearby_graph(store=None):
    """Build and compile the nearby graph for server usage."""

    graph_builder = NearbyGraph(timeout=config.GRAPH_TIMEOUT, store=store)
    return graph_builder.compile()
