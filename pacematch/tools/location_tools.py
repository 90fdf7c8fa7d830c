"""User location reads and writes against users/{userId}.

Writes are read-modify-write: ``set`` overwrites the whole document, so the
existing profile fields are read first and carried over.
"""

from __future__ import annotations

import time
from math import isfinite
from typing import Any, Callable

from pacematch.models import UserLocationRecord, parse_user_record, parse_user_snapshot
from pacematch.tools.store import Store, Unsubscribe
from pacematch.utils.errors import InvalidInputError
from pacematch.utils.logging_config import logger

USERS_PATH = "users"


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


def user_path(user_id: str) -> str:
    return f"{USERS_PATH}/{user_id}"


def check_coordinates(lat: Any, lng: Any) -> None:
    for name, value, bound in (("lat", lat, 90), ("lng", lng, 180)):
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or not isfinite(value)
            or abs(value) > bound
        ):
            raise InvalidInputError(f"Invalid {name}: {value!r}")


def _merge_user_doc(store: Store, user_id: str, updates: dict[str, Any]) -> dict:
    existing = store.get(user_path(user_id))
    merged = dict(existing) if isinstance(existing, dict) else {}
    merged.update(updates)
    store.set(user_path(user_id), merged)
    return merged


def update_user_location(
    store: Store,
    user_id: str,
    lat: float,
    lng: float,
    visible: bool = True,
    *,
    timestamp_ms: int | None = None,
) -> dict:
    """Write the user's position, keeping every other field of the document.

    Raises:
        InvalidInputError: If the coordinates are not finite degrees.
        StoreUnavailableError: If the read or the write fails. Location
            writes are not swallowed; the caller decides how to report them.
    """

    check_coordinates(lat, lng)
    logger.debug("Location update initiated for user")
    doc = _merge_user_doc(
        store,
        user_id,
        {
            "lat": lat,
            "lng": lng,
            "visible": visible,
            "timestamp": timestamp_ms if timestamp_ms is not None else now_ms(),
        },
    )
    logger.debug("Location updated successfully")
    return doc


def update_user_visibility(
    store: Store, user_id: str, visible: bool, *, timestamp_ms: int | None = None
) -> dict:
    """Toggle workout visibility for a user."""

    return _merge_user_doc(
        store,
        user_id,
        {
            "visible": visible,
            "timestamp": timestamp_ms if timestamp_ms is not None else now_ms(),
        },
    )


def get_user_location(store: Store, user_id: str) -> UserLocationRecord | None:
    """One-shot read of a user's record. None when the user has no document."""

    raw = store.get(user_path(user_id))
    if raw is None:
        return None
    return parse_user_record(user_id, raw)


def get_all_users(store: Store) -> dict[str, UserLocationRecord]:
    """One-shot read of the whole users/ snapshot, parsed."""

    return parse_user_snapshot(store.get(USERS_PATH))


def listen_to_all_users(
    store: Store, callback: Callable[[dict[str, UserLocationRecord]], None]
) -> Unsubscribe:
    """Subscribe to users/ and deliver parsed snapshots."""

    logger.debug("Setting up listener for all users")

    def _on_change(raw: Any) -> None:
        users = parse_user_snapshot(raw)
        logger.debug("Users listener triggered - %s user(s)", len(users))
        callback(users)

    return store.subscribe(USERS_PATH, _on_change)
