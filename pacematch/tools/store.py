"""Realtime Database access by reference path.

The proximity code only needs four operations on the store: get, set
(full overwrite), remove and subscribe. ``Store`` names that contract and
``RealtimeStore`` implements it on top of ``firebase_admin.db``. Backend
failures are logged and re-raised as ``StoreUnavailableError`` so callers
handle one exception type.
"""

from __future__ import annotations

import os
import threading
from copy import deepcopy
from typing import Any, Callable, Protocol

import firebase_admin
from firebase_admin import credentials, db

from pacematch.config import config
from pacematch.utils.errors import StoreUnavailableError
from pacematch.utils.logging_config import logger

Unsubscribe = Callable[[], None]


class Store(Protocol):
    """Path-addressed document store."""

    def get(self, path: str) -> Any: ...

    def set(self, path: str, value: Any) -> None: ...

    def remove(self, path: str) -> None: ...

    def subscribe(
        self, path: str, on_change: Callable[[Any], None]
    ) -> Unsubscribe: ...


def _split(path: str) -> list[str]:
    return [part for part in path.strip("/").split("/") if part]


def apply_event(mirror: Any, event_type: str, path: str, data: Any) -> Any:
    """Apply one listener event to a local copy of the subscribed value.

    ``put`` replaces the value at ``path`` (None deletes it), ``patch``
    merges the given children into it. Returns the new root value.
    """

    parts = _split(path)
    if not parts:
        if event_type == "patch" and isinstance(mirror, dict) and isinstance(data, dict):
            merged = dict(mirror)
            for key, value in data.items():
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value
            return merged
        return data

    root = dict(mirror) if isinstance(mirror, dict) else {}
    node = root
    for part in parts[:-1]:
        child = node.get(part)
        child = dict(child) if isinstance(child, dict) else {}
        node[part] = child
        node = child

    leaf = parts[-1]
    if event_type == "patch" and isinstance(data, dict):
        current = node.get(leaf)
        current = dict(current) if isinstance(current, dict) else {}
        for key, value in data.items():
            if value is None:
                current.pop(key, None)
            else:
                current[key] = value
        node[leaf] = current
    elif data is None:
        node.pop(leaf, None)
    else:
        node[leaf] = data
    return root


class RealtimeStore:
    """``Store`` backed by the Firebase Realtime Database."""

    def __init__(self, database_url: str | None = None):
        self.database_url = database_url or config.FIREBASE_DATABASE_URL

    def _ref(self, path: str):
        return db.reference(path, url=self.database_url or None)

    def get(self, path: str) -> Any:
        try:
            return self._ref(path).get()
        except Exception as exc:
            logger.error("Failed to read %s: %s", path, str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def set(self, path: str, value: Any) -> None:
        try:
            self._ref(path).set(value)
        except Exception as exc:
            logger.error("Failed to write %s: %s", path, str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def remove(self, path: str) -> None:
        try:
            self._ref(path).delete()
        except Exception as exc:
            logger.error("Failed to remove %s: %s", path, str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def subscribe(self, path: str, on_change: Callable[[Any], None]) -> Unsubscribe:
        """Deliver the full value at ``path`` on every change.

        The listener streams incremental events; a local mirror turns them
        back into whole snapshots. If the listener cannot be opened or the
        stream fails, ``on_change`` receives ``{}`` once and the error is
        logged. The returned callable is idempotent.
        """

        lock = threading.Lock()
        state: dict[str, Any] = {"mirror": None, "registration": None, "closed": False}

        def _listener(event) -> None:
            with lock:
                if state["closed"]:
                    return
                state["mirror"] = apply_event(
                    state["mirror"], event.event_type, event.path, event.data
                )
                snapshot = deepcopy(state["mirror"]) or {}
            on_change(snapshot)

        def _unsubscribe() -> None:
            with lock:
                if state["closed"]:
                    return
                state["closed"] = True
                registration = state["registration"]
                state["registration"] = None
            if registration is not None:
                try:
                    registration.close()
                except Exception as exc:
                    logger.warning("Failed to close listener on %s: %s", path, str(exc))
            logger.debug("Unsubscribed from %s", path)

        try:
            registration = self._ref(path).listen(_listener)
        except Exception as exc:
            logger.error("Failed to listen to %s: %s", path, str(exc))
            on_change({})
            state["closed"] = True
            return _unsubscribe

        with lock:
            if state["closed"]:
                registration.close()
            else:
                state["registration"] = registration
        logger.debug("Subscribed to %s", path)
        return _unsubscribe


_store: RealtimeStore | None = None


def get_store() -> RealtimeStore:
    """Get the Realtime Database store, initializing Firebase lazily."""
    global _store

    if _store is not None:
        return _store

    try:
        if not firebase_admin._apps:
            cred_path = os.environ.get(
                "GOOGLE_APPLICATION_CREDENTIALS",
                config.GOOGLE_APPLICATION_CREDENTIALS,
            )
            if not cred_path:
                raise RuntimeError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not set"
                )

            cred = credentials.Certificate(cred_path)
            firebase_admin.initialize_app(
                cred,
                {
                    "databaseURL": config.FIREBASE_DATABASE_URL,
                    "projectId": config.FIREBASE_PROJECT_ID,
                },
            )

        _store = RealtimeStore(config.FIREBASE_DATABASE_URL)
        return _store

    except Exception as exc:
        logger.error("Failed to initialize Realtime Database: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc
