"""Continuous device location tracking with throttled write-back.

The first fix of a tracking session is written to users/{uid} right away so
other users see the caller as soon as possible. After that at most one
write happens per throttle interval; fixes in between only refresh
``last_known_location``.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from pacematch.config import config
from pacematch.tools.location_tools import (
    check_coordinates,
    now_ms,
    update_user_location,
)
from pacematch.tools.store import Store
from pacematch.tracking.geolocation import (
    GeolocationProvider,
    Position,
    PositionError,
    PositionOptions,
)
from pacematch.utils.errors import (
    InvalidInputError,
    LocationPermissionDeniedError,
    LocationUnavailableError,
    StoreUnavailableError,
)
from pacematch.utils.logging_config import logger

LocationCallback = Callable[[Position], None]
TrackerErrorCallback = Callable[[Exception], None]


class LocationTracker:
    def __init__(
        self,
        provider: GeolocationProvider,
        store: Store,
        user_id: str,
        *,
        visible: bool = True,
        throttle_ms: int | None = None,
        max_retries: int = 2,
        options: PositionOptions | None = None,
        on_location: Optional[LocationCallback] = None,
        on_error: Optional[TrackerErrorCallback] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.provider = provider
        self.store = store
        self.user_id = user_id
        self.visible = visible
        self.throttle_ms = (
            config.LOCATION_WRITE_THROTTLE_MS if throttle_ms is None else throttle_ms
        )
        self.max_retries = max_retries
        self.options = options or PositionOptions()
        self.on_location = on_location
        self.on_error = on_error
        self.clock = clock

        self.last_known_location: Optional[Position] = None
        self.error: Optional[str] = None
        self.permission_denied = False

        self._watch_id: Any = None
        self._active = False
        self._last_write_at: Optional[int] = None
        self._retries = 0
        self._lock = threading.RLock()

    @property
    def is_tracking(self) -> bool:
        return self._active

    def start(self) -> None:
        """Begin watching the device position. No-op when already tracking."""

        with self._lock:
            if self._active:
                return
            if self.permission_denied:
                logger.info("Location tracking not started - permission was denied")
                return
            self._active = True
            self._last_write_at = None
            self._retries = 0
            self.error = None
            self._watch(self.options)
        logger.info("Location tracking started")

    def stop(self) -> None:
        """Cancel the platform watch. Safe to call repeatedly."""

        with self._lock:
            was_active = self._active
            self._active = False
            self._clear_watch()
            self._last_write_at = None
        if was_active:
            logger.info("Location tracking stopped")

    def _watch(self, options: PositionOptions) -> None:
        self._watch_id = self.provider.watch_position(
            options, self._on_position, self._on_position_error
        )

    def _clear_watch(self) -> None:
        if self._watch_id is None:
            return
        watch_id, self._watch_id = self._watch_id, None
        try:
            self.provider.clear_watch(watch_id)
        except Exception as exc:
            logger.warning("Failed to clear location watch: %s", str(exc))

    def handle_position(self, position: Position) -> bool:
        """Apply one fix. Returns True when it was written to the store.

        Raises:
            InvalidInputError: If the fix carries unusable coordinates.
            StoreUnavailableError: If the location write fails.
        """

        check_coordinates(position.lat, position.lng)

        now = self.clock()
        with self._lock:
            self.last_known_location = position
            self.error = None
            self._retries = 0
            previous_write_at = self._last_write_at
            due = (
                previous_write_at is None
                or now - previous_write_at >= self.throttle_ms
            )
            if due:
                self._last_write_at = now

        if self.on_location is not None:
            self.on_location(position)

        if not due:
            return False

        try:
            update_user_location(
                self.store,
                self.user_id,
                position.lat,
                position.lng,
                self.visible,
                timestamp_ms=now,
            )
        except StoreUnavailableError:
            # A failed write must not use up the throttle slot.
            with self._lock:
                if self._last_write_at == now:
                    self._last_write_at = previous_write_at
            raise
        return True

    def _on_position(self, position: Position) -> None:
        if not self._active:
            return
        try:
            self.handle_position(position)
        except (InvalidInputError, StoreUnavailableError) as exc:
            logger.error("Error updating user location: %s", str(exc))
            self._report(exc)

    def _on_position_error(self, err: PositionError) -> None:
        with self._lock:
            if not self._active:
                return

            if err.permission_denied:
                self.permission_denied = True
                self.error = err.describe()
                self._active = False
                self._clear_watch()
                failure: Exception = LocationPermissionDeniedError(self.error)
                logger.warning("Location permission denied - tracking stopped")
            elif self._retries < self.max_retries:
                self._retries += 1
                logger.info(
                    "Transient location error (%s), retry %s/%s with relaxed options",
                    err.describe(),
                    self._retries,
                    self.max_retries,
                )
                self._clear_watch()
                self._watch(self.options.relaxed())
                return
            else:
                self.error = err.describe()
                failure = LocationUnavailableError(self.error)
                logger.error("Location unavailable after %s retries", self._retries)

        self._report(failure)

    def _report(self, exc: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(exc)
        except Exception:
            logger.exception("Location error callback failed")
