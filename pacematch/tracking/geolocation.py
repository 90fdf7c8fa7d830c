"""Platform geolocation contract.

Mirrors the W3C Geolocation API shape that device shims expose:
``get_current_position`` for one fix, ``watch_position`` / ``clear_watch``
for continuous updates. Error codes use the W3C numbering.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Protocol

PERMISSION_DENIED = 1
POSITION_UNAVAILABLE = 2
TIMEOUT = 3

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Location permission denied. Please allow location access in your device settings.",
    POSITION_UNAVAILABLE: "Location information unavailable.",
    TIMEOUT: "Location request timed out.",
}


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 10_000
    maximum_age_ms: int = 5_000

    def relaxed(self) -> "PositionOptions":
        """Fallback options used when retrying after a transient failure."""

        return replace(
            self,
            enable_high_accuracy=False,
            timeout_ms=self.timeout_ms * 2,
            maximum_age_ms=max(self.maximum_age_ms * 2, 30_000),
        )


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float
    accuracy: Optional[float] = None
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class PositionError:
    code: int
    message: str = ""

    @property
    def permission_denied(self) -> bool:
        return self.code == PERMISSION_DENIED

    def describe(self) -> str:
        return ERROR_MESSAGES.get(self.code) or self.message or "Unknown location error"


PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[PositionError], None]


class GeolocationProvider(Protocol):
    def get_current_position(self, options: PositionOptions) -> Position: ...

    def watch_position(
        self,
        options: PositionOptions,
        on_update: PositionCallback,
        on_error: ErrorCallback,
    ) -> Any: ...

    def clear_watch(self, watch_id: Any) -> None: ...
