"""Typed records parsed from Realtime Database snapshots.

Raw snapshots are loosely shaped camelCase dicts. Everything is validated
here, at the parsing boundary: bad or missing fields become explicit
optional values with defaults so the filter and scoring code never has to
second-guess the data.
"""

from __future__ import annotations

from math import isfinite
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pacematch.utils.logging_config import logger

Activity = Literal["running", "cycling", "walking"]
FitnessLevel = Literal["beginner", "intermediate", "pro"]
RadiusPreference = Literal["nearby", "normal", "wide"]
SearchFilter = Literal["beginner", "intermediate", "pro", "all"]

ACTIVITIES: tuple[str, ...] = ("running", "cycling", "walking")
FITNESS_LEVELS: tuple[str, ...] = ("beginner", "intermediate", "pro")
RADIUS_PREFERENCES: tuple[str, ...] = ("nearby", "normal", "wide")


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if isfinite(number) else None


def _choice(value: Any, choices: tuple[str, ...]) -> str | None:
    return value if isinstance(value, str) and value in choices else None


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class VisibilitySettings(_Record):
    """Candidate-side policy: which caller fitness levels may find this user."""

    visible_to_all_levels: bool = Field(default=True, alias="visibleToAllLevels")
    allowed_levels: list[FitnessLevel] = Field(
        default_factory=lambda: list(FITNESS_LEVELS), alias="allowedLevels"
    )

    @field_validator("visible_to_all_levels", mode="before")
    @classmethod
    def _default_visible(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else True

    @field_validator("allowed_levels", mode="before")
    @classmethod
    def _known_levels(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return list(FITNESS_LEVELS)
        return [level for level in value if level in FITNESS_LEVELS]

    def allows(self, level: str) -> bool:
        return self.visible_to_all_levels or level in self.allowed_levels


class UserLocationRecord(_Record):
    """One entry of users/{userId}. Unknown profile fields are kept as extras."""

    lat: Optional[float] = None
    lng: Optional[float] = None
    visible: bool = True
    profile_visible: bool = Field(default=True, alias="profileVisible")
    timestamp: Optional[int] = None
    activity: Optional[Activity] = None
    gender: Optional[str] = None
    fitness_level: FitnessLevel = Field(default="intermediate", alias="fitnessLevel")
    pace: Optional[float] = None
    visibility: VisibilitySettings = Field(default_factory=VisibilitySettings)
    search_filter: SearchFilter = Field(default="all", alias="searchFilter")
    radius_preference: RadiusPreference = Field(
        default="normal", alias="radiusPreference"
    )

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def _coordinate(cls, value: Any) -> float | None:
        return _as_float(value)

    @field_validator("visible", "profile_visible", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        # Only an explicit False hides a user.
        return value is not False

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> int | None:
        number = _as_float(value)
        return int(number) if number is not None and number > 0 else None

    @field_validator("activity", mode="before")
    @classmethod
    def _activity(cls, value: Any) -> str | None:
        return _choice(value, ACTIVITIES)

    @field_validator("gender", mode="before")
    @classmethod
    def _gender(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None

    @field_validator("fitness_level", mode="before")
    @classmethod
    def _fitness_level(cls, value: Any) -> str:
        return _choice(value, FITNESS_LEVELS) or "intermediate"

    @field_validator("pace", mode="before")
    @classmethod
    def _pace(cls, value: Any) -> float | None:
        number = _as_float(value)
        return number if number is not None and number > 0.001 else None

    @field_validator("visibility", mode="before")
    @classmethod
    def _visibility(cls, value: Any) -> Any:
        return value if isinstance(value, (Mapping, VisibilitySettings)) else {}

    @field_validator("search_filter", mode="before")
    @classmethod
    def _search_filter(cls, value: Any) -> str:
        return _choice(value, FITNESS_LEVELS + ("all",)) or "all"

    @field_validator("radius_preference", mode="before")
    @classmethod
    def _radius_preference(cls, value: Any) -> str:
        return _choice(value, RADIUS_PREFERENCES) or "normal"

    @property
    def is_locatable(self) -> bool:
        return self.lat is not None and self.lng is not None


class Candidate(UserLocationRecord):
    """A user record with the distance computed during a filter pass."""

    id: str
    distance: float
    """Distance from the caller in kilometers."""


class MatchedUser(UserLocationRecord):
    uid: str


class MatchResult(BaseModel):
    user: MatchedUser
    distance: float
    """Distance from the caller in meters."""
    score: float


class MatchProfile(_Record):
    """The caller's side of a matching request."""

    uid: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    activity: Activity = "running"
    fitness_level: FitnessLevel = Field(default="intermediate", alias="fitnessLevel")
    pace: Optional[float] = None
    visibility: VisibilitySettings = Field(default_factory=VisibilitySettings)
    search_filter: SearchFilter = Field(default="all", alias="searchFilter")
    radius_preference: RadiusPreference = Field(
        default="normal", alias="radiusPreference"
    )
    profile_visible: bool = Field(default=True, alias="profileVisible")

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def _coordinate(cls, value: Any) -> float | None:
        return _as_float(value)

    @field_validator("pace", mode="before")
    @classmethod
    def _pace(cls, value: Any) -> float | None:
        number = _as_float(value)
        return number if number is not None and number > 0.001 else None

    @field_validator("profile_visible", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return value is not False

    @field_validator("fitness_level", mode="before")
    @classmethod
    def _fitness_level(cls, value: Any) -> str:
        return _choice(value, FITNESS_LEVELS) or "intermediate"

    @field_validator("search_filter", mode="before")
    @classmethod
    def _search_filter(cls, value: Any) -> str:
        return _choice(value, FITNESS_LEVELS + ("all",)) or "all"

    @field_validator("radius_preference", mode="before")
    @classmethod
    def _radius_preference(cls, value: Any) -> str:
        return _choice(value, RADIUS_PREFERENCES) or "normal"

    @field_validator("activity", mode="before")
    @classmethod
    def _activity(cls, value: Any) -> str:
        return _choice(value, ACTIVITIES) or "running"

    @field_validator("visibility", mode="before")
    @classmethod
    def _visibility(cls, value: Any) -> Any:
        return value if isinstance(value, (Mapping, VisibilitySettings)) else {}


class EncounterRecord(_Record):
    """One entry of encounteredUsers/{observerId}/{candidateId}."""

    user_id: str = Field(alias="userId")
    encountered_at: int = Field(alias="encounteredAt")
    last_seen_at: int = Field(alias="lastSeenAt")
    distance: float
    lat: float
    lng: float
    count: int = 1

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_user_record(user_id: str, raw: Any) -> UserLocationRecord:
    """Parse one snapshot entry. Malformed entries come back unlocatable."""

    if isinstance(raw, UserLocationRecord):
        return raw
    if not isinstance(raw, Mapping):
        logger.debug("User %s ignored - snapshot entry is not a mapping", user_id)
        return UserLocationRecord()
    try:
        return UserLocationRecord.model_validate(dict(raw))
    except ValidationError as exc:
        logger.debug("User %s treated as unlocatable - %s", user_id, exc)
        return UserLocationRecord()


def parse_user_snapshot(raw: Any) -> dict[str, UserLocationRecord]:
    """Parse a users/ snapshot ({userId: dict}) into typed records."""

    if not isinstance(raw, Mapping):
        return {}
    return {str(uid): parse_user_record(str(uid), data) for uid, data in raw.items()}
