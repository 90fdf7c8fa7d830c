"""
Unit tests for snapshot parsing.

Malformed entries must parse as unlocatable records, never raise, and
never abort parsing of the rest of the snapshot.
"""

import math

from pacematch.models import (
    MatchProfile,
    UserLocationRecord,
    VisibilitySettings,
    parse_user_record,
    parse_user_snapshot,
)


class TestUserLocationRecord:
    def test_defaults_when_fields_absent(self):
        record = UserLocationRecord.model_validate({})
        assert record.lat is None and record.lng is None
        assert record.visible is True
        assert record.profile_visible is True
        assert record.timestamp is None
        assert record.fitness_level == "intermediate"
        assert record.search_filter == "all"
        assert record.radius_preference == "normal"
        assert record.visibility.visible_to_all_levels is True
        assert not record.is_locatable

    def test_camel_case_fields(self):
        record = UserLocationRecord.model_validate(
            {
                "lat": 1.5,
                "lng": 2.5,
                "profileVisible": False,
                "fitnessLevel": "pro",
                "searchFilter": "beginner",
                "radiusPreference": "wide",
                "visibility": {"visibleToAllLevels": False, "allowedLevels": ["pro"]},
            }
        )
        assert record.profile_visible is False
        assert record.fitness_level == "pro"
        assert record.search_filter == "beginner"
        assert record.radius_preference == "wide"
        assert record.visibility.allowed_levels == ["pro"]

    def test_null_visibility_flags_default_to_visible(self):
        record = UserLocationRecord.model_validate({"visible": None, "profileVisible": None})
        assert record.visible is True
        assert record.profile_visible is True

    def test_invalid_values_become_defaults(self):
        record = UserLocationRecord.model_validate(
            {
                "lat": "north",
                "lng": math.nan,
                "timestamp": "yesterday",
                "activity": "swimming",
                "fitnessLevel": "legend",
                "pace": -3,
                "visibility": "everyone",
            }
        )
        assert record.lat is None
        assert record.lng is None
        assert record.timestamp is None
        assert record.activity is None
        assert record.fitness_level == "intermediate"
        assert record.pace is None
        assert record.visibility == VisibilitySettings()

    def test_numeric_strings_are_accepted(self):
        record = UserLocationRecord.model_validate({"lat": "1.25", "lng": "3.5"})
        assert record.lat == 1.25
        assert record.is_locatable

    def test_extra_profile_fields_are_kept(self):
        record = UserLocationRecord.model_validate({"name": "Ana", "photoURL": "x"})
        assert record.model_dump()["name"] == "Ana"


class TestParseSnapshot:
    def test_non_mapping_entry_is_unlocatable(self):
        record = parse_user_record("u1", "garbage")
        assert not record.is_locatable

    def test_bad_entry_does_not_abort_others(self):
        users = parse_user_snapshot(
            {"good": {"lat": 1.0, "lng": 2.0}, "bad": ["not", "a", "dict"], "none": None}
        )
        assert set(users) == {"good", "bad", "none"}
        assert users["good"].is_locatable
        assert not users["bad"].is_locatable
        assert not users["none"].is_locatable

    def test_non_mapping_snapshot_is_empty(self):
        assert parse_user_snapshot(None) == {}
        assert parse_user_snapshot([1, 2]) == {}


class TestMatchProfile:
    def test_defaults(self):
        profile = MatchProfile.model_validate({"uid": "me"})
        assert profile.activity == "running"
        assert profile.fitness_level == "intermediate"
        assert profile.pace is None
        assert profile.profile_visible is True

    def test_unknown_activity_falls_back_to_running(self):
        profile = MatchProfile.model_validate({"uid": "me", "activity": "rowing"})
        assert profile.activity == "running"
