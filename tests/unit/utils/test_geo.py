"""
Unit tests for distance calculation and formatting.

Covers the properties the filter pipeline depends on:
  - symmetry and zero self-distance
  - None for missing, zero, NaN or non-numeric coordinates
  - accuracy at urban distances
"""

import math

import pytest
from pacematch.utils.geo import (
    calculate_distance,
    format_distance,
    haversine_km,
    haversine_meters,
    has_coordinates,
)

POINTS = [
    (40.7128, -74.0060),
    (51.5074, -0.1278),
    (-33.8688, 151.2093),
    (1.3521, 103.8198),
    (64.1466, -21.9426),
]


class TestCalculateDistance:
    @pytest.mark.parametrize("a", POINTS)
    @pytest.mark.parametrize("b", POINTS)
    def test_symmetric(self, a, b):
        assert calculate_distance(*a, *b) == pytest.approx(calculate_distance(*b, *a))

    @pytest.mark.parametrize("a", POINTS)
    def test_self_distance_is_zero(self, a):
        assert calculate_distance(*a, *a) == 0

    def test_returns_kilometers(self):
        # One degree of latitude is ~111.19 km on the mean-radius sphere.
        assert calculate_distance(10.0, 20.0, 11.0, 20.0) == pytest.approx(111.19, abs=0.01)

    def test_urban_distance_accuracy(self):
        # Two points ~1.1 km apart along a meridian.
        meters = haversine_meters(1.3521, 103.8198, 1.3621, 103.8198)
        assert meters == pytest.approx(1111.95, abs=1.0)

    @pytest.mark.parametrize(
        "coords",
        [
            (None, 10.0, 10.0, 10.0),
            (10.0, None, 10.0, 10.0),
            (10.0, 10.0, None, 10.0),
            (10.0, 10.0, 10.0, None),
            (0, 10.0, 10.0, 10.0),
            (10.0, 10.0, 10.0, 0.0),
            (math.nan, 10.0, 10.0, 10.0),
            ("10", 10.0, 10.0, 10.0),
            (True, 10.0, 10.0, 10.0),
        ],
    )
    def test_unusable_inputs_return_none(self, coords):
        assert calculate_distance(*coords) is None

    def test_haversine_km_matches_meters(self):
        assert haversine_km(40.0, -74.0, 40.01, -74.0) == pytest.approx(
            haversine_meters(40.0, -74.0, 40.01, -74.0) / 1000
        )

    def test_has_coordinates(self):
        assert has_coordinates(1.5, 2.5)
        assert not has_coordinates(1.5, None)
        assert not has_coordinates(0, 2.5)


class TestFormatDistance:
    def test_none_is_unknown(self):
        assert format_distance(None) == "Unknown"

    def test_under_one_km_uses_meters(self):
        assert format_distance(0.5) == "500m"
        assert format_distance(0.0424) == "42m"

    def test_half_meters_round_up(self):
        assert format_distance(0.0025) == "3m"
        assert format_distance(0.0005) == "1m"

    def test_zero_is_zero_meters(self):
        assert format_distance(0) == "0m"

    def test_one_km_and_above_uses_one_decimal(self):
        assert format_distance(1) == "1.0km"
        assert format_distance(2.345) == "2.3km"
        assert format_distance(111.19) == "111.2km"
