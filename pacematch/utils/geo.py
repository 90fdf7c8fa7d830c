"""Geospatial utilities used for distance calculations."""

from __future__ import annotations

from math import atan2, cos, floor, isfinite, radians, sin, sqrt

EARTH_RADIUS_METERS = 6_371_000


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two lat/lng points in meters.

    Args:
        lat1: Latitude of the first point.
        lng1: Longitude of the first point.
        lat2: Latitude of the second point.
        lng2: Longitude of the second point.

    Returns:
        Distance in meters.

    Notes:
        The Haversine formula accounts for spherical distance and is accurate
        to a few meters at urban distances, well inside GPS error.
    """

    lat1_rad = radians(lat1)
    lng1_rad = radians(lng1)
    lat2_rad = radians(lat2)
    lng2_rad = radians(lng2)

    delta_lat = lat2_rad - lat1_rad
    delta_lng = lng2_rad - lng1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(
        delta_lng / 2
    ) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two lat/lng points in kilometers."""

    return haversine_meters(lat1, lng1, lat2, lng2) / 1000.0


def _usable(value: object) -> bool:
    # Zero is treated as "not set", matching how the store writes defaults.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isfinite(value) and value != 0


def has_coordinates(lat: object, lng: object) -> bool:
    """True when both values are usable, non-zero coordinates."""

    return _usable(lat) and _usable(lng)


def calculate_distance(
    lat1: float | None,
    lng1: float | None,
    lat2: float | None,
    lng2: float | None,
) -> float | None:
    """Distance in kilometers, or None when the points cannot be compared.

    Any missing, zero, NaN or non-numeric coordinate yields None. Callers
    treat None as "exclude", never as an error.
    """

    if not (has_coordinates(lat1, lng1) and has_coordinates(lat2, lng2)):
        return None

    return haversine_km(lat1, lng1, lat2, lng2)


def format_distance(distance_km: float | None) -> str:
    """Format a distance for display: "Unknown", "850m" or "2.3km"."""

    if distance_km is None:
        return "Unknown"

    if distance_km < 1:
        return f"{floor(distance_km * 1000 + 0.5)}m"
    return f"{distance_km:.1f}km"
