"""Geospatial utilities used for candidate filtering and proximity scoring."""

from __future__ import annotations

from math import asin, atan2, cos, degrees, radians, sin, sqrt

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate great-circle distance between two lat/lon points in kilometres.

    Args:
        lat1: Latitude of the first point.
        lon1: Longitude of the first point.
        lat2: Latitude of the second point.
        lon2: Longitude of the second point.

    Returns:
        Distance in kilometres.
    """

    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    delta_lat = radians(lat2 - lat1)
    delta_lon = radians(lon2 - lon1)

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(
        delta_lon / 2
    ) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def bounding_box(
    lat: float, lon: float, radius_km: float
) -> tuple[float, float, float | None, float | None]:
    """Return ``(min_lat, max_lat, min_lon, max_lon)`` enclosing a radius.

    The box is a cheap pre-filter for SQL; callers still apply
    :func:`haversine_km` exactly.  The longitude bounds are ``None`` when the
    circle reaches a pole or crosses the antimeridian, in which case only the
    latitude band is usable.
    """

    angular = radius_km / EARTH_RADIUS_KM
    min_lat = lat - degrees(angular)
    max_lat = lat + degrees(angular)

    if min_lat <= -90.0 or max_lat >= 90.0:
        return max(min_lat, -90.0), min(max_lat, 90.0), None, None

    delta_lon = degrees(asin(min(1.0, sin(angular) / cos(radians(lat)))))
    min_lon = lon - delta_lon
    max_lon = lon + delta_lon
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, None, None

    return min_lat, max_lat, min_lon, max_lon
