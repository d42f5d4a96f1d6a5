"""Unit tests for the haversine distance and bounding-box helpers."""
import math

import pytest

from tandem.utils.geo import EARTH_RADIUS_KM, bounding_box, haversine_km


class TestHaversine:

    def test_same_point_is_zero(self):
        assert haversine_km(60.1699, 24.9384, 60.1699, 24.9384) == pytest.approx(0.0)

    def test_one_degree_of_latitude(self):
        """One degree along a meridian is R·π/180 ≈ 111.19 km."""
        d = haversine_km(0.0, 0.0, 1.0, 0.0)
        assert d == pytest.approx(EARTH_RADIUS_KM * math.pi / 180, rel=1e-9)

    def test_helsinki_to_tampere(self):
        d = haversine_km(60.1699, 24.9384, 61.4978, 23.7610)
        assert 155 < d < 166

    def test_symmetric(self):
        a = haversine_km(60.1699, 24.9384, 65.0121, 25.4651)
        b = haversine_km(65.0121, 25.4651, 60.1699, 24.9384)
        assert a == pytest.approx(b)


class TestBoundingBox:

    def test_box_contains_radius(self):
        lat, lon, radius = 60.1699, 24.9384, 25.0
        min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
        assert min_lat < lat < max_lat
        assert min_lon < lon < max_lon
        # a point due north at exactly the radius sits on the latitude bound
        north = lat + math.degrees(radius / EARTH_RADIUS_KM)
        assert north == pytest.approx(max_lat)

    def test_points_inside_radius_fall_inside_box(self):
        lat, lon, radius = 60.1699, 24.9384, 50.0
        min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
        # due east: longitude offset widest at this latitude
        for dlon in (0.1, 0.5, 0.85):
            if haversine_km(lat, lon, lat, lon + dlon) <= radius:
                assert min_lon <= lon + dlon <= max_lon

    def test_near_pole_drops_longitude_bounds(self):
        min_lat, max_lat, min_lon, max_lon = bounding_box(89.99, 10.0, 50.0)
        assert max_lat == 90.0
        assert min_lon is None and max_lon is None

    def test_antimeridian_drops_longitude_bounds(self):
        _, _, min_lon, max_lon = bounding_box(0.0, 179.9, 50.0)
        assert min_lon is None and max_lon is None
