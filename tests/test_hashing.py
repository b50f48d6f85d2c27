"""Tests for location and source identifiers."""

import hashlib

import pytest

from weathershield.core.errors import InvalidCoordinates
from weathershield.core.hashing import (
    canonical_json,
    digest,
    location_id,
    location_id_from_micro,
    source_id,
    to_microdegrees,
)


class TestCanonicalJson:
    """Test deterministic JSON serialization."""

    def test_sorted_keys(self):
        assert canonical_json({"z": 1, "a": 2, "m": 3}) == '{"a":2,"m":3,"z":1}'

    def test_no_whitespace(self):
        assert " " not in canonical_json({"key": "value"})


class TestMicrodegrees:
    """Test coordinate rounding."""

    def test_whole_degrees(self):
        assert to_microdegrees(41.9) == 41_900_000
        assert to_microdegrees(-93.1) == -93_100_000

    def test_rounds_to_nearest(self):
        assert to_microdegrees(12.3456789) == 12_345_679
        assert to_microdegrees(12.3456781) == 12_345_678

    def test_symmetric_around_zero(self):
        assert to_microdegrees(-12.3456789) == -to_microdegrees(12.3456789)

    def test_sub_microdegree_noise_ignored(self):
        assert to_microdegrees(41.9000001) == 41_900_000

    def test_nan_rejected(self):
        with pytest.raises(InvalidCoordinates):
            to_microdegrees(float("nan"))


class TestLocationId:
    """Test the location identifier used as the cross-component join key."""

    def test_deterministic(self):
        assert location_id(41.9, -93.1) == location_id(41.9, -93.1)

    def test_matches_microdegree_form(self):
        assert location_id(41.9, -93.1) == location_id_from_micro(41_900_000, -93_100_000)

    def test_distinct_locations_differ(self):
        assert location_id(41.9, -93.1) != location_id(31.1, 75.3)

    def test_coordinate_order_matters(self):
        assert location_id(10.0, 20.0) != location_id(20.0, 10.0)

    def test_rounding_collapses_nearby_points(self):
        assert location_id(41.9, -93.1) == location_id(41.9000001, -93.1000002)

    def test_sha256_of_canonical_coordinates(self):
        expected = hashlib.sha256(b'{"lat":41900000,"lon":-93100000}').hexdigest()
        assert location_id(41.9, -93.1) == expected

    @pytest.mark.parametrize("lat, lon", [(90.0, 180.0), (-90.0, -180.0)])
    def test_bounds_inclusive(self, lat, lon):
        assert location_id(lat, lon)

    @pytest.mark.parametrize("lat, lon", [(90.5, 0.0), (-91.0, 0.0), (0.0, 180.1), (0.0, -200.0)])
    def test_out_of_range_rejected(self, lat, lon):
        with pytest.raises(InvalidCoordinates):
            location_id(lat, lon)

    @pytest.mark.parametrize(
        "lat, lon",
        [(float("nan"), 0.0), (0.0, float("nan")), (float("inf"), 0.0), (0.0, float("-inf"))],
    )
    def test_non_finite_rejected(self, lat, lon):
        with pytest.raises(InvalidCoordinates):
            location_id(lat, lon)


class TestSourceId:

    def test_stable(self):
        assert source_id("OpenWeatherMap") == source_id("OpenWeatherMap")

    def test_sha256_of_canonical_name(self):
        expected = hashlib.sha256(b'{"source":"synthetic"}').hexdigest()
        assert source_id("synthetic") == expected

    def test_sources_differ(self):
        assert source_id("OpenWeatherMap") != source_id("synthetic")

    def test_not_confused_with_locations(self):
        assert source_id("x") != digest({"lat": 0, "lon": 0})
