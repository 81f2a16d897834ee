"""Tests for haversine distance and distance presentation."""
import math
import pytest
from sgbus.data.geo import (
    EARTH_RADIUS_KM,
    Coordinate,
    DistanceBucket,
    distance_between,
    distance_bucket,
    format_distance,
    haversine_distance_km,
)

BUGIS = Coordinate(1.299306, 103.854694)
ORCHARD = Coordinate(1.304833, 103.831833)
TAMPINES = Coordinate(1.354028, 103.942694)


def test_same_point_zero_distance():
    assert haversine_distance_km(1.3, 103.85, 1.3, 103.85) == 0.0
    assert distance_between(BUGIS, BUGIS) == 0.0


def test_antipodal_roughly_half_circumference():
    d = haversine_distance_km(0.0, 0.0, 0.0, 180.0)
    expected = math.pi * EARTH_RADIUS_KM
    assert abs(d - expected) < 1.0


def test_known_distance_bugis_orchard():
    # Bugis Junction to Orchard Rd is about 2.6 km
    d = distance_between(BUGIS, ORCHARD)
    assert 2.0 < d < 3.2


def test_one_hundredth_degree_latitude_is_about_1_11_km():
    d = haversine_distance_km(1.3000, 103.8500, 1.3100, 103.8500)
    assert d == pytest.approx(1.112, abs=0.005)


def test_symmetry():
    assert distance_between(BUGIS, TAMPINES) == pytest.approx(distance_between(TAMPINES, BUGIS))


@pytest.mark.parametrize(
    "a, b, c",
    [
        (BUGIS, ORCHARD, TAMPINES),
        (ORCHARD, TAMPINES, BUGIS),
        (Coordinate(0, 0), Coordinate(45, 90), Coordinate(-30, 179)),
    ],
)
def test_triangle_inequality(a, b, c):
    assert distance_between(a, c) <= distance_between(a, b) + distance_between(b, c) + 1e-9


@pytest.mark.parametrize("lat, lng", [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.1), (0.0, -181.0)])
def test_coordinate_rejects_out_of_range(lat, lng):
    with pytest.raises(ValueError):
        Coordinate(lat, lng)


def test_coordinate_accepts_bounds():
    Coordinate(90.0, 180.0)
    Coordinate(-90.0, -180.0)


@pytest.mark.parametrize(
    "km, label",
    [
        (0.0, "0m"),
        (0.35, "350m"),
        (0.0625, "63m"),
        (0.9994, "999m"),
        (1.0, "1.00km"),
        (1.234, "1.23km"),
        (12.5, "12.50km"),
    ],
)
def test_format_distance(km, label):
    assert format_distance(km) == label


@pytest.mark.parametrize(
    "km, bucket",
    [
        (0.0, DistanceBucket.NEAR),
        (0.5, DistanceBucket.NEAR),
        (0.51, DistanceBucket.MODERATE),
        (1.0, DistanceBucket.MODERATE),
        (1.01, DistanceBucket.FAR),
    ],
)
def test_distance_bucket(km, bucket):
    assert distance_bucket(km) is bucket
