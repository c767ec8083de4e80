from __future__ import annotations

import math

import pytest

from moveup.shared.geo import (
    EARTH_RADIUS_M,
    GeoPoint,
    bounding_box,
    distance_between,
    haversine_distance_m,
)


def test_distance_to_self_is_zero() -> None:
    assert haversine_distance_m(52.52, 13.405, 52.52, 13.405) == 0


def test_one_degree_of_latitude() -> None:
    expected = math.pi * EARTH_RADIUS_M / 180
    assert haversine_distance_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-9)


def test_distance_is_symmetric() -> None:
    berlin = GeoPoint(latitude=52.5200, longitude=13.4050)
    paris = GeoPoint(latitude=48.8566, longitude=2.3522)

    assert distance_between(berlin, paris) == pytest.approx(distance_between(paris, berlin))
    assert distance_between(berlin, paris) == pytest.approx(877_000, rel=0.01)


def test_small_offsets_are_meter_accurate() -> None:
    origin = GeoPoint(latitude=40.0, longitude=-3.7)
    north_200m = GeoPoint(latitude=40.0 + 200 / (math.pi * EARTH_RADIUS_M / 180), longitude=-3.7)

    assert distance_between(origin, north_200m) == pytest.approx(200.0, abs=0.01)


def test_bounding_box_contains_radius() -> None:
    center = GeoPoint(latitude=45.0, longitude=7.0)
    box = bounding_box(center, 5_000)

    north = GeoPoint(latitude=box.max_latitude, longitude=center.longitude)
    east = GeoPoint(latitude=center.latitude, longitude=box.max_longitude)
    assert distance_between(center, north) == pytest.approx(5_000, rel=1e-6)
    assert distance_between(center, east) >= 5_000


def test_bounding_box_near_pole_spans_all_longitudes() -> None:
    box = bounding_box(GeoPoint(latitude=90.0, longitude=0.0), 1_000)

    assert box.max_latitude == 90.0
    assert box.min_longitude == -180.0
    assert box.max_longitude == 180.0


def destination(origin: GeoPoint, bearing_degrees: float, distance_m: float) -> GeoPoint:
    angular = distance_m / EARTH_RADIUS_M
    phi1 = math.radians(origin.latitude)
    bearing = math.radians(bearing_degrees)
    phi2 = math.asin(
        math.sin(phi1) * math.cos(angular) + math.cos(phi1) * math.sin(angular) * math.cos(bearing),
    )
    d_lambda = math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(phi1),
        math.cos(angular) - math.sin(phi1) * math.sin(phi2),
    )
    return GeoPoint(latitude=math.degrees(phi2), longitude=origin.longitude + math.degrees(d_lambda))


@pytest.mark.parametrize("latitude", [0.0, 45.0, 68.0, -52.0])
def test_bounding_box_keeps_every_point_on_the_circle(latitude: float) -> None:
    center = GeoPoint(latitude=latitude, longitude=7.0)
    radius_m = 50_000
    box = bounding_box(center, radius_m)

    for bearing in range(0, 360, 5):
        edge = destination(center, float(bearing), radius_m * (1 - 1e-9))
        assert box.min_latitude <= edge.latitude <= box.max_latitude
        assert box.min_longitude <= edge.longitude <= box.max_longitude


def test_bounding_box_longitude_span_is_tangent_to_circle() -> None:
    center = GeoPoint(latitude=60.0, longitude=10.0)
    box = bounding_box(center, 100_000)

    widest = max(destination(center, bearing / 10, 100_000).longitude for bearing in range(0, 1800))
    assert box.max_longitude == pytest.approx(widest, abs=1e-5)
    assert box.max_longitude >= widest - 1e-9


def test_circle_reaching_the_pole_spans_all_longitudes() -> None:
    box = bounding_box(GeoPoint(latitude=89.99, longitude=25.0), 5_000)

    assert box.max_latitude == 90.0
    assert box.max_longitude - box.min_longitude == 360.0
