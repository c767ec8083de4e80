"""Great-circle distance helpers for geofencing and radius search."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class BoundingBox:
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two (latitude, longitude) points in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_between(first: GeoPoint, second: GeoPoint) -> float:
    return haversine_distance_m(first.latitude, first.longitude, second.latitude, second.longitude)


def bounding_box(center: GeoPoint, radius_m: float) -> BoundingBox:
    """Coarse box containing every point within ``radius_m`` of ``center``.

    Used as an indexable pre-filter; callers must still apply the exact
    haversine check. The longitude span is bounded by the meridians
    tangent to the search circle, not by its east/west points.
    """
    angular_radius = radius_m / EARTH_RADIUS_M
    lat_delta = math.degrees(angular_radius)
    cos_lat = math.cos(math.radians(center.latitude))
    # A circle reaching a pole covers every longitude.
    ratio = math.sin(angular_radius) / cos_lat if cos_lat >= 1e-6 else 1.0
    if angular_radius >= math.pi / 2 or ratio >= 1.0:
        lon_delta = 180.0
    else:
        lon_delta = math.degrees(math.asin(ratio))
    return BoundingBox(
        min_latitude=max(-90.0, center.latitude - lat_delta),
        max_latitude=min(90.0, center.latitude + lat_delta),
        min_longitude=center.longitude - lon_delta,
        max_longitude=center.longitude + lon_delta,
    )
