"""Spherical geometry helpers for proximity search."""
from __future__ import annotations

import math
from typing import NamedTuple

EARTH_RADIUS_M = 6_371_008.8


class Point(NamedTuple):
    """Geographic point, longitude first."""

    longitude: float
    latitude: float

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.longitude)
            and math.isfinite(self.latitude)
            and -180.0 <= self.longitude <= 180.0
            and -90.0 <= self.latitude <= 90.0
        )


class BoundingBox(NamedTuple):
    min_lat: float
    max_lat: float
    # One or two longitude ranges; two when the box crosses the antimeridian.
    lon_ranges: tuple[tuple[float, float], ...]


def haversine_m(a: Point, b: Point) -> float:
    """Return great-circle distance between two points in meters."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    x = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(x)))


def bounding_box(origin: Point, radius_m: float) -> BoundingBox:
    """Smallest lat/lon box containing every point within ``radius_m``.

    The box is a superset of the search circle: callers must still filter
    candidates by exact distance.
    """
    angular = radius_m / EARTH_RADIUS_M
    delta_lat = math.degrees(angular)
    min_lat = origin.latitude - delta_lat
    max_lat = origin.latitude + delta_lat

    if min_lat <= -90.0 or max_lat >= 90.0:
        # Circle contains a pole: every longitude is reachable.
        return BoundingBox(
            min_lat=max(min_lat, -90.0),
            max_lat=min(max_lat, 90.0),
            lon_ranges=((-180.0, 180.0),),
        )

    ratio = math.sin(angular) / math.cos(math.radians(origin.latitude))
    delta_lon = math.degrees(math.asin(min(1.0, ratio)))
    min_lon = origin.longitude - delta_lon
    max_lon = origin.longitude + delta_lon
    if min_lon < -180.0:
        ranges = ((min_lon + 360.0, 180.0), (-180.0, max_lon))
    elif max_lon > 180.0:
        ranges = ((min_lon, 180.0), (-180.0, max_lon - 360.0))
    else:
        ranges = ((min_lon, max_lon),)
    return BoundingBox(min_lat=min_lat, max_lat=max_lat, lon_ranges=ranges)


__all__ = ["EARTH_RADIUS_M", "Point", "BoundingBox", "haversine_m", "bounding_box"]
