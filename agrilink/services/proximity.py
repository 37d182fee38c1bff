"""Nearby farmer search.

Candidates are narrowed with a range query over the (latitude, longitude)
index, then filtered and ordered by exact great-circle distance.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from agrilink.models import User
from agrilink.services.errors import InvalidArgumentError
from agrilink.services.geo import Point, bounding_box, haversine_m

ORIGIN_FROM_QUERY = "query"
ORIGIN_FROM_PROFILE = "profile"


@dataclass(frozen=True)
class SearchFilters:
    crop: str | None = None
    expertise: str | None = None
    equipment: str | None = None

    def matches(self, user: User) -> bool:
        if self.crop and self.crop not in (user.crops or []):
            return False
        if self.equipment and self.equipment not in (user.equipment or []):
            return False
        return True


class NearbyFarmer(NamedTuple):
    user: User
    distance_m: float


def resolve_origin(
    requester: User,
    longitude: float | None,
    latitude: float | None,
) -> tuple[Point, str]:
    """Pick the search origin and report where it came from.

    Both coordinates given: the query point. Neither given: the requester's
    stored location. Anything else is rejected.
    """
    if longitude is None and latitude is None:
        if not requester.has_location:
            raise InvalidArgumentError(
                "No search origin given and no stored location on profile"
            )
        return Point(requester.longitude, requester.latitude), ORIGIN_FROM_PROFILE
    if longitude is None or latitude is None:
        raise InvalidArgumentError("longitude and latitude must be given together")
    origin = Point(float(longitude), float(latitude))
    if not origin.is_valid():
        raise InvalidArgumentError("Coordinates out of range")
    return origin, ORIGIN_FROM_QUERY


def find_nearby(
    db: Session,
    *,
    origin: Point,
    max_distance_m: float,
    filters: SearchFilters,
    exclude_id: int,
) -> list[NearbyFarmer]:
    """Return identities within ``max_distance_m`` of ``origin``, nearest first."""
    if not origin.is_valid():
        raise InvalidArgumentError("Coordinates out of range")
    if not math.isfinite(max_distance_m) or max_distance_m < 0:
        raise InvalidArgumentError("maxDistance must be a non-negative number")

    box = bounding_box(origin, max_distance_m)
    stmt = select(User).where(
        User.id != exclude_id,
        User.latitude.is_not(None),
        User.longitude.is_not(None),
        User.latitude.between(box.min_lat, box.max_lat),
        or_(*(User.longitude.between(lo, hi) for lo, hi in box.lon_ranges)),
    )
    if filters.expertise:
        stmt = stmt.where(User.expertise == filters.expertise)

    found: list[NearbyFarmer] = []
    for user in db.scalars(stmt):
        if not filters.matches(user):
            continue
        distance = haversine_m(origin, Point(user.longitude, user.latitude))
        if distance <= max_distance_m:
            found.append(NearbyFarmer(user, distance))
    found.sort(key=lambda item: (item.distance_m, item.user.id))
    return found


__all__ = [
    "ORIGIN_FROM_QUERY",
    "ORIGIN_FROM_PROFILE",
    "SearchFilters",
    "NearbyFarmer",
    "resolve_origin",
    "find_nearby",
]
