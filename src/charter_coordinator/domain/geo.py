"""Great-circle helpers for tracking routes."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


def valid_coordinates(latitude: float, longitude: float) -> bool:
    return (
        math.isfinite(latitude)
        and math.isfinite(longitude)
        and -90.0 <= latitude <= 90.0
        and -180.0 <= longitude <= 180.0
    )


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def route_distance_km(points: Sequence[tuple[float, float]]) -> float:
    """Sum of leg distances along the points in the given order."""
    return sum(
        haversine_km(*points[i - 1], *points[i]) for i in range(1, len(points))
    )


@dataclass(frozen=True)
class Bounds:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def center(self) -> tuple[float, float]:
        return ((self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2)


def route_bounds(points: Sequence[tuple[float, float]]) -> Bounds:
    if not points:
        return Bounds(0.0, 0.0, 0.0, 0.0)
    lats = [lat for lat, _ in points]
    lngs = [lng for _, lng in points]
    return Bounds(min(lats), max(lats), min(lngs), max(lngs))
