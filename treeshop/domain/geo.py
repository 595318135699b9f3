# treeshop/domain/geo.py
"""
Map measurement helpers (distance lines and area polygons).

Points are (latitude, longitude) pairs in decimal degrees.

`area()` treats lat/lon as planar coordinates and scales by a fixed number of
meters per degree taken at the first vertex. That flat-earth approximation is
fine for a backyard or a few acres; the error grows with polygon size and with
latitude, so do not use it for parcels spanning kilometers or near the poles.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

EARTH_RADIUS_M = 6_371_008.8  # mean earth radius
METERS_PER_DEGREE_LAT = 111_320.0
CLOSE_POLYGON_THRESHOLD_M = 30.0


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


PointLike = Union[Coordinate, Tuple[float, float], Sequence[float]]


def _coerce(points: Iterable[PointLike]) -> list[Tuple[float, float]]:
    out = []
    for p in points:
        if isinstance(p, Coordinate):
            out.append(p.as_tuple())
        else:
            lat, lon = p
            out.append((float(lat), float(lon)))
    return out


def great_circle_distance(a: PointLike, b: PointLike) -> float:
    """Haversine distance in meters between two points."""
    (lat1, lon1), (lat2, lon2) = _coerce([a, b])
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def distance(points: Iterable[PointLike], min_points: int = 2) -> Optional[float]:
    """Total length in meters of the path through `points`, or None if too short."""
    pts = _coerce(points)
    if len(pts) < max(2, min_points):
        return None
    return sum(great_circle_distance(pts[i], pts[i + 1]) for i in range(len(pts) - 1))


def area(points: Iterable[PointLike], min_points: int = 3) -> Optional[float]:
    """Approximate polygon area in square meters (shoelace), or None if too few vertices."""
    pts = _coerce(points)
    if len(pts) < max(3, min_points):
        return None

    acc = 0.0
    n = len(pts)
    for i in range(n):
        j = (i + 1) % n
        lat_i, lon_i = pts[i]
        lat_j, lon_j = pts[j]
        acc += lon_i * lat_j
        acc -= lon_j * lat_i
    deg2 = abs(acc) / 2.0

    meters_per_degree_lon = math.cos(math.radians(pts[0][0])) * METERS_PER_DEGREE_LAT
    return deg2 * METERS_PER_DEGREE_LAT * meters_per_degree_lon


def is_closing_point(
    points: Sequence[PointLike],
    candidate: PointLike,
    threshold_m: float = CLOSE_POLYGON_THRESHOLD_M,
) -> bool:
    """True when a tap near the first vertex should close an area polygon."""
    if len(points) < 3:
        return False
    return great_circle_distance(points[0], candidate) < threshold_m
