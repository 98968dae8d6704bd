"""Spherical distance primitives used by the corridor and restriction checks.

All functions take ``(lat, lon)`` pairs in decimal degrees. They are total:
malformed input (missing parts, NaN, non-numeric, out of range) yields
``math.inf`` (or ``False`` for containment) instead of an exception.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

from ..config import EARTH_RADIUS_M, PROJECTION_RADIUS_M
from ..models import LatLon, RouteKey


def coerce_coordinate(value: Any) -> Optional[LatLon]:
    """Return ``value`` as a float ``(lat, lon)`` tuple, or None when invalid."""

    if value is None or isinstance(value, (str, bytes)):
        return None
    try:
        if len(value) < 2:
            return None
        lat = float(value[0])
        lon = float(value[1])
    except (TypeError, ValueError, IndexError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    if abs(lat) > 90.0 or abs(lon) > 180.0:
        return None
    return lat, lon


def is_valid_coordinate(value: Any) -> bool:
    return coerce_coordinate(value) is not None


def clean_polyline(line: Optional[Sequence[Any]]) -> list[LatLon]:
    """Return the valid coordinates of ``line`` in order, dropping the rest."""

    if not line:
        return []
    cleaned: list[LatLon] = []
    for point in line:
        latlon = coerce_coordinate(point)
        if latlon is not None:
            cleaned.append(latlon)
    return cleaned


def route_key(route: Optional[Sequence[Any]]) -> RouteKey:
    """Return the identity of a route for caching derived results.

    The key is the validated coordinate tuple the computations run on, so
    equal keys always produce equal results.
    """
    return tuple(clean_polyline(route))


def distance(a: Any, b: Any) -> float:
    """Great-circle (haversine) distance in metres between two coordinates."""

    pa = coerce_coordinate(a)
    pb = coerce_coordinate(b)
    if pa is None or pb is None:
        return math.inf
    lat1 = math.radians(pa[0])
    lat2 = math.radians(pb[0])
    d_lat = math.radians(pb[0] - pa[0])
    d_lon = math.radians(pb[1] - pa[1])
    sin_lat = math.sin(d_lat / 2)
    sin_lon = math.sin(d_lon / 2)
    h = sin_lat * sin_lat + math.cos(lat1) * math.cos(lat2) * sin_lon * sin_lon
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def distance_to_segment(p: Any, s1: Any, s2: Any) -> float:
    """Distance in metres from ``p`` to the segment ``[s1, s2]``.

    Uses an equirectangular projection centred on the segment's mid latitude,
    which is only accurate for short segments. The projection parameter is
    clamped so the nearest point always lies on the segment itself.
    """

    point = coerce_coordinate(p)
    start = coerce_coordinate(s1)
    end = coerce_coordinate(s2)
    if point is None or start is None or end is None:
        return math.inf
    if start == end:
        return distance(point, start)
    if point == start or point == end:
        return 0.0

    cos_lat0 = math.cos(math.radians((start[0] + end[0]) / 2))

    def to_xy(coords: LatLon) -> tuple[float, float]:
        return (
            PROJECTION_RADIUS_M * math.radians(coords[1]) * cos_lat0,
            PROJECTION_RADIUS_M * math.radians(coords[0]),
        )

    px, py = to_xy(point)
    ax, ay = to_xy(start)
    bx, by = to_xy(end)
    abx = bx - ax
    aby = by - ay
    denom = abx * abx + aby * aby
    t = 0.0
    if denom > 0:
        t = ((px - ax) * abx + (py - ay) * aby) / denom
        t = min(1.0, max(0.0, t))
    proj_x = ax + abx * t
    proj_y = ay + aby * t
    return math.hypot(px - proj_x, py - proj_y)


def distance_to_polyline(
    p: Any, line: Optional[Sequence[Any]], stop_below: Optional[float] = None
) -> float:
    """Minimum distance in metres from ``p`` to any segment of ``line``.

    When ``stop_below`` is given the scan returns as soon as a segment within
    that distance is found, so the value is then an upper bound rather than
    the exact minimum.
    """

    if not line or len(line) < 2:
        return math.inf
    best = math.inf
    for idx in range(1, len(line)):
        dist = distance_to_segment(p, line[idx - 1], line[idx])
        if dist < best:
            best = dist
            if stop_below is not None and best <= stop_below:
                return best
    return best


def point_in_polygon(p: Any, ring: Optional[Sequence[Any]]) -> bool:
    """Even-odd ray casting test; the ring is closed implicitly."""

    point = coerce_coordinate(p)
    if point is None or not ring or len(ring) < 3:
        return False
    y, x = point
    inside = False
    count = len(ring)
    j = count - 1
    for i in range(count):
        vi = coerce_coordinate(ring[i])
        vj = coerce_coordinate(ring[j])
        j = i
        if vi is None or vj is None:
            continue
        yi, xi = vi
        yj, xj = vj
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
    return inside


__all__ = [
    "clean_polyline",
    "coerce_coordinate",
    "distance",
    "distance_to_polyline",
    "distance_to_segment",
    "is_valid_coordinate",
    "point_in_polygon",
    "route_key",
]
