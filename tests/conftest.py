"""Global pytest fixtures & helpers.

Adds project root to path and provides reusable GeoJSON layers, routes and a
fake router shared by the geometry, service and controller tests.
"""
from __future__ import annotations

import asyncio
import os
import sys
from typing import Any, Dict, List, Sequence

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from route_corridor.errors import RouteBuildError
from route_corridor.geometry import FeatureIndex, collection_from_features
from route_corridor.models import RouteOptions, RouteResult


# --- Factory helpers -------------------------------------------------
def point_feature(lat: float, lon: float, feature_id: Any = None, **props: Any) -> Dict[str, Any]:
    """GeoJSON Point feature; note GeoJSON stores [lon, lat]."""
    feature: Dict[str, Any] = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": dict(props),
    }
    if feature_id is not None:
        feature["id"] = feature_id
    return feature


def line_feature(points: Sequence[Sequence[float]], feature_id: Any = None) -> Dict[str, Any]:
    feature: Dict[str, Any] = {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [[lon, lat] for lat, lon in points],
        },
        "properties": {},
    }
    if feature_id is not None:
        feature["id"] = feature_id
    return feature


def box_feature(
    min_lat: float, min_lon: float, max_lat: float, max_lon: float, feature_id: Any = None
) -> Dict[str, Any]:
    ring = [
        [min_lon, min_lat],
        [max_lon, min_lat],
        [max_lon, max_lat],
        [min_lon, max_lat],
        [min_lon, min_lat],
    ]
    feature: Dict[str, Any] = {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": {},
    }
    if feature_id is not None:
        feature["id"] = feature_id
    return feature


def make_index(layer: str, features: Sequence[Dict[str, Any]], prefix: str = "obj") -> FeatureIndex:
    return FeatureIndex(collection_from_features(layer, features, id_prefix=prefix))


def straight_route(start=(55.0, 37.0), end=(55.1, 37.1), steps: int = 1) -> List[tuple]:
    """Evenly spaced polyline from ``start`` to ``end`` with ``steps`` segments."""
    return [
        (
            start[0] + (end[0] - start[0]) * i / steps,
            start[1] + (end[1] - start[1]) * i / steps,
        )
        for i in range(steps + 1)
    ]


class FakeRouter:
    """In-memory router recording every call.

    ``routes`` is consumed in order for ``build``; when it runs out the
    waypoints themselves are returned as the route geometry. Entries may be
    exceptions to raise.
    """

    def __init__(self, routes: Sequence[Any] = (), geocodes: Dict[str, tuple] | None = None):
        self.routes = list(routes)
        self.geocodes = dict(geocodes or {})
        self.build_calls: List[tuple] = []
        self.geocode_calls: List[str] = []

    async def geocode(self, address: str):
        from route_corridor.errors import GeocodeError

        self.geocode_calls.append(address)
        await asyncio.sleep(0)
        try:
            return self.geocodes[address]
        except KeyError as exc:
            raise GeocodeError(f"No match for address {address!r}") from exc

    async def build(self, waypoints, options: RouteOptions) -> RouteResult:
        self.build_calls.append((tuple(waypoints), options))
        await asyncio.sleep(0)
        if self.routes:
            item = self.routes.pop(0)
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, RouteResult):
                return item
            return RouteResult(primary_polyline=tuple(item), distance_m=1000.0, duration_s=60.0)
        if len(waypoints) < 2:
            raise RouteBuildError("not enough waypoints")
        return RouteResult(primary_polyline=tuple(waypoints), distance_m=1000.0, duration_s=60.0)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def route():
    return [(55.0, 37.0), (55.1, 37.1)]


@pytest.fixture
def frames_index():
    return make_index(
        "frames",
        [
            point_feature(55.05, 37.05, feature_id=1),
            point_feature(55.5, 38.5, feature_id=2),
        ],
        prefix="frame",
    )


@pytest.fixture
def allowed_index():
    return make_index("hgv_allowed", [box_feature(55.0, 37.0, 55.2, 37.2, "zone-a")])


@pytest.fixture
def empty_index():
    return FeatureIndex.empty("hgv_conditional")


@pytest.fixture
def fake_router():
    return FakeRouter()
