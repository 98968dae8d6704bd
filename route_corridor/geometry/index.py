"""Proximity queries over a single feature layer."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ..config import EARTH_RADIUS_M
from ..models import (
    Feature,
    FeatureCollection,
    LatLon,
    PointGeometry,
    PolygonGeometry,
)
from .geomath import (
    clean_polyline,
    coerce_coordinate,
    distance,
    distance_to_polyline,
    point_in_polygon,
)

LOGGER = logging.getLogger(__name__)

MetricArray = NDArray[np.float64]

# Degrees of latitude per metre on the smaller (haversine) sphere, padded so
# the bounding-box prefilter can only over-include candidates.
_DEG_PER_M = 180.0 / (math.pi * EARTH_RADIUS_M)
_PAD_FACTOR = 1.5
# Above this latitude longitude padding degenerates; the prefilter is skipped.
_MAX_PREFILTER_LAT = 85.0


class FeatureIndex:
    """Read-only index over a ``FeatureCollection``.

    Route-to-feature distance rules:

    * Point: distance from the point to the route polyline.
    * LineString: minimum over the line's vertices of the vertex-to-route
      distance.
    * Polygon: same as LineString over the outer ring (edge proximity only;
      the route crossing the interior is not detected).
    """

    def __init__(self, collection: FeatureCollection) -> None:
        self._collection = collection
        self._features: Tuple[Feature, ...] = collection.features
        count = len(self._features)
        self._bboxes: MetricArray = np.empty((count, 4), dtype=float)
        vertex_rows: List[LatLon] = []
        for idx, feature in enumerate(self._features):
            vertices = np.asarray(feature.geometry.vertices, dtype=float)
            self._bboxes[idx] = (
                float(np.min(vertices[:, 0])),
                float(np.min(vertices[:, 1])),
                float(np.max(vertices[:, 0])),
                float(np.max(vertices[:, 1])),
            )
            vertex_rows.extend(feature.geometry.vertices)
        self._vertices: MetricArray = (
            np.asarray(vertex_rows, dtype=float)
            if vertex_rows
            else np.empty((0, 2), dtype=float)
        )

    @classmethod
    def empty(cls, layer: str = "") -> "FeatureIndex":
        return cls(FeatureCollection(layer=layer))

    @property
    def collection(self) -> FeatureCollection:
        return self._collection

    @property
    def layer(self) -> str:
        return self._collection.layer

    @property
    def features(self) -> Tuple[Feature, ...]:
        return self._features

    @property
    def is_empty(self) -> bool:
        return not self._features

    def __len__(self) -> int:
        return len(self._features)

    def features_for(self, ids: Iterable[str]) -> Tuple[Feature, ...]:
        """Return the features with ``ids`` in collection order."""

        wanted = set(ids)
        return tuple(f for f in self._features if f.id in wanted)

    # ------------------------------------------------------------------
    # Route proximity
    # ------------------------------------------------------------------
    def feature_distance(
        self,
        feature: Feature,
        route: Sequence[LatLon],
        stop_below: Optional[float] = None,
    ) -> float:
        """Representative distance (metres) from ``feature`` to ``route``."""

        geometry = feature.geometry
        if isinstance(geometry, PointGeometry):
            return distance_to_polyline(geometry.coordinate, route, stop_below)
        best = math.inf
        for vertex in geometry.vertices:
            dist = distance_to_polyline(vertex, route, stop_below)
            if dist < best:
                best = dist
                if stop_below is not None and best <= stop_below:
                    break
        return best

    def features_within_buffer(
        self, route: Optional[Sequence[Any]], buffer_m: float
    ) -> frozenset[str]:
        """Return ids of features whose distance to ``route`` is ``<= buffer_m``."""

        cleaned = clean_polyline(route)
        if len(cleaned) < 2 or self.is_empty:
            return frozenset()
        lats = [lat for lat, _ in cleaned]
        lons = [lon for _, lon in cleaned]
        candidates = self._candidate_indices(
            min(lats), min(lons), max(lats), max(lons), buffer_m
        )
        matched: set[str] = set()
        for idx in candidates:
            feature = self._features[int(idx)]
            if self.feature_distance(feature, cleaned, stop_below=buffer_m) <= buffer_m:
                matched.add(feature.id)
        LOGGER.debug(
            "layer=%s buffer=%.0fm candidates=%d matched=%d",
            self.layer,
            buffer_m,
            len(candidates),
            len(matched),
        )
        return frozenset(matched)

    def representative_point(
        self, feature: Feature, route: Optional[Sequence[Any]] = None
    ) -> LatLon:
        """Return the point standing in for ``feature`` relative to ``route``.

        Points stand for themselves; lines and polygons use the vertex
        closest to the route (the first vertex when no route is given).
        """

        geometry = feature.geometry
        if isinstance(geometry, PointGeometry):
            return geometry.coordinate
        cleaned = clean_polyline(route)
        vertices = geometry.vertices
        if len(cleaned) < 2:
            return vertices[0]
        best_vertex = vertices[0]
        best = math.inf
        for vertex in vertices:
            dist = distance_to_polyline(vertex, cleaned)
            if dist < best:
                best = dist
                best_vertex = vertex
        return best_vertex

    # ------------------------------------------------------------------
    # Zone coverage
    # ------------------------------------------------------------------
    def is_point_covered(self, p: Any, tolerance_m: float) -> bool:
        """Return True when ``p`` is inside a polygon or near any feature."""

        point = coerce_coordinate(p)
        if point is None or self.is_empty:
            return False
        lat, lon = point
        for idx in self._candidate_indices(lat, lon, lat, lon, tolerance_m):
            feature = self._features[int(idx)]
            geometry = feature.geometry
            if isinstance(geometry, PolygonGeometry) and point_in_polygon(
                point, geometry.ring
            ):
                return True
            if self._point_feature_distance(point, feature, tolerance_m) <= tolerance_m:
                return True
        return False

    def _point_feature_distance(
        self, point: LatLon, feature: Feature, stop_below: float
    ) -> float:
        geometry = feature.geometry
        if isinstance(geometry, PointGeometry):
            return distance(point, geometry.coordinate)
        vertices = geometry.vertices
        if len(vertices) == 1:
            return distance(point, vertices[0])
        if isinstance(geometry, PolygonGeometry) and vertices[0] != vertices[-1]:
            vertices = (*vertices, vertices[0])
        return distance_to_polyline(point, vertices, stop_below)

    def nearest_covered_point(self, p: Any) -> Optional[LatLon]:
        """Return the feature vertex nearest to ``p`` (haversine), or None.

        Only vertices are considered, never points along segments.
        """

        point = coerce_coordinate(p)
        if point is None or self._vertices.shape[0] == 0:
            return None
        distances = _haversine_many(point, self._vertices)
        best = int(np.argmin(distances))
        return float(self._vertices[best, 0]), float(self._vertices[best, 1])

    # ------------------------------------------------------------------
    # Prefilter
    # ------------------------------------------------------------------
    def _candidate_indices(
        self,
        min_lat: float,
        min_lon: float,
        max_lat: float,
        max_lon: float,
        margin_m: float,
    ) -> NDArray[np.intp]:
        """Indices of features whose bbox meets the query bbox grown by ``margin_m``."""

        count = len(self._features)
        everything = np.arange(count)
        if count == 0 or not math.isfinite(margin_m) or margin_m < 0:
            return everything
        lat_pad = margin_m * _PAD_FACTOR * _DEG_PER_M
        max_abs_lat = max(abs(min_lat), abs(max_lat)) + lat_pad
        if max_abs_lat >= _MAX_PREFILTER_LAT:
            return everything
        lon_pad = lat_pad / math.cos(math.radians(max_abs_lat))
        boxes = self._bboxes
        mask = (
            (boxes[:, 0] <= max_lat + lat_pad)
            & (boxes[:, 2] >= min_lat - lat_pad)
            & (boxes[:, 1] <= max_lon + lon_pad)
            & (boxes[:, 3] >= min_lon - lon_pad)
        )
        return np.nonzero(mask)[0]


def _haversine_many(point: LatLon, vertices: MetricArray) -> MetricArray:
    """Vectorised haversine distance from ``point`` to each row of ``vertices``."""

    lat1 = math.radians(point[0])
    lat2 = np.radians(vertices[:, 0])
    d_lat = lat2 - lat1
    d_lon = np.radians(vertices[:, 1] - point[1])
    h = np.sin(d_lat / 2) ** 2 + math.cos(lat1) * np.cos(lat2) * np.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(h)))


__all__ = ["FeatureIndex"]
