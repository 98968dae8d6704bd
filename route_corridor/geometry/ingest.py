"""GeoJSON ingestion: validate raw features once into the geometry tagged union.

GeoJSON positions are ``[lon, lat]``; everything past this module works with
``(lat, lon)`` tuples. Malformed features are skipped, never fatal.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import InvalidGeometryError
from ..models import (
    Feature,
    FeatureCollection,
    Geometry,
    LatLon,
    LineGeometry,
    PointGeometry,
    PolygonGeometry,
)
from .geomath import coerce_coordinate

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestSummary:
    """Counts collected while ingesting one layer."""

    layer: str
    total: int = 0
    accepted: int = 0
    skipped_invalid: int = 0
    skipped_duplicate: int = 0
    type_counts: Dict[str, int] = field(default_factory=dict)

    def describe(self) -> str:
        """Return a ``Type:count`` breakdown, e.g. ``Point:3, LineString:1``."""

        if not self.type_counts:
            return "empty"
        return ", ".join(f"{name}:{count}" for name, count in self.type_counts.items())


def position_to_latlon(position: Any) -> Optional[LatLon]:
    """Convert a GeoJSON ``[lon, lat]`` position to ``(lat, lon)``."""

    if not isinstance(position, (list, tuple)) or len(position) < 2:
        return None
    return coerce_coordinate((position[1], position[0]))


def _positions(raw: Any) -> List[LatLon]:
    if not isinstance(raw, (list, tuple)):
        return []
    points: List[LatLon] = []
    for position in raw:
        latlon = position_to_latlon(position)
        if latlon is not None:
            points.append(latlon)
    return points


def parse_geometry(raw: Any) -> Geometry:
    """Return a validated geometry for a GeoJSON geometry mapping."""

    if not isinstance(raw, Mapping):
        raise InvalidGeometryError("Geometry is missing")
    geom_type = raw.get("type")
    coords = raw.get("coordinates")
    if geom_type == "Point":
        latlon = position_to_latlon(coords)
        if latlon is None:
            raise InvalidGeometryError("Point has no valid coordinate")
        return PointGeometry(latlon)
    if geom_type == "LineString":
        points = _positions(coords)
        if not points:
            raise InvalidGeometryError("LineString has no valid coordinates")
        return LineGeometry(tuple(points))
    if geom_type == "Polygon":
        if not isinstance(coords, (list, tuple)) or not coords:
            raise InvalidGeometryError("Polygon has no rings")
        ring = _positions(coords[0])
        if len(ring) < 3:
            raise InvalidGeometryError("Polygon outer ring needs at least 3 points")
        return PolygonGeometry(tuple(ring))
    raise InvalidGeometryError(f"Unsupported geometry type: {geom_type!r}")


def normalise_feature_id(raw: Mapping[str, Any], index: int, id_prefix: str) -> str:
    """Return a stable string id, namespacing numeric ids with ``id_prefix``."""

    raw_id = raw.get("id")
    if raw_id is None or raw_id == "":
        props = raw.get("properties")
        prop_id = props.get("id") if isinstance(props, Mapping) else None
        if isinstance(prop_id, str) and prop_id.strip():
            return prop_id.strip()
        if _is_finite_number(prop_id):
            return f"{id_prefix}-{_format_number(prop_id)}"
        return f"{id_prefix}-{index}"
    if _is_finite_number(raw_id):
        return f"{id_prefix}-{_format_number(raw_id)}"
    if isinstance(raw_id, str):
        return raw_id
    try:
        return json.dumps(raw_id, sort_keys=True)
    except (TypeError, ValueError):
        return f"{id_prefix}-{index}"


def _is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_feature_collection(
    payload: Any, layer: str, *, id_prefix: str = "obj"
) -> Tuple[FeatureCollection, IngestSummary]:
    """Validate a GeoJSON FeatureCollection payload.

    Raises ``InvalidGeometryError`` only when the payload itself is not a
    FeatureCollection; individual bad features are skipped and counted.
    """

    if not isinstance(payload, Mapping) or payload.get("type") != "FeatureCollection":
        raise InvalidGeometryError(f"Layer {layer} is not a GeoJSON FeatureCollection")
    raw_features = payload.get("features")
    if not isinstance(raw_features, list):
        raise InvalidGeometryError(f"Layer {layer} has no features[] array")

    summary = IngestSummary(layer=layer, total=len(raw_features))
    type_counts: Counter[str] = Counter()
    features: List[Feature] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_features):
        if not isinstance(raw, Mapping):
            summary.skipped_invalid += 1
            continue
        try:
            geometry = parse_geometry(raw.get("geometry"))
        except InvalidGeometryError as exc:
            summary.skipped_invalid += 1
            LOGGER.debug("Skipping feature #%d in layer=%s: %s", index, layer, exc)
            continue
        feature_id = normalise_feature_id(raw, index, id_prefix)
        if feature_id in seen:
            summary.skipped_duplicate += 1
            LOGGER.debug("Skipping duplicate feature id=%s in layer=%s", feature_id, layer)
            continue
        seen.add(feature_id)
        props = raw.get("properties")
        tags = dict(props) if isinstance(props, Mapping) else {}
        features.append(Feature(id=feature_id, geometry=geometry, tags=tags))
        type_counts[geometry.type.value] += 1

    summary.accepted = len(features)
    summary.type_counts = dict(type_counts)
    collection_props = payload.get("properties")
    collection = FeatureCollection(
        layer=layer,
        features=tuple(features),
        properties=dict(collection_props) if isinstance(collection_props, Mapping) else {},
    )
    return collection, summary


def collection_from_features(
    layer: str, features: Sequence[Mapping[str, Any]], *, id_prefix: str = "obj"
) -> FeatureCollection:
    """Convenience wrapper for in-memory GeoJSON feature dicts."""

    collection, _ = parse_feature_collection(
        {"type": "FeatureCollection", "features": list(features)},
        layer,
        id_prefix=id_prefix,
    )
    return collection


__all__ = [
    "IngestSummary",
    "collection_from_features",
    "normalise_feature_id",
    "parse_feature_collection",
    "parse_geometry",
    "position_to_latlon",
]
