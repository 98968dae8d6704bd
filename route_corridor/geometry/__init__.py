"""Geometry layer: distance primitives, GeoJSON ingestion and feature indexing."""

from .geomath import (
    clean_polyline,
    coerce_coordinate,
    distance,
    distance_to_polyline,
    distance_to_segment,
    is_valid_coordinate,
    point_in_polygon,
    route_key,
)
from .index import FeatureIndex
from .ingest import (
    IngestSummary,
    collection_from_features,
    parse_feature_collection,
    parse_geometry,
)

__all__ = [
    "FeatureIndex",
    "IngestSummary",
    "clean_polyline",
    "coerce_coordinate",
    "collection_from_features",
    "distance",
    "distance_to_polyline",
    "distance_to_segment",
    "is_valid_coordinate",
    "parse_feature_collection",
    "parse_geometry",
    "point_in_polygon",
    "route_key",
]
