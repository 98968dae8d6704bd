"""Tests for FeatureIndex proximity and coverage queries."""

from __future__ import annotations

import pytest

from route_corridor.geometry import FeatureIndex, distance

from conftest import box_feature, line_feature, make_index, point_feature, straight_route


def test_features_within_buffer_includes_near_point(route, frames_index) -> None:
    assert frames_index.features_within_buffer(route, 100.0) == frozenset({"frame-1"})


def test_features_within_buffer_degenerate_route(frames_index) -> None:
    assert frames_index.features_within_buffer([(55.05, 37.05)], 100.0) == frozenset()
    assert frames_index.features_within_buffer(None, 100.0) == frozenset()


def test_buffer_boundary_is_inclusive(route) -> None:
    # Just north of the route start, a few tens of metres off the line.
    index = make_index("frames", [point_feature(55.0005, 37.0, feature_id="near")])
    dist = index.feature_distance(index.features[0], route)
    assert index.features_within_buffer(route, dist) == frozenset({"near"})
    assert index.features_within_buffer(route, dist - 1.0) == frozenset()


def test_line_feature_uses_nearest_vertex(route) -> None:
    index = make_index(
        "frames",
        [line_feature([(56.0, 39.0), (55.0501, 37.0499)], feature_id="line")],
    )
    assert index.features_within_buffer(route, 100.0) == frozenset({"line"})


def test_polygon_crossing_without_nearby_vertex_is_not_included() -> None:
    route = [(55.0, 37.0), (55.0, 38.0)]
    # Large box straddling the route; every vertex is kilometres away.
    index = make_index("frames", [box_feature(54.9, 37.4, 55.1, 37.6, "box")])
    assert index.features_within_buffer(route, 100.0) == frozenset()


def test_prefilter_never_drops_features_near_long_route() -> None:
    route = straight_route((55.0, 37.0), (55.0, 38.0), steps=10)
    features = [point_feature(55.0008, 37.0 + i * 0.1, feature_id=f"p{i}") for i in range(11)]
    features.append(point_feature(56.0, 37.5, feature_id="far"))
    index = make_index("frames", features)
    ids = index.features_within_buffer(route, 100.0)
    assert ids == frozenset(f"p{i}" for i in range(11))


def test_is_point_covered_inside_polygon(allowed_index) -> None:
    assert allowed_index.is_point_covered((55.1, 37.1), 120.0)


def test_is_point_covered_near_polygon_edge(allowed_index) -> None:
    # ~55 m outside the northern edge of the zone.
    assert allowed_index.is_point_covered((55.2005, 37.1), 120.0)
    assert not allowed_index.is_point_covered((55.21, 37.1), 120.0)


def test_is_point_covered_empty_index() -> None:
    assert not FeatureIndex.empty().is_point_covered((55.0, 37.0), 1_000.0)


def test_nearest_covered_point_returns_vertex() -> None:
    index = make_index("hgv_allowed", [box_feature(55.0, 37.0, 55.2, 37.2, "zone")])
    nearest = index.nearest_covered_point((55.25, 37.25))
    assert nearest == (55.2, 37.2)
    assert FeatureIndex.empty().nearest_covered_point((55.0, 37.0)) is None


def test_representative_point(route) -> None:
    index = make_index(
        "frames",
        [
            point_feature(55.05, 37.05, feature_id="pt"),
            line_feature([(56.0, 39.0), (55.06, 37.06)], feature_id="ln"),
        ],
    )
    pt, ln = index.features
    assert index.representative_point(pt, route) == (55.05, 37.05)
    assert index.representative_point(ln, route) == (55.06, 37.06)
    assert index.representative_point(ln) == (56.0, 39.0)


def test_feature_distance_matches_haversine_for_point_on_vertex() -> None:
    route = [(55.0, 37.0), (55.0, 37.1)]
    index = make_index("frames", [point_feature(55.0, 37.0, feature_id="x")])
    assert index.feature_distance(index.features[0], route) == pytest.approx(
        distance((55.0, 37.0), (55.0, 37.0)), abs=1e-6
    )


def test_zero_buffer_keeps_feature_on_route_vertex() -> None:
    route = [(55.0, 37.0), (55.0, 37.05), (55.0, 37.1)]
    index = make_index(
        "frames",
        [
            point_feature(55.0, 37.05, feature_id="on-vertex"),
            point_feature(55.0005, 37.05, feature_id="beside"),
        ],
    )
    assert index.features_within_buffer(route, 0.0) == frozenset({"on-vertex"})
