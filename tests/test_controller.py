"""Tests for the RouteController build cycle and generation tokens."""

from __future__ import annotations

import asyncio
import time
from typing import Dict, List

import pytest

from route_corridor.controller import BuildState, RouteController, RouteControllerConfig
from route_corridor.errors import GeocodeError, LayerLoadError, RouteBuildError
from route_corridor.geometry import collection_from_features
from route_corridor.layer_cache import LayerCache
from route_corridor.models import FeatureCollection, RouteResult

from conftest import FakeRouter, box_feature, point_feature, straight_route

ROUTE = tuple(straight_route((55.0, 37.0), (55.0, 38.0), steps=20))
ALT = ((55.0, 37.0), (54.5, 37.5), (55.0, 38.0))
WAYPOINTS = [(55.0, 37.0), (55.0, 38.0)]


class DictSource:
    """FeatureSource serving in-memory collections."""

    def __init__(self, layers: Dict[str, FeatureCollection]):
        self.layers = layers
        self.loads: List[str] = []

    def load(self, layer: str) -> FeatureCollection:
        self.loads.append(layer)
        try:
            return self.layers[layer]
        except KeyError as exc:
            raise LayerLoadError(f"no layer {layer}") from exc


def _layers(with_allowed: bool = True) -> Dict[str, FeatureCollection]:
    layers = {
        "frames": collection_from_features(
            "frames",
            [
                point_feature(55.0003, 37.2, feature_id=1),
                point_feature(56.0, 37.5, feature_id=2),
            ],
            id_prefix="frame",
        ),
        "hgv_conditional": FeatureCollection(layer="hgv_conditional"),
    }
    if with_allowed:
        # Covers the western half of ROUTE only.
        layers["hgv_allowed"] = collection_from_features(
            "hgv_allowed", [box_feature(54.9, 36.9, 55.1, 37.45, "west")]
        )
    return layers


def _controller(router, layers=None, **config) -> RouteController:
    source = DictSource(_layers() if layers is None else layers)
    return RouteController(router, LayerCache(source), RouteControllerConfig(**config))


class GatedRouter(FakeRouter):
    """FakeRouter whose n-th build call waits on ``gates[n]``."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gates: Dict[int, asyncio.Event] = {}
        self.reached: asyncio.Event | None = None
        self._calls = 0

    async def build(self, waypoints, options):
        idx = self._calls
        self._calls += 1
        gate = self.gates.get(idx)
        if gate is not None:
            if self.reached is not None:
                self.reached.set()
            await gate.wait()
        return await super().build(waypoints, options)


def test_build_route_runs_full_analysis() -> None:
    router = FakeRouter(routes=[RouteResult(primary_polyline=ROUTE, distance_m=64_000.0)])
    controller = _controller(router)

    analysis = asyncio.run(controller.build_route(WAYPOINTS, "truckHeavy"))

    assert analysis is not None
    assert analysis.token == 1
    assert controller.state is BuildState.IDLE
    assert controller.analysis is analysis
    assert analysis.active_polyline == ROUTE
    assert analysis.corridor.feature_ids == frozenset({"frame-1"})
    assert [v.route_index for v in analysis.restrictions.violations] == list(range(10, 21))
    assert [p.kind for p in analysis.bypasses] == ["corridor", "restriction"]
    assert analysis.bypasses[0].source_id == "frame-1"
    assert analysis.notices == []
    primary_waypoints, primary_options = router.build_calls[0]
    assert primary_waypoints == tuple(WAYPOINTS)
    assert primary_options.alternatives == 3
    assert primary_options.weight_kg == 60_000
    assert len(router.build_calls) == 3


def test_exempt_profile_skips_corridor_and_restrictions() -> None:
    router = FakeRouter(routes=[ROUTE])
    controller = _controller(router)
    analysis = asyncio.run(controller.build_route(WAYPOINTS, "car"))
    assert len(analysis.corridor) == 0
    assert analysis.restrictions.count == 0
    assert analysis.bypasses == []
    assert len(router.build_calls) == 1


def test_bypass_failures_become_one_notice_per_category() -> None:
    router = FakeRouter(
        routes=[ROUTE, RouteBuildError("no path"), RouteBuildError("no path")]
    )
    controller = _controller(router)
    analysis = asyncio.run(controller.build_route(WAYPOINTS, "truckHeavy"))
    assert analysis.bypasses == []
    assert analysis.notices == [
        "1 of 1 frame bypass routes could not be built",
        "Restriction bypass route could not be built",
    ]


def test_unavailable_layers_are_reported_not_raised() -> None:
    router = FakeRouter(routes=[ROUTE])
    controller = _controller(router, layers=_layers(with_allowed=False))
    analysis = asyncio.run(controller.build_route(WAYPOINTS, "truckLight"))
    assert analysis.notices[0] == "Layer hgv_allowed is unavailable"
    assert analysis.restrictions.count == 0
    assert analysis.corridor.feature_ids == frozenset({"frame-1"})


def test_addresses_are_geocoded_in_order() -> None:
    router = FakeRouter(geocodes={"Tver": (56.86, 35.9)})
    controller = _controller(router, synthesize_bypasses=False)
    asyncio.run(controller.build_route([(55.75, 37.62), "Tver"], "car"))
    assert router.geocode_calls == ["Tver"]
    assert router.build_calls[0][0] == ((55.75, 37.62), (56.86, 35.9))


def test_geocode_failure_propagates_and_resets_state() -> None:
    controller = _controller(FakeRouter())
    with pytest.raises(GeocodeError):
        asyncio.run(controller.build_route(["Nowhere", (55.0, 37.0)], "truckLight"))
    assert controller.state is BuildState.IDLE
    assert controller.analysis is None


def test_route_needs_two_valid_waypoints() -> None:
    controller = _controller(FakeRouter())
    with pytest.raises(RouteBuildError):
        asyncio.run(controller.build_route([(55.0, 37.0), (999.0, 0.0)], "truckLight"))
    assert controller.state is BuildState.IDLE


def test_newer_build_supersedes_pending_one() -> None:
    async def scenario():
        router = GatedRouter()
        gate = asyncio.Event()
        router.gates[0] = gate
        controller = _controller(router, synthesize_bypasses=False)

        first = asyncio.create_task(controller.build_route(WAYPOINTS, "truckLight"))
        await asyncio.sleep(0)
        assert controller.state is BuildState.ROUTE_REQUESTED

        second = await controller.build_route([(54.0, 36.0), (54.0, 36.5)], "truckLight")
        gate.set()
        return controller, await first, second

    controller, first, second = asyncio.run(scenario())
    assert first is None
    assert second.token == 2
    assert controller.analysis is second
    assert controller.active_polyline == ((54.0, 36.0), (54.0, 36.5))
    assert controller.state is BuildState.IDLE


def test_stale_build_stops_bypass_synthesis() -> None:
    async def scenario():
        frames = collection_from_features(
            "frames",
            [
                point_feature(55.0003, 37.2, feature_id="a"),
                point_feature(55.0003, 37.6, feature_id="b"),
            ],
        )
        router = GatedRouter(routes=[ROUTE])
        router.gates[1] = asyncio.Event()
        router.reached = asyncio.Event()
        controller = _controller(router, layers={"frames": frames})

        first = asyncio.create_task(controller.build_route(WAYPOINTS, "truckLight"))
        await router.reached.wait()
        assert controller.state is BuildState.BYPASS_SYNTHESIZING

        second = await controller.build_route([(54.0, 36.0), (54.0, 36.5)], "truckLight")
        router.gates[1].set()
        return router, controller, await first, second

    router, controller, first, second = asyncio.run(scenario())
    assert first is None
    assert second is not None
    assert second.bypasses == []
    # Primary A, the gated bypass for "a", primary B; no request for "b".
    assert len(router.build_calls) == 3
    assert controller.analysis is second


def test_activate_alternative_reanalyses_route() -> None:
    router = FakeRouter(routes=[RouteResult(primary_polyline=ROUTE, alternatives=(ALT,))])
    controller = _controller(router, synthesize_bypasses=False)
    first = asyncio.run(controller.build_route(WAYPOINTS, "truckLight"))
    assert first.corridor.feature_ids == frozenset({"frame-1"})

    switched = asyncio.run(controller.activate_alternative(1))
    assert switched.token == 2
    assert switched.active_index == 1
    assert switched.active_polyline == ALT
    assert len(switched.corridor) == 0

    with pytest.raises(IndexError):
        asyncio.run(controller.activate_alternative(5))


def test_activate_alternative_before_build() -> None:
    controller = _controller(FakeRouter())
    with pytest.raises(IndexError):
        asyncio.run(controller.activate_alternative(0))


def test_query_operations_follow_current_layers() -> None:
    router = FakeRouter(routes=[ROUTE])
    controller = _controller(router, synthesize_bypasses=False)
    asyncio.run(controller.build_route(WAYPOINTS, "truckHeavy"))

    assert controller.compute_corridor(ROUTE, "frames") == frozenset({"frame-1"})
    assert controller.compute_corridor([(55.0, 37.0)], "frames") == frozenset()
    report = controller.compute_restrictions(ROUTE, "truckHeavy")
    assert report.count == 11
    assert controller.compute_restrictions(ROUTE, "car").count == 0

    plans = asyncio.run(controller.compute_bypasses(ROUTE, "truckHeavy"))
    assert [p.kind for p in plans] == ["corridor", "restriction"]
    assert asyncio.run(controller.compute_bypasses(ROUTE, "auto")) == []
    assert asyncio.run(controller.compute_bypasses([], "truckHeavy")) == []


def test_queries_separate_routes_with_invalid_points() -> None:
    controller = _controller(FakeRouter(routes=[ROUTE]), synthesize_bypasses=False)
    asyncio.run(controller.build_route(WAYPOINTS, "truckHeavy"))

    covered = [(55.0, 37.0), None, (55.0, 37.1)]
    outside = [(10.0, 10.0), None, (10.1, 10.1)]
    assert controller.compute_restrictions(covered, "truckHeavy").count == 0
    report = controller.compute_restrictions(outside, "truckHeavy")
    assert report.samples_taken == 2
    assert report.count == 2

    near_frame = [(55.0, 37.15), "bad", (55.0, 37.25)]
    assert controller.compute_corridor(near_frame, "frames") == frozenset({"frame-1"})
    assert controller.compute_corridor(outside, "frames") == frozenset()


def test_queries_keep_layers_loaded_for_current_route() -> None:
    source = DictSource(_layers())
    layers = LayerCache(source, ttl_seconds=1)
    controller = RouteController(
        FakeRouter(routes=[ROUTE]), layers, RouteControllerConfig(synthesize_bypasses=False)
    )
    asyncio.run(controller.build_route(WAYPOINTS, "truckHeavy"))
    time.sleep(1.2)

    assert layers.peek("frames") is None
    # Routes not seen by the build, so nothing comes from the result caches.
    assert controller.compute_corridor([(55.0, 37.15), (55.0, 37.25)], "frames") == frozenset(
        {"frame-1"}
    )
    assert controller.compute_restrictions([(10.0, 10.0), (10.1, 10.1)], "truckHeavy").count == 2
    assert source.loads.count("frames") == 1
