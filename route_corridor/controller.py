"""Route build controller: owns the current route and everything derived from it.

One route is current at a time. Every build (or switch to an alternative)
takes a new generation token; work started for an older token is discarded
when it completes, and bypass synthesis checks the token before each router
call so a superseded build stops issuing requests.

States per build cycle::

    IDLE -> ROUTE_REQUESTED -> ROUTE_READY -> CORRIDOR_COMPUTING
         -> RESTRICTION_CHECKING -> BYPASS_SYNTHESIZING -> IDLE
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import ALLOWED_LAYER, CONDITIONAL_LAYER, FRAMES_LAYER
from .errors import GeocodeError, RouteBuildError, StaleResultError
from .geometry import FeatureIndex, coerce_coordinate, route_key
from .layer_cache import LayerCache
from .models import (
    BypassPlan,
    CorridorResult,
    LatLon,
    RestrictionReport,
    RouteAnalysis,
    RouteOptions,
    RouteKey,
    RouteResult,
    VehicleProfile,
)
from .routing_client.router import Router
from .services import (
    BypassSynthesizer,
    BypassSynthesizerConfig,
    CorridorFilter,
    CorridorFilterConfig,
    RestrictionChecker,
    RestrictionCheckerConfig,
)


class BuildState(str, Enum):
    IDLE = "idle"
    ROUTE_REQUESTED = "route_requested"
    ROUTE_READY = "route_ready"
    CORRIDOR_COMPUTING = "corridor_computing"
    RESTRICTION_CHECKING = "restriction_checking"
    BYPASS_SYNTHESIZING = "bypass_synthesizing"


@dataclass(slots=True)
class RouteControllerConfig:
    frames_layer: str = FRAMES_LAYER
    allowed_layer: str = ALLOWED_LAYER
    conditional_layer: str = CONDITIONAL_LAYER
    synthesize_bypasses: bool = True
    corridor: CorridorFilterConfig | None = None
    restriction: RestrictionCheckerConfig | None = None
    bypass: BypassSynthesizerConfig | None = None
    logger: logging.Logger | None = None


class RouteController:
    def __init__(
        self,
        router: Router,
        layers: LayerCache,
        config: RouteControllerConfig | None = None,
    ):
        self.config = config or RouteControllerConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._router = router
        self._layers = layers
        self._corridor_filter = CorridorFilter(self.config.corridor)
        self._restriction_checker = RestrictionChecker(self.config.restriction)
        self._bypass = BypassSynthesizer(router, self.config.bypass)

        self._token = 0
        self._state = BuildState.IDLE
        self._profile = VehicleProfile.TRUCK_LIGHT
        self._options = RouteOptions.for_profile(self._profile)
        self._waypoints: Tuple[LatLon, ...] = ()
        self._route: Optional[RouteResult] = None
        self._active_index = 0
        self._analysis: Optional[RouteAnalysis] = None
        self._indexes: Dict[str, Optional[FeatureIndex]] = {}
        self._corridor_cache: Dict[str, CorridorResult] = {}
        self._restriction_cache: Dict[Tuple[RouteKey, VehicleProfile], RestrictionReport] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def token(self) -> int:
        return self._token

    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def profile(self) -> VehicleProfile:
        return self._profile

    @property
    def analysis(self) -> Optional[RouteAnalysis]:
        """Result of the last build cycle that completed while still current."""
        return self._analysis

    @property
    def active_polyline(self) -> Tuple[LatLon, ...]:
        if self._route is None:
            return ()
        return self._route.routes[self._active_index]

    def is_current(self, token: int) -> bool:
        return token == self._token

    def _begin(self) -> int:
        self._token += 1
        self._state = BuildState.ROUTE_REQUESTED
        self._corridor_cache.clear()
        self._restriction_cache.clear()
        self._log.debug("Route generation %d started", self._token)
        return self._token

    # ------------------------------------------------------------------
    # Build cycle
    # ------------------------------------------------------------------
    async def resolve_waypoints(self, stops: Sequence[Any]) -> List[LatLon]:
        """Geocode address strings and validate coordinate stops, in order."""

        waypoints: List[LatLon] = []
        for stop in stops:
            if isinstance(stop, str):
                waypoints.append(await self._router.geocode(stop))
                continue
            latlon = coerce_coordinate(stop)
            if latlon is None:
                self._log.debug("Dropping invalid waypoint %r", stop)
                continue
            waypoints.append(latlon)
        if len(waypoints) < 2:
            raise RouteBuildError("A route needs an origin and a destination")
        return waypoints

    async def build_route(
        self,
        stops: Sequence[Any],
        profile: VehicleProfile | str,
        *,
        alternatives: Optional[int] = None,
    ) -> Optional[RouteAnalysis]:
        """Build a route through ``stops`` and analyse it.

        Returns None when a newer build started before this one finished.
        Geocoding and primary route failures propagate to the caller.
        """

        token = self._begin()
        parsed = VehicleProfile.parse(profile)
        options = RouteOptions.for_profile(parsed, alternatives=alternatives)
        try:
            waypoints = await self.resolve_waypoints(stops)
            result = await self._router.build(waypoints, options)
        except (GeocodeError, RouteBuildError):
            if self.is_current(token):
                self._state = BuildState.IDLE
            raise
        if not self.is_current(token):
            self._log.debug("Discarding route for stale generation %d", token)
            return None

        self._profile = parsed
        self._options = options
        self._waypoints = tuple(waypoints)
        self._route = result
        self._active_index = 0
        self._state = BuildState.ROUTE_READY
        return await self._analyse(token)

    async def activate_alternative(self, index: int) -> Optional[RouteAnalysis]:
        """Make router alternative ``index`` (0 = primary) the active route."""

        if self._route is None:
            raise IndexError("No route has been built yet")
        if not 0 <= index < len(self._route.routes):
            raise IndexError(f"Route alternative {index} does not exist")
        token = self._begin()
        self._active_index = index
        self._state = BuildState.ROUTE_READY
        return await self._analyse(token)

    async def _analyse(self, token: int) -> Optional[RouteAnalysis]:
        cfg = self.config
        layers = await self._layers.preload(
            [cfg.frames_layer, cfg.allowed_layer, cfg.conditional_layer]
        )
        if not self.is_current(token):
            return None
        self._indexes = dict(layers)
        notices = [
            f"Layer {name} is unavailable" for name, index in layers.items() if index is None
        ]

        route = self.active_polyline
        self._state = BuildState.CORRIDOR_COMPUTING
        corridor = self._corridor_result(route, cfg.frames_layer, self._profile)

        self._state = BuildState.RESTRICTION_CHECKING
        report = self.compute_restrictions(route, self._profile)

        bypasses: List[BypassPlan] = []
        if cfg.synthesize_bypasses:
            self._state = BuildState.BYPASS_SYNTHESIZING
            try:
                bypasses, bypass_notices = await self._synthesize(
                    token, route, self._waypoints, self._profile, corridor, report
                )
            except StaleResultError as exc:
                self._log.debug("Generation %d superseded: %s", token, exc)
                return None
            notices.extend(bypass_notices)
        if not self.is_current(token):
            return None

        analysis = RouteAnalysis(
            token=token,
            profile=self._profile,
            waypoints=self._waypoints,
            route=self._route,
            active_index=self._active_index,
            corridor=corridor,
            restrictions=report,
            bypasses=bypasses,
            notices=notices,
        )
        self._analysis = analysis
        self._state = BuildState.IDLE
        self._log.info(
            "Route generation %d: %d frames in corridor, %s, %d bypasses",
            token,
            len(corridor),
            report.summary,
            len(bypasses),
        )
        return analysis

    # ------------------------------------------------------------------
    # Queries exposed to the UI layer
    # ------------------------------------------------------------------
    def compute_corridor(self, route: Optional[Sequence[Any]], layer: str) -> frozenset[str]:
        """Return ids of ``layer`` features visible along ``route``."""

        return self._corridor_result(route, layer, self._profile).feature_ids

    def compute_restrictions(
        self, route: Optional[Sequence[Any]], profile: VehicleProfile | str
    ) -> RestrictionReport:
        parsed = VehicleProfile.parse(profile)
        key = (route_key(route), parsed)
        cached = self._restriction_cache.get(key)
        if cached is not None:
            return cached
        report = self._restriction_checker.check(
            route,
            parsed,
            self._layer(self.config.allowed_layer),
            self._layer(self.config.conditional_layer),
        )
        self._restriction_cache[key] = report
        return report

    async def compute_bypasses(
        self, route: Optional[Sequence[Any]], profile: VehicleProfile | str
    ) -> List[BypassPlan]:
        """Synthesize bypass plans for ``route``; empty if the route goes stale."""

        token = self._token
        parsed = VehicleProfile.parse(profile)
        points = tuple(route or ())
        if len(points) < 2:
            return []
        if points == self.active_polyline and self._waypoints:
            waypoints = self._waypoints
        else:
            waypoints = (points[0], points[-1])
        corridor = self._corridor_result(points, self.config.frames_layer, parsed)
        report = self.compute_restrictions(points, parsed)
        try:
            plans, notices = await self._synthesize(
                token, points, waypoints, parsed, corridor, report
            )
        except StaleResultError as exc:
            self._log.debug("Bypass request superseded: %s", exc)
            return []
        for notice in notices:
            self._log.warning(notice)
        return plans

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _layer(self, name: str) -> Optional[FeatureIndex]:
        """Index of ``name`` as loaded for the current route.

        Layers preloaded by the build keep serving queries after their cache
        entry expires; other layers come from whatever the cache holds.
        """
        if name in self._indexes:
            return self._indexes[name]
        return self._layers.peek(name)

    def _corridor_result(
        self, route: Optional[Sequence[Any]], layer: str, profile: VehicleProfile
    ) -> CorridorResult:
        key = route_key(route)
        cache_key = f"{layer}:{profile.value}"
        cached = self._corridor_cache.get(cache_key)
        if cached is not None and cached.route_key == key:
            return cached
        result = self._corridor_filter.compute(
            route, self._layer(layer), profile, layer=layer
        )
        self._corridor_cache[cache_key] = result
        return result

    async def _synthesize(
        self,
        token: int,
        route: Sequence[LatLon],
        waypoints: Sequence[LatLon],
        profile: VehicleProfile,
        corridor: CorridorResult,
        report: RestrictionReport,
    ) -> Tuple[List[BypassPlan], List[str]]:
        if profile.is_exempt:
            return [], []

        def still_current() -> bool:
            return self.is_current(token)

        options = (
            self._options
            if self._options.profile is profile
            else RouteOptions.for_profile(profile)
        )
        plans: List[BypassPlan] = []
        notices: List[str] = []

        frames = self._layer(self.config.frames_layer)
        if frames is not None and corridor.features:
            outcome = await self._bypass.corridor_bypasses(
                route, waypoints, corridor, frames, options, still_current
            )
            plans.extend(outcome.plans)
            if outcome.failed:
                notices.append(
                    f"{outcome.failed} of {outcome.attempted} frame bypass routes could not be built"
                )

        if report.violations:
            outcome = await self._bypass.restriction_bypass(
                route,
                waypoints,
                report,
                self._layer(self.config.allowed_layer),
                options,
                still_current,
            )
            plans.extend(outcome.plans)
            if outcome.failed:
                notices.append("Restriction bypass route could not be built")
        return plans, notices


__all__ = ["BuildState", "RouteController", "RouteControllerConfig"]
