"""Detour synthesis around near-route frames and restriction violations.

Both flavours build an augmented waypoint list and hand it to the external
router; only the geometry, distance and duration of the returned route are
kept. A failed or timed-out router call simply yields no plan.

The corridor detour midpoint is offset perpendicular to the anchor chord by a
distance expressed in degrees (chord length * ratio, clamped). A fixed degree
offset covers fewer metres of longitude at high latitudes; this heuristic is
kept as is.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import math
from typing import Any, Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..config import (
    BYPASS_ANCHOR_OFFSET,
    BYPASS_MAX_FEATURES,
    BYPASS_OFFSET_MAX_DEG,
    BYPASS_OFFSET_MIN_DEG,
    BYPASS_OFFSET_RATIO,
    BYPASS_ROUTE_TIMEOUT_S,
    RESTRICTION_MAX_SAMPLES,
)
from ..errors import ExternalServiceError, StaleResultError
from ..geometry import FeatureIndex, clean_polyline, coerce_coordinate, distance
from ..models import (
    BypassPlan,
    CorridorResult,
    LatLon,
    RestrictionReport,
    RouteOptions,
)
from .restriction_service import sample_route

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..routing_client.router import Router

StillCurrent = Callable[[], bool]

CORRIDOR_BYPASS = "corridor"
RESTRICTION_BYPASS = "restriction"


@dataclass(slots=True)
class BypassSynthesizerConfig:
    max_features: int = BYPASS_MAX_FEATURES
    anchor_offset: int = BYPASS_ANCHOR_OFFSET
    offset_ratio: float = BYPASS_OFFSET_RATIO
    offset_min_deg: float = BYPASS_OFFSET_MIN_DEG
    offset_max_deg: float = BYPASS_OFFSET_MAX_DEG
    route_timeout_s: float = BYPASS_ROUTE_TIMEOUT_S
    max_samples: int = RESTRICTION_MAX_SAMPLES
    logger: logging.Logger | None = None


@dataclass(slots=True)
class BypassOutcome:
    """Plans produced for one bypass flavour plus failure bookkeeping."""

    plans: List[BypassPlan] = field(default_factory=list)
    attempted: int = 0
    failed: int = 0


def insert_before_destination(
    waypoints: Sequence[LatLon], inserted: Sequence[LatLon]
) -> List[LatLon]:
    """Return ``waypoints`` with ``inserted`` spliced in just before the last point."""

    if not waypoints:
        return list(inserted)
    return [*waypoints[:-1], *inserted, waypoints[-1]]


class BypassSynthesizer:
    def __init__(self, router: "Router", config: BypassSynthesizerConfig | None = None):
        self._router = router
        self.config = config or BypassSynthesizerConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    def detour_waypoints(
        self, route: Sequence[Any], target: Any
    ) -> Optional[Tuple[LatLon, LatLon, LatLon]]:
        """Return ``(before, midpoint, after)`` steering the route around ``target``."""

        point = coerce_coordinate(target)
        cleaned = clean_polyline(route)
        if point is None or len(cleaned) < 2:
            return None
        samples = [coord for _, coord in sample_route(cleaned, self.config.max_samples)]
        if len(samples) < 2:
            return None

        nearest = min(range(len(samples)), key=lambda idx: distance(samples[idx], point))
        offset = self.config.anchor_offset
        before = samples[max(0, nearest - offset)]
        after = samples[min(len(samples) - 1, nearest + offset)]

        d_lat = after[0] - before[0]
        d_lon = after[1] - before[1]
        chord = math.hypot(d_lat, d_lon)
        if chord == 0.0:
            return None
        shift = min(
            self.config.offset_max_deg,
            max(self.config.offset_min_deg, chord * self.config.offset_ratio),
        )
        perp_lat = -d_lon / chord
        perp_lon = d_lat / chord
        mid_lat = (before[0] + after[0]) / 2
        mid_lon = (before[1] + after[1]) / 2
        # Push the midpoint to the side of the chord away from the target.
        if perp_lat * (point[0] - mid_lat) + perp_lon * (point[1] - mid_lon) > 0:
            perp_lat, perp_lon = -perp_lat, -perp_lon
        midpoint = coerce_coordinate((mid_lat + perp_lat * shift, mid_lon + perp_lon * shift))
        if midpoint is None:
            return None
        return before, midpoint, after

    # ------------------------------------------------------------------
    # Router-backed synthesis
    # ------------------------------------------------------------------
    async def corridor_bypasses(
        self,
        route: Sequence[Any],
        waypoints: Sequence[LatLon],
        corridor: CorridorResult,
        index: FeatureIndex,
        options: RouteOptions,
        still_current: StillCurrent | None = None,
    ) -> BypassOutcome:
        """Try one detour per corridor feature, in feature order, up to the cap."""

        outcome = BypassOutcome()
        cleaned = clean_polyline(route)
        if len(cleaned) < 2:
            return outcome
        for feature in corridor.features[: max(0, self.config.max_features)]:
            target = index.representative_point(feature, cleaned)
            anchors = self.detour_waypoints(cleaned, target)
            if anchors is None:
                self._log.debug("No detour geometry for feature=%s", feature.id)
                continue
            outcome.attempted += 1
            plan = await self._request(
                CORRIDOR_BYPASS, feature.id, waypoints, cleaned, anchors, options, still_current
            )
            if plan is None:
                outcome.failed += 1
                continue
            outcome.plans.append(plan)
        return outcome

    async def restriction_bypass(
        self,
        route: Sequence[Any],
        waypoints: Sequence[LatLon],
        report: RestrictionReport,
        allowed_index: Optional[FeatureIndex],
        options: RouteOptions,
        still_current: StillCurrent | None = None,
    ) -> BypassOutcome:
        """Route through the allowed-zone vertex nearest the first violation."""

        outcome = BypassOutcome()
        if not report.violations or allowed_index is None:
            return outcome
        first = report.violations[0]
        target = allowed_index.nearest_covered_point(first.coordinate)
        if target is None:
            self._log.debug("No allowed-zone vertex near violation at %s", first.coordinate)
            return outcome
        outcome.attempted += 1
        plan = await self._request(
            RESTRICTION_BYPASS,
            None,
            waypoints,
            clean_polyline(route),
            (target,),
            options,
            still_current,
        )
        if plan is None:
            outcome.failed += 1
        else:
            outcome.plans.append(plan)
        return outcome

    async def _request(
        self,
        kind: str,
        source_id: Optional[str],
        waypoints: Sequence[LatLon],
        route: Sequence[LatLon],
        inserted: Sequence[LatLon],
        options: RouteOptions,
        still_current: StillCurrent | None,
    ) -> Optional[BypassPlan]:
        if still_current is not None and not still_current():
            raise StaleResultError(f"{kind} bypass abandoned: route changed")
        base = list(waypoints) if len(waypoints) >= 2 else [route[0], route[-1]]
        augmented = insert_before_destination(base, inserted)
        try:
            result = await asyncio.wait_for(
                self._router.build(augmented, options.with_alternatives(1)),
                timeout=self.config.route_timeout_s,
            )
        except asyncio.TimeoutError:
            self._log.warning(
                "%s bypass source=%s timed out after %.0fs",
                kind,
                source_id,
                self.config.route_timeout_s,
            )
            return None
        except ExternalServiceError as exc:
            self._log.warning("%s bypass source=%s failed: %s", kind, source_id, exc)
            return None
        if still_current is not None and not still_current():
            raise StaleResultError(f"{kind} bypass result arrived for a stale route")

        polyline = clean_polyline(result.primary_polyline)
        if len(polyline) < 2:
            self._log.warning("%s bypass source=%s returned no geometry", kind, source_id)
            return None
        return BypassPlan(
            kind=kind,
            source_id=source_id,
            inserted_waypoints=tuple(inserted),
            resulting_polyline=tuple(polyline),
            distance_m=result.distance_m,
            duration_s=result.duration_s,
        )


__all__ = [
    "CORRIDOR_BYPASS",
    "RESTRICTION_BYPASS",
    "BypassOutcome",
    "BypassSynthesizer",
    "BypassSynthesizerConfig",
    "insert_before_destination",
]
