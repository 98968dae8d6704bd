"""HGV zone restriction checks along a route.

The route is sampled with a stride chosen so that roughly
``RESTRICTION_MAX_SAMPLES`` points are examined whatever the route length.
This bounds the cost on very long routes at the price of completeness: a short
restricted stretch between two samples can go unnoticed.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, List, Optional, Sequence, Tuple

from ..config import (
    RESTRICTION_MAX_SAMPLES,
    RESTRICTION_TOLERANCE_HEAVY_M,
    RESTRICTION_TOLERANCE_LIGHT_M,
)
from ..geometry import FeatureIndex, clean_polyline
from ..models import LatLon, RestrictionReport, VehicleProfile, Violation


def sample_route(
    route: Sequence[LatLon], max_samples: int = RESTRICTION_MAX_SAMPLES
) -> List[Tuple[int, LatLon]]:
    """Return ``(route_index, coordinate)`` pairs taken every ``stride`` points.

    ``stride = max(1, len(route) // max_samples)``.
    """

    count = len(route)
    if count == 0:
        return []
    stride = max(1, count // max(1, max_samples))
    return [(idx, route[idx]) for idx in range(0, count, stride)]


@dataclass(slots=True)
class RestrictionCheckerConfig:
    max_samples: int = RESTRICTION_MAX_SAMPLES
    light_tolerance_m: float = RESTRICTION_TOLERANCE_LIGHT_M
    heavy_tolerance_m: float = RESTRICTION_TOLERANCE_HEAVY_M
    logger: logging.Logger | None = None


class RestrictionChecker:
    def __init__(self, config: RestrictionCheckerConfig | None = None):
        self.config = config or RestrictionCheckerConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def tolerance_for(self, profile: VehicleProfile) -> float:
        if profile.is_heavy:
            return self.config.heavy_tolerance_m
        return self.config.light_tolerance_m

    def check(
        self,
        route: Optional[Sequence[Any]],
        profile: VehicleProfile | str,
        allowed_index: Optional[FeatureIndex],
        conditional_index: Optional[FeatureIndex],
    ) -> RestrictionReport:
        """Return sampled route points not covered by a permitted zone.

        Heavy profiles may only use unconditionally allowed zones; lighter
        trucks are also satisfied by conditional zones.
        """

        parsed = VehicleProfile.parse(profile)
        if parsed.is_exempt:
            return RestrictionReport.empty(parsed)
        cleaned = clean_polyline(route)
        if len(cleaned) < 2:
            return RestrictionReport.empty(parsed)
        allowed = allowed_index if allowed_index is not None else FeatureIndex.empty()
        conditional = (
            conditional_index if conditional_index is not None else FeatureIndex.empty()
        )
        if allowed.is_empty and conditional.is_empty:
            self._log.debug("No HGV zone data; skipping restriction check")
            return RestrictionReport.empty(parsed)

        tolerance = self.tolerance_for(parsed)
        use_conditional = not parsed.is_heavy
        samples = sample_route(cleaned, self.config.max_samples)
        violations: List[Violation] = []
        for sample_index, (route_index, coordinate) in enumerate(samples):
            if allowed.is_point_covered(coordinate, tolerance):
                continue
            if use_conditional and conditional.is_point_covered(coordinate, tolerance):
                continue
            violations.append(
                Violation(
                    sample_index=sample_index,
                    route_index=route_index,
                    coordinate=coordinate,
                )
            )

        report = RestrictionReport(
            profile=parsed,
            violations=tuple(violations),
            samples_taken=len(samples),
        )
        if violations:
            self._log.info("%s (tolerance %.0fm)", report.summary, tolerance)
        return report


__all__ = ["RestrictionChecker", "RestrictionCheckerConfig", "sample_route"]
