"""Dataclasses describing route geometry inputs and derived results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

from . import config

LOGGER = logging.getLogger(__name__)


LatLon = Tuple[float, float]
Polyline = Sequence[LatLon]
# Validated route coordinates; identifies the route a derived result belongs to.
RouteKey = Tuple[LatLon, ...]


class GeometryType(str, Enum):
    POINT = "Point"
    LINESTRING = "LineString"
    POLYGON = "Polygon"


@dataclass(frozen=True, slots=True)
class PointGeometry:
    coordinate: LatLon

    @property
    def type(self) -> GeometryType:
        return GeometryType.POINT

    @property
    def vertices(self) -> Tuple[LatLon, ...]:
        return (self.coordinate,)


@dataclass(frozen=True, slots=True)
class LineGeometry:
    points: Tuple[LatLon, ...]

    @property
    def type(self) -> GeometryType:
        return GeometryType.LINESTRING

    @property
    def vertices(self) -> Tuple[LatLon, ...]:
        return self.points


@dataclass(frozen=True, slots=True)
class PolygonGeometry:
    """Outer ring of a polygon; interior rings are not modelled."""

    ring: Tuple[LatLon, ...]

    @property
    def type(self) -> GeometryType:
        return GeometryType.POLYGON

    @property
    def vertices(self) -> Tuple[LatLon, ...]:
        return self.ring


Geometry = Union[PointGeometry, LineGeometry, PolygonGeometry]


@dataclass(frozen=True, slots=True)
class Feature:
    """A validated feature. ``tags`` carry display metadata only."""

    id: str
    geometry: Geometry
    tags: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @property
    def geometry_type(self) -> GeometryType:
        return self.geometry.type


@dataclass(frozen=True, slots=True)
class FeatureCollection:
    """Immutable set of features keyed by id for a single layer."""

    layer: str
    features: Tuple[Feature, ...] = ()
    properties: Mapping[str, Any] = field(default_factory=dict, hash=False)
    _by_id: Mapping[str, Feature] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_id: Dict[str, Feature] = {}
        for feature in self.features:
            if feature.id in by_id:
                raise ValueError(f"Duplicate feature id {feature.id!r} in {self.layer}")
            by_id[feature.id] = feature
        object.__setattr__(self, "features", tuple(self.features))
        object.__setattr__(self, "_by_id", MappingProxyType(by_id))

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def get(self, feature_id: str) -> Optional[Feature]:
        return self._by_id.get(feature_id)

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._by_id)


class VehicleProfile(str, Enum):
    """Vehicle class selecting which permission rule applies."""

    AUTO = "auto"
    CAR = "car"
    TRUCK_LIGHT = "truckLight"
    TRUCK_HEAVY = "truckHeavy"

    @classmethod
    def parse(cls, value: "VehicleProfile | str | None") -> "VehicleProfile":
        """Return the profile for a UI/config value (case-insensitive)."""

        if isinstance(value, VehicleProfile):
            return value
        if value is None:
            LOGGER.debug("No vehicle profile given; defaulting to %s", cls.TRUCK_LIGHT.value)
            return cls.TRUCK_LIGHT
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        if normalized in _PROFILE_ALIASES:
            return _PROFILE_ALIASES[normalized]
        raise ValueError(f"Unknown vehicle profile: {value!r}")

    @property
    def is_exempt(self) -> bool:
        """Cars are never subject to frame or HGV zone checks."""
        return self in (VehicleProfile.AUTO, VehicleProfile.CAR)

    @property
    def is_heavy(self) -> bool:
        return self is VehicleProfile.TRUCK_HEAVY


_PROFILE_ALIASES = {
    "truck40": VehicleProfile.TRUCK_LIGHT,
    "truck": VehicleProfile.TRUCK_LIGHT,
    "truck_light": VehicleProfile.TRUCK_LIGHT,
    "truck_heavy": VehicleProfile.TRUCK_HEAVY,
}


@dataclass(frozen=True, slots=True)
class VehicleDimensions:
    height_m: float
    width_m: float
    length_m: float


@dataclass(frozen=True, slots=True)
class RouteOptions:
    """Constraints forwarded to the external router."""

    profile: VehicleProfile = VehicleProfile.TRUCK_LIGHT
    weight_kg: Optional[float] = None
    axle_count: Optional[int] = None
    dimensions: Optional[VehicleDimensions] = None
    alternatives: int = config.ROUTER_ALTERNATIVES

    @classmethod
    def for_profile(
        cls, profile: VehicleProfile | str, *, alternatives: Optional[int] = None
    ) -> "RouteOptions":
        """Return the vehicle preset for ``profile``."""

        parsed = VehicleProfile.parse(profile)
        alt = alternatives if alternatives and alternatives > 0 else config.ROUTER_ALTERNATIVES
        if parsed.is_exempt:
            return cls(profile=parsed, alternatives=alt)
        if parsed.is_heavy:
            return cls(
                profile=parsed,
                weight_kg=config.TRUCK_HEAVY_WEIGHT_KG,
                axle_count=config.TRUCK_HEAVY_AXLES,
                dimensions=VehicleDimensions(*config.TRUCK_HEAVY_DIMENSIONS),
                alternatives=alt,
            )
        return cls(
            profile=parsed,
            weight_kg=config.TRUCK_LIGHT_WEIGHT_KG,
            axle_count=config.TRUCK_LIGHT_AXLES,
            dimensions=VehicleDimensions(*config.TRUCK_LIGHT_DIMENSIONS),
            alternatives=alt,
        )

    def with_alternatives(self, count: int) -> "RouteOptions":
        return RouteOptions(
            profile=self.profile,
            weight_kg=self.weight_kg,
            axle_count=self.axle_count,
            dimensions=self.dimensions,
            alternatives=count,
        )


@dataclass(frozen=True, slots=True)
class RouteResult:
    """Normalised router response."""

    primary_polyline: Tuple[LatLon, ...]
    alternatives: Tuple[Tuple[LatLon, ...], ...] = ()
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None

    @property
    def routes(self) -> Tuple[Tuple[LatLon, ...], ...]:
        """Primary route followed by alternatives, in router order."""
        return (self.primary_polyline, *self.alternatives)


@dataclass(frozen=True, slots=True)
class CorridorResult:
    """Features of one layer inside the buffer around a specific route."""

    layer: str
    route_key: RouteKey
    feature_ids: frozenset[str] = frozenset()
    features: Tuple[Feature, ...] = ()
    buffer_m: float = config.CORRIDOR_BUFFER_M

    @classmethod
    def empty(
        cls, layer: str, route_key: RouteKey, buffer_m: float = config.CORRIDOR_BUFFER_M
    ) -> "CorridorResult":
        return cls(layer=layer, route_key=route_key, buffer_m=buffer_m)

    def is_visible(self, feature_id: str) -> bool:
        return feature_id in self.feature_ids

    def __len__(self) -> int:
        return len(self.feature_ids)


@dataclass(frozen=True, slots=True)
class Violation:
    sample_index: int
    route_index: int
    coordinate: LatLon


@dataclass(frozen=True, slots=True)
class RestrictionReport:
    """Ordered restriction violations for one route/profile pair."""

    profile: VehicleProfile
    violations: Tuple[Violation, ...] = ()
    samples_taken: int = 0

    @classmethod
    def empty(cls, profile: VehicleProfile) -> "RestrictionReport":
        return cls(profile=profile)

    @property
    def count(self) -> int:
        return len(self.violations)

    @property
    def summary(self) -> str:
        if not self.violations:
            return "No HGV restriction violations along the route"
        return (
            f"{self.count} of {self.samples_taken} sampled points are outside "
            f"permitted HGV zones for {self.profile.value}"
        )


@dataclass(frozen=True, slots=True)
class BypassPlan:
    """Alternative geometry returned by the router for one detour candidate."""

    kind: str
    source_id: Optional[str]
    inserted_waypoints: Tuple[LatLon, ...]
    resulting_polyline: Tuple[LatLon, ...]
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None


@dataclass(slots=True)
class RouteAnalysis:
    """Everything derived for one route build cycle."""

    token: int
    profile: VehicleProfile
    waypoints: Tuple[LatLon, ...]
    route: RouteResult
    active_index: int
    corridor: CorridorResult
    restrictions: RestrictionReport
    bypasses: list[BypassPlan] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)

    @property
    def active_polyline(self) -> Tuple[LatLon, ...]:
        return self.route.routes[self.active_index]


__all__ = [
    "BypassPlan",
    "CorridorResult",
    "Feature",
    "FeatureCollection",
    "Geometry",
    "GeometryType",
    "LatLon",
    "LineGeometry",
    "PointGeometry",
    "Polyline",
    "PolygonGeometry",
    "RestrictionReport",
    "RouteAnalysis",
    "RouteKey",
    "RouteOptions",
    "RouteResult",
    "VehicleDimensions",
    "VehicleProfile",
    "Violation",
]
