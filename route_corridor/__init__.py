"""Route corridor analysis and HGV restriction package."""

from .controller import BuildState, RouteController, RouteControllerConfig
from .errors import (
    ExternalServiceError,
    GeocodeError,
    InvalidGeometryError,
    LayerLoadError,
    RouteBuildError,
    RouteCorridorError,
    StaleResultError,
)
from .layer_cache import LayerCache
from .models import (
    BypassPlan,
    CorridorResult,
    Feature,
    FeatureCollection,
    RestrictionReport,
    RouteAnalysis,
    RouteOptions,
    RouteResult,
    VehicleProfile,
    Violation,
)

__all__ = [
    "BuildState",
    "RouteController",
    "RouteControllerConfig",
    "LayerCache",
    "BypassPlan",
    "CorridorResult",
    "Feature",
    "FeatureCollection",
    "RestrictionReport",
    "RouteAnalysis",
    "RouteOptions",
    "RouteResult",
    "VehicleProfile",
    "Violation",
    "RouteCorridorError",
    "InvalidGeometryError",
    "ExternalServiceError",
    "GeocodeError",
    "RouteBuildError",
    "LayerLoadError",
    "StaleResultError",
]
