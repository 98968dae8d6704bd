"""Central error types used across the engine."""

from __future__ import annotations


class RouteCorridorError(RuntimeError):
    """Base error for the corridor engine."""


class InvalidGeometryError(RouteCorridorError, ValueError):
    """Raised when a coordinate or geometry cannot be normalised."""


class ExternalServiceError(RouteCorridorError):
    """Base error for router and feature-source failures."""


class GeocodeError(ExternalServiceError):
    """Raised when the geocoder returns no match for an address."""


class RouteBuildError(ExternalServiceError):
    """Raised when the router finds no path or cannot be reached."""


class LayerLoadError(ExternalServiceError):
    """Raised when a feature layer is malformed or unreachable."""


class StaleResultError(RouteCorridorError):
    """Raised when work belongs to a route build that is no longer current."""


__all__ = [
    "RouteCorridorError",
    "InvalidGeometryError",
    "ExternalServiceError",
    "GeocodeError",
    "RouteBuildError",
    "LayerLoadError",
    "StaleResultError",
]
