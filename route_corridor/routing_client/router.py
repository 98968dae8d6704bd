"""External routing collaborator: contract plus an HTTP implementation.

``HttpRouter`` speaks the Valhalla ``/route`` API (truck costing carries the
vehicle weight, axle and dimension limits) and a Nominatim-compatible
``/search`` endpoint for geocoding. Both are blocking ``requests`` calls run
in a worker thread so the controller's event loop never blocks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from polyline import decode as polyline_decode

from ..config import (
    GEOCODER_BASE_URL,
    GEOCODER_MIN_INTERVAL_SECONDS,
    GEOCODER_USER_AGENT,
    ROUTER_BASE_URL,
)
from ..errors import GeocodeError, RouteBuildError
from ..geometry import clean_polyline, coerce_coordinate
from ..models import LatLon, RouteOptions, RouteResult
from .http import JsonHttpClient
from .rate_limiter import RateLimiter

LOGGER = logging.getLogger(__name__)

# Valhalla encodes shapes with six decimal digits.
_SHAPE_PRECISION = 6


class Router(Protocol):
    async def geocode(self, address: str) -> LatLon:
        """Return the best match for ``address`` or raise ``GeocodeError``."""
        ...

    async def build(
        self, waypoints: Sequence[LatLon], options: RouteOptions
    ) -> RouteResult:
        """Return a route through ``waypoints`` or raise ``RouteBuildError``."""
        ...


def build_route_request(
    waypoints: Sequence[LatLon], options: RouteOptions
) -> Dict[str, Any]:
    """Return the Valhalla request body for ``waypoints`` and ``options``."""

    locations = [{"lat": lat, "lon": lon, "type": "break"} for lat, lon in waypoints]
    body: Dict[str, Any] = {
        "locations": locations,
        "units": "kilometers",
        "directions_type": "none",
    }
    if options.profile.is_exempt:
        body["costing"] = "auto"
    else:
        truck: Dict[str, Any] = {}
        if options.weight_kg is not None:
            truck["weight"] = round(options.weight_kg / 1000.0, 3)
        if options.axle_count is not None:
            truck["axle_count"] = options.axle_count
        if options.dimensions is not None:
            truck["height"] = options.dimensions.height_m
            truck["width"] = options.dimensions.width_m
            truck["length"] = options.dimensions.length_m
        body["costing"] = "truck"
        body["costing_options"] = {"truck": truck}
    extra = max(0, options.alternatives - 1)
    if extra:
        body["alternates"] = extra
    return body


def _trip_geometry(trip: Mapping[str, Any]) -> List[LatLon]:
    points: List[LatLon] = []
    for leg in trip.get("legs") or []:
        shape = leg.get("shape") if isinstance(leg, Mapping) else None
        if not shape:
            continue
        try:
            decoded = polyline_decode(shape, _SHAPE_PRECISION)
        except (ValueError, TypeError, IndexError) as exc:
            raise RouteBuildError("Router returned an undecodable shape") from exc
        leg_points = clean_polyline(decoded)
        if points and leg_points and points[-1] == leg_points[0]:
            leg_points = leg_points[1:]
        points.extend(leg_points)
    return points


def _trip_summary(trip: Mapping[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    summary = trip.get("summary")
    if not isinstance(summary, Mapping):
        return None, None
    length_km = summary.get("length")
    time_s = summary.get("time")
    try:
        distance_m = float(length_km) * 1000.0 if length_km is not None else None
        duration_s = float(time_s) if time_s is not None else None
    except (TypeError, ValueError) as exc:
        raise RouteBuildError("Router returned a malformed summary") from exc
    return distance_m, duration_s


def parse_route_response(payload: Any) -> RouteResult:
    """Normalise a Valhalla route response into a ``RouteResult``."""

    trip = payload.get("trip") if isinstance(payload, Mapping) else None
    if not isinstance(trip, Mapping):
        raise RouteBuildError("Router response has no trip")
    primary = _trip_geometry(trip)
    if len(primary) < 2:
        raise RouteBuildError("Router returned an empty route geometry")
    distance_m, duration_s = _trip_summary(trip)

    alternatives: List[Tuple[LatLon, ...]] = []
    for alternate in payload.get("alternates") or []:
        alt_trip = alternate.get("trip") if isinstance(alternate, Mapping) else None
        if not isinstance(alt_trip, Mapping):
            continue
        try:
            geometry = _trip_geometry(alt_trip)
        except RouteBuildError:
            LOGGER.debug("Dropping alternate with undecodable shape")
            continue
        if len(geometry) >= 2:
            alternatives.append(tuple(geometry))
    return RouteResult(
        primary_polyline=tuple(primary),
        alternatives=tuple(alternatives),
        distance_m=distance_m,
        duration_s=duration_s,
    )


class HttpRouter:
    """Router backed by Valhalla routing and Nominatim geocoding.

    Geocoding gets its own client (and limiter) unless one is passed, so the
    one-request-per-second geocoder pacing never delays route builds.
    """

    def __init__(
        self,
        *,
        base_url: str = ROUTER_BASE_URL,
        geocoder_url: str = GEOCODER_BASE_URL,
        client: JsonHttpClient | None = None,
        geocoder_client: JsonHttpClient | None = None,
        user_agent: str = GEOCODER_USER_AGENT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._geocoder_url = geocoder_url.rstrip("/")
        self._client = client or JsonHttpClient()
        if geocoder_client is None:
            geocoder_client = client or JsonHttpClient(
                limiter=RateLimiter(max_concurrent=1, min_interval=GEOCODER_MIN_INTERVAL_SECONDS)
            )
        self._geocoder_client = geocoder_client
        self._user_agent = user_agent

    async def geocode(self, address: str) -> LatLon:
        return await asyncio.to_thread(self.geocode_sync, address)

    async def build(
        self, waypoints: Sequence[LatLon], options: RouteOptions
    ) -> RouteResult:
        return await asyncio.to_thread(self.build_sync, waypoints, options)

    def geocode_sync(self, address: str) -> LatLon:
        query = (address or "").strip()
        if not query:
            raise GeocodeError("Address is empty")
        payload = self._geocoder_client.request_json(
            "GET",
            f"{self._geocoder_url}/search",
            params={"q": query, "format": "json", "limit": 1},
            headers={"User-Agent": self._user_agent},
            context="geocode",
            error_cls=GeocodeError,
        )
        if not isinstance(payload, list) or not payload:
            raise GeocodeError(f"No match for address {query!r}")
        best = payload[0]
        latlon = None
        if isinstance(best, Mapping):
            latlon = coerce_coordinate((best.get("lat"), best.get("lon")))
        if latlon is None:
            raise GeocodeError(f"Geocoder returned an invalid coordinate for {query!r}")
        LOGGER.debug("Geocoded %r -> %s", query, latlon)
        return latlon

    def build_sync(self, waypoints: Sequence[LatLon], options: RouteOptions) -> RouteResult:
        cleaned = clean_polyline(waypoints)
        if len(cleaned) < 2:
            raise RouteBuildError("At least two valid waypoints are required")
        payload = self._client.request_json(
            "POST",
            f"{self._base_url}/route",
            json_body=build_route_request(cleaned, options),
            context="route",
            error_cls=RouteBuildError,
        )
        result = parse_route_response(payload)
        LOGGER.info(
            "Route via %d waypoints: %d points, %d alternates, distance=%sm",
            len(cleaned),
            len(result.primary_polyline),
            len(result.alternatives),
            None if result.distance_m is None else round(result.distance_m),
        )
        return result


__all__ = ["HttpRouter", "Router", "build_route_request", "parse_route_response"]
