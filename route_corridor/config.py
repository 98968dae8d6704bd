"""Central configuration for the route corridor engine.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Endpoints and tuning knobs can be overridden through
environment variables (optionally via a local `.env`).
"""

from __future__ import annotations

import os

from dotenv import load_dotenv


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Geometry constants
# ---------------------------------------------------------------------------
# Mean Earth radius used by the haversine distance.
EARTH_RADIUS_M = 6_371_000.0

# Equatorial radius used only by the local equirectangular projection in
# point-to-segment distance. Intentionally different from EARTH_RADIUS_M.
PROJECTION_RADIUS_M = 6_378_137.0


# ---------------------------------------------------------------------------
# Corridor / restriction tuning
# ---------------------------------------------------------------------------
# Buffer (metres) around the active route inside which frames are shown.
CORRIDOR_BUFFER_M = _env_float("CORRIDOR_BUFFER_M", 100.0)

# Upper bound on route samples examined by the restriction checker.
RESTRICTION_MAX_SAMPLES = _env_int("RESTRICTION_MAX_SAMPLES", 200)

# Zone coverage tolerance (metres) per truck class.
RESTRICTION_TOLERANCE_LIGHT_M = _env_float("RESTRICTION_TOLERANCE_LIGHT_M", 120.0)
RESTRICTION_TOLERANCE_HEAVY_M = _env_float("RESTRICTION_TOLERANCE_HEAVY_M", 150.0)


# ---------------------------------------------------------------------------
# Bypass synthesis
# ---------------------------------------------------------------------------
# Maximum number of near-route frames that get a detour attempt per build.
BYPASS_MAX_FEATURES = _env_int("BYPASS_MAX_FEATURES", 5)

# Route samples taken before/after the nearest sample as detour anchors.
BYPASS_ANCHOR_OFFSET = _env_int("BYPASS_ANCHOR_OFFSET", 5)

# Perpendicular detour offset = chord length * ratio, clamped to the range
# below (degrees). Degrees are latitude sensitive: ~200 m - 1100 m.
BYPASS_OFFSET_RATIO = _env_float("BYPASS_OFFSET_RATIO", 0.5)
BYPASS_OFFSET_MIN_DEG = 0.002
BYPASS_OFFSET_MAX_DEG = 0.01

# Seconds allowed for a single bypass router call before it is dropped.
BYPASS_ROUTE_TIMEOUT_S = _env_float("BYPASS_ROUTE_TIMEOUT_S", 20.0)


# ---------------------------------------------------------------------------
# Router / geocoder settings
# ---------------------------------------------------------------------------
# Valhalla-compatible routing endpoint.
ROUTER_BASE_URL = os.getenv("ROUTER_BASE_URL", "http://localhost:8002")

# Nominatim-compatible geocoding endpoint.
GEOCODER_BASE_URL = os.getenv(
    "GEOCODER_BASE_URL", "https://nominatim.openstreetmap.org"
)
GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "route-corridor/0.1")

# Alternatives requested for the primary route.
ROUTER_ALTERNATIVES = _env_int("ROUTER_ALTERNATIVES", 3)

# Vehicle presets (kg, count, metres).
TRUCK_LIGHT_WEIGHT_KG = _env_float("TRUCK_LIGHT_WEIGHT_KG", 40_000.0)
TRUCK_LIGHT_AXLES = _env_int("TRUCK_LIGHT_AXLES", 4)
TRUCK_LIGHT_DIMENSIONS = (4.0, 2.55, 16.0)  # height, width, length
TRUCK_HEAVY_WEIGHT_KG = _env_float("TRUCK_HEAVY_WEIGHT_KG", 60_000.0)
TRUCK_HEAVY_AXLES = _env_int("TRUCK_HEAVY_AXLES", 5)
TRUCK_HEAVY_DIMENSIONS = (4.5, 2.6, 20.0)

# HTTP session pool sizes.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_int("REQUEST_TIMEOUT", 15)

# Retry/backoff behaviour for router and layer fetch loops.
# ROUTER_MAX_RETRIES covers network failures, 5xx, or bad payloads.
ROUTER_MAX_RETRIES = _env_int("ROUTER_MAX_RETRIES", 3)
# ROUTER_BACKOFF_MAX_SECONDS caps the exponential backoff per attempt.
ROUTER_BACKOFF_MAX_SECONDS = _env_float("ROUTER_BACKOFF_MAX_SECONDS", 4.0)

# Rate limiter settings.
# RATE_LIMIT_MAX_CONCURRENT caps total in-flight requests.
RATE_LIMIT_MAX_CONCURRENT = 4
# RATE_LIMIT_JITTER_RANGE adds random delay (seconds) to smooth bursts.
RATE_LIMIT_JITTER_RANGE = (0.0, 0.05)
# RATE_LIMIT_THROTTLE_SECONDS is the pause applied after a 429 without Retry-After.
RATE_LIMIT_THROTTLE_SECONDS = 5
# RATE_LIMIT_MIN_INTERVAL_SECONDS spaces consecutive request starts.
RATE_LIMIT_MIN_INTERVAL_SECONDS = _env_float("RATE_LIMIT_MIN_INTERVAL_SECONDS", 0.0)
# Public Nominatim allows at most one request per second.
GEOCODER_MIN_INTERVAL_SECONDS = _env_float("GEOCODER_MIN_INTERVAL_SECONDS", 1.0)


# ---------------------------------------------------------------------------
# Layer data
# ---------------------------------------------------------------------------
# Directory or base URL holding the GeoJSON layer files.
LAYERS_BASE = os.getenv("LAYERS_BASE", "data")

# Layer name -> (file name, id prefix used for numeric feature ids).
LAYER_FILES = {
    "frames": ("frames_ready.geojson", "frame"),
    "hgv_allowed": ("hgv_allowed.geojson", "hgv-allowed"),
    "hgv_conditional": ("hgv_conditional.geojson", "hgv-conditional"),
    "federal": ("federal.geojson", "federal"),
}
FRAMES_LAYER = "frames"
ALLOWED_LAYER = "hgv_allowed"
CONDITIONAL_LAYER = "hgv_conditional"

# Loaded layers stay cached for the session; TTL (seconds) forces a reload
# of long-lived sessions. Set LAYER_CACHE_TTL_SECONDS=0 to never expire.
LAYER_CACHE_TTL_SECONDS = _env_int("LAYER_CACHE_TTL_SECONDS", 6 * 3600)
LAYER_CACHE_MAX_ENTRIES = _env_int("LAYER_CACHE_MAX_ENTRIES", 16)

# Treat an empty layer file as unavailable instead of an empty collection.
LAYER_EMPTY_IS_UNAVAILABLE = _env_bool("LAYER_EMPTY_IS_UNAVAILABLE", False)
