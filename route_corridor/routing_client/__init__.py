"""External collaborators: router, geocoder and feature-layer sources."""

from .feature_source import FeatureSource, GeoJSONFeatureSource  # noqa: F401
from .http import JsonHttpClient  # noqa: F401
from .rate_limiter import RateLimiter  # noqa: F401
from .router import HttpRouter, Router  # noqa: F401
from .session import create_default_session, get_default_session  # noqa: F401
