"""Service layer package.

Exports the corridor, restriction and bypass services consumed by the route
controller.
"""

from .bypass_service import BypassOutcome, BypassSynthesizer, BypassSynthesizerConfig
from .corridor_service import CorridorFilter, CorridorFilterConfig
from .restriction_service import RestrictionChecker, RestrictionCheckerConfig, sample_route

__all__ = [
    "BypassOutcome",
    "BypassSynthesizer",
    "BypassSynthesizerConfig",
    "CorridorFilter",
    "CorridorFilterConfig",
    "RestrictionChecker",
    "RestrictionCheckerConfig",
    "sample_route",
]
