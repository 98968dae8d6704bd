"""Corridor filtering: which features of a layer sit next to the active route.

The visible-id set is memoised per (route, index, profile) so map redraws can
query visibility without re-running the distance scan. Callers are expected to
drop results whose ``route_key`` no longer matches the active route.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
import logging
from typing import Any, Optional, Sequence, Tuple

from ..config import CORRIDOR_BUFFER_M
from ..geometry import FeatureIndex, route_key
from ..models import CorridorResult, RouteKey, VehicleProfile

_MemoKey = Tuple[RouteKey, FeatureIndex, VehicleProfile, float]


@dataclass(slots=True)
class CorridorFilterConfig:
    buffer_m: float = CORRIDOR_BUFFER_M
    memo_size: int = 8
    logger: logging.Logger | None = None


class CorridorFilter:
    def __init__(self, config: CorridorFilterConfig | None = None):
        self.config = config or CorridorFilterConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._memo: "OrderedDict[_MemoKey, CorridorResult]" = OrderedDict()

    def compute(
        self,
        route: Optional[Sequence[Any]],
        index: Optional[FeatureIndex],
        profile: VehicleProfile | str,
        *,
        layer: Optional[str] = None,
    ) -> CorridorResult:
        """Return the features of ``index`` within the buffer around ``route``."""

        parsed = VehicleProfile.parse(profile)
        buffer_m = self.config.buffer_m
        layer_name = layer or (index.layer if index is not None else "")
        key = route_key(route)

        if parsed.is_exempt:
            self._log.debug("Corridor for layer=%s forced empty for %s", layer_name, parsed.value)
            return CorridorResult.empty(layer_name, key, buffer_m)
        if len(key) < 2:
            return CorridorResult.empty(layer_name, key, buffer_m)
        if index is None or index.is_empty:
            return CorridorResult.empty(layer_name, key, buffer_m)

        memo_key: _MemoKey = (key, index, parsed, buffer_m)
        cached = self._memo.get(memo_key)
        if cached is not None:
            self._memo.move_to_end(memo_key)
            return cached

        ids = index.features_within_buffer(key, buffer_m)
        result = CorridorResult(
            layer=layer_name,
            route_key=key,
            feature_ids=ids,
            features=index.features_for(ids),
            buffer_m=buffer_m,
        )
        self._memo[memo_key] = result
        while len(self._memo) > max(1, self.config.memo_size):
            self._memo.popitem(last=False)
        self._log.info(
            "Corridor layer=%s: %d of %d features within %.0fm of route",
            layer_name,
            len(ids),
            len(index),
            buffer_m,
        )
        return result

    def invalidate(self) -> None:
        """Forget memoised results (e.g. after a layer reload)."""
        self._memo.clear()


__all__ = ["CorridorFilter", "CorridorFilterConfig"]
