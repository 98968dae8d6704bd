"""Session cache of loaded feature layers.

Each layer is fetched once through a ``FeatureSource`` and kept as a
``FeatureIndex`` until it expires or is invalidated explicitly. A failed load
marks the layer unavailable (logged, not raised) and is retried on the next
request.
"""

from __future__ import annotations

import asyncio
import logging
from threading import RLock
from typing import Dict, Iterable, Optional

from cachetools import LRUCache, TTLCache

from .config import LAYER_CACHE_MAX_ENTRIES, LAYER_CACHE_TTL_SECONDS
from .errors import LayerLoadError
from .geometry import FeatureIndex
from .routing_client.feature_source import FeatureSource

LOGGER = logging.getLogger(__name__)


class LayerCache:
    def __init__(
        self,
        source: FeatureSource,
        *,
        ttl_seconds: int = LAYER_CACHE_TTL_SECONDS,
        max_entries: int = LAYER_CACHE_MAX_ENTRIES,
    ) -> None:
        self._source = source
        maxsize = max(1, max_entries)
        if ttl_seconds > 0:
            self._cache: LRUCache[str, FeatureIndex] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        else:
            self._cache = LRUCache(maxsize=maxsize)
        self._lock = RLock()
        self._unavailable: set[str] = set()

    def peek(self, layer: str) -> Optional[FeatureIndex]:
        """Return the cached index for ``layer`` without loading it."""
        with self._lock:
            return self._cache.get(layer)

    def put(self, layer: str, index: FeatureIndex) -> None:
        with self._lock:
            self._cache[layer] = index
            self._unavailable.discard(layer)

    async def get(self, layer: str) -> Optional[FeatureIndex]:
        """Return the index for ``layer``, loading it on a cache miss.

        Returns None when the source cannot provide the layer.
        """

        cached = self.peek(layer)
        if cached is not None:
            return cached
        try:
            collection = await asyncio.to_thread(self._source.load, layer)
        except LayerLoadError as exc:
            with self._lock:
                self._unavailable.add(layer)
            LOGGER.warning("Layer %s unavailable: %s", layer, exc)
            return None
        index = FeatureIndex(collection)
        self.put(layer, index)
        return index

    async def preload(self, layers: Iterable[str]) -> Dict[str, Optional[FeatureIndex]]:
        """Load ``layers`` in order and return what each resolved to."""

        return {layer: await self.get(layer) for layer in layers}

    def invalidate(self, layer: str | None = None) -> None:
        """Drop one layer (or all of them) so the next request reloads it."""

        with self._lock:
            if layer is None:
                self._cache.clear()
                self._unavailable.clear()
            else:
                self._cache.pop(layer, None)
                self._unavailable.discard(layer)
        LOGGER.debug("Invalidated layer cache entry: %s", layer or "<all>")

    @property
    def unavailable(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._unavailable)


__all__ = ["LayerCache"]
