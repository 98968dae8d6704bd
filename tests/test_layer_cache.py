"""Tests for the session layer cache."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List

import pytest

from route_corridor.errors import LayerLoadError
from route_corridor.geometry import collection_from_features
from route_corridor.layer_cache import LayerCache
from route_corridor.models import FeatureCollection

from conftest import point_feature


class _CountingSource:
    def __init__(self, layers: Dict[str, FeatureCollection]):
        self.layers = layers
        self.loads: List[str] = []

    def load(self, layer: str) -> FeatureCollection:
        self.loads.append(layer)
        if layer not in self.layers:
            raise LayerLoadError(f"no layer {layer}")
        return self.layers[layer]


@pytest.fixture
def source() -> _CountingSource:
    return _CountingSource(
        {"frames": collection_from_features("frames", [point_feature(55.0, 37.0, "a")])}
    )


def test_layer_is_loaded_once(source) -> None:
    cache = LayerCache(source)
    first = asyncio.run(cache.get("frames"))
    second = asyncio.run(cache.get("frames"))
    assert first is second
    assert len(first) == 1
    assert source.loads == ["frames"]
    assert cache.peek("frames") is first


def test_failed_layer_is_marked_unavailable_and_retried(
    source, caplog: pytest.LogCaptureFixture
) -> None:
    cache = LayerCache(source)
    with caplog.at_level(logging.WARNING, logger="route_corridor.layer_cache"):
        assert asyncio.run(cache.get("hgv_allowed")) is None
    assert cache.unavailable == frozenset({"hgv_allowed"})
    assert "hgv_allowed unavailable" in caplog.text

    asyncio.run(cache.get("hgv_allowed"))
    assert source.loads.count("hgv_allowed") == 2


def test_preload_reports_each_layer(source) -> None:
    cache = LayerCache(source)
    result = asyncio.run(cache.preload(["frames", "federal"]))
    assert list(result) == ["frames", "federal"]
    assert result["frames"] is not None
    assert result["federal"] is None


def test_invalidate_forces_reload(source) -> None:
    cache = LayerCache(source, ttl_seconds=0)
    asyncio.run(cache.get("frames"))
    cache.invalidate("frames")
    assert cache.peek("frames") is None
    asyncio.run(cache.get("frames"))
    cache.invalidate()
    assert cache.peek("frames") is None
    assert source.loads == ["frames", "frames"]
