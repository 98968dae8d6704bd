"""Feature layer sources: contract plus a GeoJSON file/URL implementation."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol, Tuple

from ..config import LAYER_EMPTY_IS_UNAVAILABLE, LAYER_FILES, LAYERS_BASE
from ..errors import InvalidGeometryError, LayerLoadError
from ..geometry.ingest import parse_feature_collection
from ..models import FeatureCollection
from .http import JsonHttpClient

LOGGER = logging.getLogger(__name__)


class FeatureSource(Protocol):
    def load(self, layer: str) -> FeatureCollection:
        """Return the layer's features or raise ``LayerLoadError``."""
        ...


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


class GeoJSONFeatureSource:
    """Loads ``<base>/<layer file>`` from a directory or an HTTP(S) base URL."""

    def __init__(
        self,
        base: str | Path = LAYERS_BASE,
        *,
        layer_files: Mapping[str, Tuple[str, str]] = LAYER_FILES,
        client: JsonHttpClient | None = None,
        empty_is_unavailable: bool = LAYER_EMPTY_IS_UNAVAILABLE,
    ) -> None:
        self._base = str(base).rstrip("/")
        self._layer_files = dict(layer_files)
        self._client = client
        self._empty_is_unavailable = empty_is_unavailable

    def resolve(self, layer: str) -> Tuple[str, str]:
        """Return ``(location, id_prefix)`` for ``layer``."""

        try:
            filename, prefix = self._layer_files[layer]
        except KeyError as exc:
            raise LayerLoadError(f"Unknown layer {layer!r}") from exc
        if _is_url(self._base):
            return f"{self._base}/{filename}", prefix
        return str(Path(self._base) / filename), prefix

    def load(self, layer: str) -> FeatureCollection:
        location, prefix = self.resolve(layer)
        payload = self._read(location)
        try:
            collection, summary = parse_feature_collection(payload, layer, id_prefix=prefix)
        except InvalidGeometryError as exc:
            raise LayerLoadError(f"Malformed GeoJSON in {location}: {exc}") from exc

        if not len(collection):
            LOGGER.warning("Layer %s is empty (%s)", layer, location)
            if self._empty_is_unavailable:
                raise LayerLoadError(f"Layer {layer} has no usable features")
        else:
            LOGGER.info(
                "Loaded %s: %d features (%s)", Path(location).name, len(collection), summary.describe()
            )
        if summary.skipped_invalid or summary.skipped_duplicate:
            LOGGER.info(
                "Layer %s skipped %d invalid and %d duplicate features",
                layer,
                summary.skipped_invalid,
                summary.skipped_duplicate,
            )
        return collection

    def _read(self, location: str) -> Any:
        if _is_url(location):
            if self._client is None:
                self._client = JsonHttpClient()
            return self._client.request_json(
                "GET",
                location,
                headers={"Cache-Control": "no-cache"},
                context=f"layer {location}",
                error_cls=LayerLoadError,
            )
        try:
            with open(location, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except OSError as exc:
            raise LayerLoadError(f"Cannot read layer file {location}: {exc}") from exc
        except ValueError as exc:
            raise LayerLoadError(f"Layer file {location} is not valid JSON") from exc


__all__ = ["FeatureSource", "GeoJSONFeatureSource"]
