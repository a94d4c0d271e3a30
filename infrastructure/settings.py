"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from core.services.basemap_selector import HybridTileConfig, MapConfig, OfflineTileConfig
from core.services.geo_bounds import DEFAULT_BUFFER_FEET
from core.services.ingestion import DEFAULT_EXTENSIONS


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonSettings:
        """Build settings from an in-memory mapping (no file involved)."""
        inst = cls.__new__(cls)
        inst._path = Path("<memory>")
        inst._data = data
        return inst

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def _as_str(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def load_map_config(settings: JsonSettings) -> MapConfig:
    """Build `MapConfig` from the `map.*` section, falling back to defaults."""
    offline: OfflineTileConfig | None = None
    raw_offline = settings.get("map.offline")
    if isinstance(raw_offline, dict):
        base = OfflineTileConfig()
        offline = OfflineTileConfig(
            url=_as_str(raw_offline.get("url"), base.url),
            min_zoom=_as_int(raw_offline.get("min_zoom"), base.min_zoom),
            max_zoom=_as_int(raw_offline.get("max_zoom"), base.max_zoom),
            attribution=_as_str(raw_offline.get("attribution"), base.attribution),
        )

    hybrid: HybridTileConfig | None = None
    raw_hybrid = settings.get("map.hybrid")
    if isinstance(raw_hybrid, dict):
        base_h = HybridTileConfig()
        token = raw_hybrid.get("token")
        hybrid = HybridTileConfig(
            token=token.strip() if isinstance(token, str) else "",
            style=_as_str(raw_hybrid.get("style"), base_h.style),
            min_zoom=_as_int(raw_hybrid.get("min_zoom"), base_h.min_zoom),
            max_zoom=_as_int(raw_hybrid.get("max_zoom"), base_h.max_zoom),
            attribution=_as_str(raw_hybrid.get("attribution"), base_h.attribution),
        )

    center = settings.get("map.default_view.center", [39.0, -98.0])
    try:
        default_center = (float(center[0]), float(center[1]))
    except (TypeError, ValueError, IndexError):
        logger.warning("Invalid map.default_view.center {!r}, using default", center)
        default_center = (39.0, -98.0)

    return MapConfig(
        offline=offline,
        hybrid=hybrid,
        buffer_feet=_as_float(settings.get("map.buffer_feet"), DEFAULT_BUFFER_FEET),
        default_center=default_center,
        default_zoom=_as_int(settings.get("map.default_view.zoom"), 4),
    )


def load_extensions(settings: JsonSettings) -> tuple[str, ...]:
    """Accepted image suffixes from `ingestion.extensions`."""
    raw = settings.get("ingestion.extensions")
    if isinstance(raw, list):
        exts = tuple(str(e).lower() for e in raw if isinstance(e, str) and e.strip())
        if exts:
            return exts
    return DEFAULT_EXTENSIONS


def expand_path(value: Any, default: str | None = None) -> str | None:
    """Expand environment variables and `~` in a configured path."""
    if isinstance(value, str) and value.strip():
        return os.path.expanduser(os.path.expandvars(value))
    return default
