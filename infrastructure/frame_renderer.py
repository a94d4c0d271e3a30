"""Serializes render frames to JSON for an external map front end."""

from __future__ import annotations

from dataclasses import asdict
import json
from pathlib import Path
from typing import Any

from loguru import logger

from core.services.interfaces import RenderFrame


def frame_to_dict(frame: RenderFrame) -> dict[str, Any]:
    """Plain-dict form of `frame`; tuples become lists."""
    data = asdict(frame)
    if frame.path is not None:
        data["path"] = [list(p) for p in frame.path]
    data["view"]["center"] = list(frame.view.center)
    return data


class JsonFrameRenderer:
    """`MapRenderer` that keeps the last frame and optionally writes it to a file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self.last_frame: RenderFrame | None = None

    def set_path(self, path: str | Path) -> None:
        self._path = Path(path)

    def render(self, frame: RenderFrame) -> None:
        self.last_frame = frame
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(frame_to_dict(frame), f, indent=2)
        logger.debug("Render frame with {} marker(s) written to {}", len(frame.markers), self._path)
