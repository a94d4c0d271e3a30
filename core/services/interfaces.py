"""Core service interfaces and shared data structures.

This module defines the collaborator protocols the core talks to (metadata
extraction, archive reading, key-value persistence, map rendering) and the
dataclasses used to report outcomes across the session boundary.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from core.models import BoundingBox


class MetadataReadError(Exception):
    """Raised by an extractor when the image metadata cannot be read at all."""


class MalformedDocumentError(Exception):
    """Raised when an exchange document or archive cannot be parsed."""


class FailureReason(str, Enum):
    """Session-level failure reasons surfaced to the caller."""

    NOTHING_TO_PROCESS = "No JPG images found"
    SESSION_BUSY = "A batch is already being processed"
    MISSING_SESSION_NAME = "Please enter a location name"
    EMPTY_DATASET = "No GPS data to export"
    NO_ARCHIVE_MEMBER = "No KML file found in KMZ archive"
    MALFORMED_DOCUMENT = "Error loading KML/KMZ file"
    TILE_LOAD_FAILURE = "Tile load failed, reverted to fallback basemap"


@dataclass
class Outcome:
    """Typed success/failure result.

    Attributes:
        success: Whether the operation succeeded.
        reason: Failure reason when `success` is False.
        message: Human-readable detail.
        value: Payload on success (document text, counts, ...).
    """

    success: bool
    reason: FailureReason | None = None
    message: str = ""
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None, message: str = "") -> Outcome:
        return cls(success=True, value=value, message=message)

    @classmethod
    def fail(cls, reason: FailureReason, message: str = "") -> Outcome:
        return cls(success=False, reason=reason, message=message or reason.value)


@dataclass
class IngestOutcome:
    """Result of one ingestion batch.

    Attributes:
        nothing_to_process: True when no file matched the suffix allow-list.
        processed: Files attempted.
        added: Images appended to the dataset.
        failed: Error records appended to the dataset.
    """

    nothing_to_process: bool = False
    processed: int = 0
    added: int = 0
    failed: int = 0


@dataclass
class ExtractedMetadata:
    """Flat tag values returned by a metadata extractor."""

    latitude: Any = None
    longitude: Any = None
    altitude: float | None = None
    timestamp: str | None = None
    make: str | None = None
    model: str | None = None
    raw_tags: dict[str, Any] = field(default_factory=dict)


@dataclass
class SourceFile:
    """A named input whose bytes are loaded on demand."""

    name: str
    loader: Callable[[], bytes]

    @classmethod
    def from_path(cls, path: str | Path) -> SourceFile:
        p = Path(path)
        return cls(name=p.name, loader=p.read_bytes)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> SourceFile:
        return cls(name=name, loader=lambda: data)

    def read(self) -> bytes:
        return self.loader()


@dataclass(frozen=True)
class Marker:
    lat: float
    lon: float
    color: str


@dataclass(frozen=True)
class TileLayer:
    """Base layer definition handed to the renderer."""

    provider: str
    url: str
    min_zoom: int
    max_zoom: int
    attribution: str
    tile_size: int = 256


@dataclass(frozen=True)
class MapView:
    """Camera and pan limits for the map surface."""

    center: tuple[float, float]
    zoom: int
    min_zoom: int
    max_zoom: int
    fit_bounds: BoundingBox | None = None
    pan_constraint: BoundingBox | None = None


@dataclass
class RenderFrame:
    """Everything the rendering collaborator needs for one redraw."""

    markers: list[Marker]
    path: list[tuple[float, float]] | None
    bounds: BoundingBox | None
    pan_constraint: BoundingBox | None
    base_layer: TileLayer | None
    view: MapView


class MetadataExtractor(Protocol):
    """Turns raw image bytes into flat tag values."""

    async def extract(self, data: bytes, include_rtk: bool = False) -> ExtractedMetadata:
        """Return extracted tags or raise `MetadataReadError`."""
        raise NotImplementedError


class ArchiveReader(Protocol):
    """Pulls the exchange document out of a compressed container."""

    def read_exchange_member(self, data: bytes) -> str | None:
        """Return the embedded document text, or None when no member is found."""
        raise NotImplementedError


class KeyValueStore(Protocol):
    """Simple string store for tokens and preferences."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str | None) -> None:
        raise NotImplementedError


class MapRenderer(Protocol):
    """Anything that can draw a `RenderFrame`."""

    def render(self, frame: RenderFrame) -> None:
        raise NotImplementedError
