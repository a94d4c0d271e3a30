"""Core domain models for ingested images, failures, bounds and basemap state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ErrorReason(str, Enum):
    """Why a file could not become an `ImageRecord`.

    The value is the label shown in reports.
    """

    NO_GPS_DATA = "No GPS data found"
    INVALID_COORDINATES = "Invalid GPS coordinates"
    READ_FAILURE = "Failed to read EXIF data"


class RtkTier(str, Enum):
    """Positioning quality tier derived from RTK fields."""

    FIXED = "Fixed"
    FLOAT = "Float"
    SINGLE = "Single"
    STD_DEV_INFERRED = "StdDevInferred"
    DIFFERENTIAL_INFERRED = "DifferentialInferred"


class BasemapProvider(str, Enum):
    """Base layer sources, exactly one active at a time."""

    NONE = "none"
    OFFLINE = "offline"
    HYBRID = "hybrid"


@dataclass
class RTKData:
    """RTK fields resolved from vendor tags. Every field is independently optional."""

    status: int | None = None
    processing_method: str | None = None
    horizontal_accuracy: float | None = None
    vertical_accuracy: float | None = None
    dop: float | None = None
    differential: int | None = None
    correction_age: float | None = None
    rtk_std_lon: float | None = None
    rtk_std_lat: float | None = None
    rtk_std_hgt: float | None = None
    gps_antenna_offset_north: float | None = None
    gps_antenna_offset_east: float | None = None
    gps_antenna_offset_up: float | None = None
    gps_std_pos_north: float | None = None
    gps_std_pos_east: float | None = None
    gps_std_pos_up: float | None = None


@dataclass
class ImageRecord:
    """A successfully ingested image with in-range coordinates."""

    filename: str
    latitude: float
    longitude: float
    altitude: float | None = None
    timestamp: str | None = None
    make: str | None = None
    model: str | None = None
    rtk: RTKData | None = None


@dataclass
class ErrorRecord:
    """A single ingestion failure."""

    filename: str
    reason: ErrorReason
    details: str = ""


@dataclass
class Dataset:
    """Images in display order plus the failures collected alongside them."""

    images: list[ImageRecord] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)

    @property
    def coordinates(self) -> list[tuple[float, float]]:
        """(lat, lon) pairs in image order."""
        return [(img.latitude, img.longitude) for img in self.images]

    @property
    def is_empty(self) -> bool:
        return not self.images and not self.errors


@dataclass(frozen=True)
class BoundingBox:
    """A lat/lon rectangle."""

    south: float
    west: float
    north: float
    east: float

    @property
    def center_latitude(self) -> float:
        return (self.south + self.north) / 2

    def contains(self, lat: float, lon: float) -> bool:
        """True if (lat, lon) lies on or inside the edges."""
        return self.south <= lat <= self.north and self.west <= lon <= self.east


@dataclass(frozen=True)
class GeoBounds:
    """Tight bounds of a coordinate set and the optionally buffered superset."""

    bounds: BoundingBox
    buffered: BoundingBox | None = None

    @property
    def target(self) -> BoundingBox:
        """Rectangle the view should fit: buffered when available."""
        return self.buffered or self.bounds


@dataclass
class BasemapState:
    """Active base layer provider and the token it runs with."""

    provider: BasemapProvider = BasemapProvider.NONE
    active_token: str | None = None
