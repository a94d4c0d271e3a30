"""RTK field resolution, quality tiers and batch statistics.

Vendors and firmware revisions spell the same RTK field differently, so each
logical field is resolved from an ordered list of candidate tag names by a
single "first present wins" lookup. Tier derivation follows a fixed priority
order: explicit status codes first, then std-dev evidence, then the
differential flag.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields
from fractions import Fraction
import math
from typing import Any

from core.models import ImageRecord, RTKData, RtkTier

STATUS_FIXED = 50
STATUS_FLOAT = 34
STATUS_SINGLE = 16
STATUS_NO_POSITION = 0

COLOR_GOOD = "#00c853"
COLOR_BAD = "#ff1744"
COLOR_NEUTRAL = "#00ff00"

GOOD_TIERS = frozenset(
    {RtkTier.FIXED, RtkTier.FLOAT, RtkTier.STD_DEV_INFERRED, RtkTier.DIFFERENTIAL_INFERRED}
)

# Canonical name first, then legacy/alternate spellings.
FIELD_CANDIDATES: dict[str, list[str]] = {
    "status": ["RtkFlag", "RTKFlag", "RtkStatus", "RTKStatus", "PositioningStatus"],
    "processing_method": ["GPSProcessingMethod", "ProcessingMethod", "GpsProcessingMethod"],
    "horizontal_accuracy": [
        "GPSHPositioningError",
        "HorizontalAccuracy",
        "RtkHorizontalAccuracy",
        "HAccuracy",
    ],
    "vertical_accuracy": [
        "GPSVPositioningError",
        "VerticalAccuracy",
        "RtkVerticalAccuracy",
        "VAccuracy",
    ],
    "dop": ["GPSDOP", "DOP", "Dop", "PDOP"],
    "differential": ["GPSDifferential", "Differential", "RtkDiffFlag"],
    "correction_age": ["RtkDiffAge", "RTKDiffAge", "CorrectionAge", "DiffAge"],
    "rtk_std_lon": ["RtkStdLon", "RTKStdLon", "StdLon"],
    "rtk_std_lat": ["RtkStdLat", "RTKStdLat", "StdLat"],
    "rtk_std_hgt": ["RtkStdHgt", "RTKStdHgt", "StdHgt"],
    "gps_antenna_offset_north": ["GpsAntennaOffsetNorth", "GPSAntennaOffsetNorth", "AntennaOffsetNorth"],
    "gps_antenna_offset_east": ["GpsAntennaOffsetEast", "GPSAntennaOffsetEast", "AntennaOffsetEast"],
    "gps_antenna_offset_up": ["GpsAntennaOffsetUp", "GPSAntennaOffsetUp", "AntennaOffsetUp"],
    "gps_std_pos_north": ["GpsStdPosNorth", "GPSStdPosNorth", "StdPosNorth"],
    "gps_std_pos_east": ["GpsStdPosEast", "GPSStdPosEast", "StdPosEast"],
    "gps_std_pos_up": ["GpsStdPosUp", "GPSStdPosUp", "StdPosUp"],
}

_INT_FIELDS = frozenset({"status", "differential"})
_TEXT_FIELDS = frozenset({"processing_method"})

# EXIF "undefined" text fields start with an 8-byte character code.
_EXIF_CHARSET_PREFIXES = (b"ASCII\x00\x00\x00", b"UNICODE\x00", b"JIS\x00\x00\x00\x00\x00", b"\x00" * 8)


@dataclass(frozen=True)
class TierResult:
    tier: RtkTier | None
    has_rtk_data: bool


@dataclass
class RTKAggregate:
    """Per-batch tier counts and mean correction age (None when not reported)."""

    fixed: int = 0
    float: int = 0
    single: int = 0
    no_rtk: int = 0
    avg_correction_age_ms: float | None = None

    @property
    def total(self) -> int:
        return self.fixed + self.float + self.single + self.no_rtk


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes)) and not value.strip():
        return True
    return False


def resolve_first(tags: Mapping[str, Any], candidates: Iterable[str]) -> Any:
    """Return the first present value among `candidates`.

    Exact key lookup takes precedence over a case-insensitive match, and the
    candidate order decides between aliases.
    """
    names = list(candidates)
    for name in names:
        value = tags.get(name)
        if not _is_missing(value):
            return value
    lowered: dict[str, Any] = {}
    for key, value in tags.items():
        lowered.setdefault(str(key).lower(), value)
    for name in names:
        value = lowered.get(name.lower())
        if not _is_missing(value):
            return value
    return None


def to_float(value: Any) -> float | None:
    """Coerce numbers, numeric strings and rationals to a finite float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (tuple, list)):
        if len(value) == 2 and all(isinstance(v, (int, float)) for v in value):
            num, den = value
            if den == 0:
                return None
            value = num / den
        elif len(value) == 1:
            return to_float(value[0])
        else:
            return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    try:
        if isinstance(value, str):
            text = value.strip()
            result = float(Fraction(text)) if "/" in text else float(text)
        else:
            result = float(value)
    except (ValueError, TypeError, ZeroDivisionError, OverflowError):
        return None
    return result if math.isfinite(result) else None


def to_int(value: Any) -> int | None:
    """Coerce ints, integral floats and numeric strings to int."""
    number = to_float(value)
    if number is None or number != int(number):
        return None
    return int(number)


def to_text(value: Any) -> str | None:
    """Decode text tags, stripping the EXIF character-code prefix."""
    if value is None:
        return None
    if isinstance(value, bytes):
        for prefix in _EXIF_CHARSET_PREFIXES:
            if value.startswith(prefix):
                value = value[len(prefix):]
                break
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None


class RTKFieldClassifier:
    """Resolves RTK fields from raw tags and derives quality information."""

    def classify(self, raw_tags: Mapping[str, Any]) -> RTKData:
        """Build `RTKData` from heterogeneous tag names. Never raises."""
        values: dict[str, Any] = {}
        for f in fields(RTKData):
            raw = resolve_first(raw_tags, FIELD_CANDIDATES[f.name])
            if f.name in _INT_FIELDS:
                values[f.name] = to_int(raw)
            elif f.name in _TEXT_FIELDS:
                values[f.name] = to_text(raw)
            else:
                values[f.name] = to_float(raw)
        return RTKData(**values)

    def derive_tier(self, rtk: RTKData | None) -> TierResult:
        """Derive the quality tier; the check order is significant."""
        if rtk is None:
            return TierResult(tier=None, has_rtk_data=False)
        if rtk.status == STATUS_FIXED:
            return TierResult(tier=RtkTier.FIXED, has_rtk_data=True)
        if rtk.status == STATUS_FLOAT:
            return TierResult(tier=RtkTier.FLOAT, has_rtk_data=True)
        if rtk.status == STATUS_SINGLE:
            return TierResult(tier=RtkTier.SINGLE, has_rtk_data=True)
        if any(v is not None for v in (rtk.rtk_std_lon, rtk.rtk_std_lat, rtk.rtk_std_hgt)):
            return TierResult(tier=RtkTier.STD_DEV_INFERRED, has_rtk_data=True)
        if rtk.differential is not None and rtk.differential != 0:
            return TierResult(tier=RtkTier.DIFFERENTIAL_INFERRED, has_rtk_data=True)
        return TierResult(tier=None, has_rtk_data=False)

    def marker_color(self, rtk: RTKData | None, rtk_enabled: bool) -> str:
        """Marker fill for a record: good, bad, or neutral when RTK is off."""
        if not rtk_enabled:
            return COLOR_NEUTRAL
        result = self.derive_tier(rtk)
        if result.tier in GOOD_TIERS:
            return COLOR_GOOD
        return COLOR_BAD

    @staticmethod
    def status_text(status: int | None) -> str | None:
        """Display text for a raw fix code; None means the field is omitted."""
        if status is None:
            return None
        if status == STATUS_FIXED:
            return "RTK Fixed"
        if status == STATUS_FLOAT:
            return "RTK Float"
        if status == STATUS_SINGLE:
            return "RTK Single"
        if status == STATUS_NO_POSITION:
            return "No Positioning"
        return f"Unknown ({status})"

    def aggregate(self, records: Iterable[ImageRecord]) -> RTKAggregate:
        """Count records per tier bucket and average the correction age."""
        agg = RTKAggregate()
        ages: list[float] = []
        for record in records:
            tier = self.derive_tier(record.rtk).tier
            if tier in (RtkTier.FIXED, RtkTier.STD_DEV_INFERRED, RtkTier.DIFFERENTIAL_INFERRED):
                agg.fixed += 1
            elif tier == RtkTier.FLOAT:
                agg.float += 1
            elif tier == RtkTier.SINGLE:
                agg.single += 1
            else:
                agg.no_rtk += 1
            if record.rtk is not None and record.rtk.correction_age is not None:
                ages.append(record.rtk.correction_age)
        if ages:
            agg.avg_correction_age_ms = sum(ages) / len(ages)
        return agg
