"""Pillow-based metadata extraction for drone imagery.

Reads baseline EXIF GPS, capture time and camera identity. When RTK analysis is
requested it also flattens the XMP packet (DJI `drone-dji:` and any other
namespace) and the GPS IFD into a single tag dictionary keyed by local name.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import io
import re
from typing import Any
import xml.etree.ElementTree as ET

from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import GPSTAGS, IFD, TAGS
from loguru import logger

from core.services.interfaces import ExtractedMetadata, MetadataReadError
from core.services.rtk_classifier import to_float, to_text
from infrastructure.utils import normalize_exif_datetime

XMP_PACKET_RE = re.compile(rb"<x:xmpmeta.*?</x:xmpmeta>", re.DOTALL)
_RDF_NS = "{http://www.w3.org/1999/02/22-rdf-syntax-ns#}"

TIMESTAMP_TAGS = (
    ("DateTimeOriginal", "OffsetTimeOriginal"),
    ("DateTimeDigitized", "OffsetTimeDigitized"),
    ("DateTime", "OffsetTime"),
)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def dms_to_decimal(dms: Any, ref: Any = None) -> float | None:
    """Convert an EXIF (degrees, minutes, seconds) triple to signed decimal degrees.

    Args:
        dms: Sequence of three rationals, or a single number already in degrees.
        ref: Hemisphere reference; `S` and `W` negate the result.
    """
    if dms is None:
        return None
    if isinstance(dms, (tuple, list)):
        parts = [to_float(p) for p in dms]
        if len(parts) < 3 or any(p is None for p in parts[:3]):
            return None
        value = parts[0] + parts[1] / 60.0 + parts[2] / 3600.0
    else:
        value = to_float(dms)
        if value is None:
            return None
    hemisphere = (to_text(ref) or "").upper()
    if hemisphere in ("S", "W"):
        value = -value
    return value


def altitude_from_gps(altitude: Any, ref: Any = None) -> float | None:
    """GPS altitude in metres; reference 1 means below sea level."""
    value = to_float(altitude)
    if value is None:
        return None
    if isinstance(ref, bytes):
        ref = ref[:1] == b"\x01"
    elif ref is not None:
        ref = str(ref).strip() in ("1", "True")
    if ref:
        value = -value
    return value


def parse_xmp(data: bytes) -> dict[str, str]:
    """Flatten the first XMP packet in `data` into `{local_name: text}`.

    Both `rdf:Description` attributes and simple child elements are collected.
    A malformed packet yields an empty dict.
    """
    match = XMP_PACKET_RE.search(data)
    if not match:
        return {}
    try:
        root = ET.fromstring(match.group(0))
    except ET.ParseError as ex:
        logger.debug("Ignoring malformed XMP packet: {}", ex)
        return {}

    tags: dict[str, str] = {}
    for desc in root.iter(f"{_RDF_NS}Description"):
        for key, value in desc.attrib.items():
            if not key.startswith(_RDF_NS):
                tags.setdefault(_local(key), value.strip())
        for child in desc:
            if child.text and child.text.strip() and len(child) == 0:
                tags.setdefault(_local(child.tag), child.text.strip())
    return tags


def _named(ifd: Mapping[int, Any], names: Mapping[int, str]) -> dict[str, Any]:
    return {names.get(tag_id, str(tag_id)): value for tag_id, value in ifd.items()}


def metadata_from_tags(
    base: Mapping[str, Any],
    exif_ifd: Mapping[str, Any],
    gps_ifd: Mapping[str, Any],
    xmp_tags: Mapping[str, Any] | None = None,
    include_rtk: bool = False,
) -> ExtractedMetadata:
    """Build `ExtractedMetadata` from already-named tag dictionaries.

    Args:
        base: IFD0 tags (Make, Model, DateTime).
        exif_ifd: Exif sub-IFD tags (DateTimeOriginal, offsets).
        gps_ifd: GPS IFD tags by GPSTAGS name.
        xmp_tags: Flattened XMP tags, consulted only when `include_rtk`.
        include_rtk: Fill `raw_tags` for RTK classification.
    """
    latitude = dms_to_decimal(gps_ifd.get("GPSLatitude"), gps_ifd.get("GPSLatitudeRef"))
    longitude = dms_to_decimal(gps_ifd.get("GPSLongitude"), gps_ifd.get("GPSLongitudeRef"))
    altitude = altitude_from_gps(gps_ifd.get("GPSAltitude"), gps_ifd.get("GPSAltitudeRef"))

    timestamp = None
    for value_tag, offset_tag in TIMESTAMP_TAGS:
        value = exif_ifd.get(value_tag) or base.get(value_tag)
        timestamp = normalize_exif_datetime(value, exif_ifd.get(offset_tag))
        if timestamp:
            break

    raw_tags: dict[str, Any] = {}
    if include_rtk:
        raw_tags.update(gps_ifd)
        # Vendor XMP wins over same-named GPS IFD tags
        raw_tags.update(xmp_tags or {})

    return ExtractedMetadata(
        latitude=latitude,
        longitude=longitude,
        altitude=altitude,
        timestamp=timestamp,
        make=to_text(base.get("Make")),
        model=to_text(base.get("Model")),
        raw_tags=raw_tags,
    )


class PillowMetadataExtractor:
    """`MetadataExtractor` backed by Pillow's EXIF reader."""

    async def extract(self, data: bytes, include_rtk: bool = False) -> ExtractedMetadata:
        return await asyncio.to_thread(self.extract_sync, data, include_rtk)

    def extract_sync(self, data: bytes, include_rtk: bool = False) -> ExtractedMetadata:
        """Blocking extraction; raises `MetadataReadError` when EXIF cannot be read."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                exif = img.getexif()
                base = _named(exif, TAGS)
                exif_ifd = _named(exif.get_ifd(IFD.Exif), TAGS)
                gps_ifd = _named(exif.get_ifd(IFD.GPSInfo), GPSTAGS)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as ex:
            raise MetadataReadError(f"Failed to read EXIF data: {ex}") from ex

        xmp_tags = parse_xmp(data) if include_rtk else {}
        return metadata_from_tags(base, exif_ifd, gps_ifd, xmp_tags, include_rtk)
