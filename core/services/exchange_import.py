"""KML exchange document import.

Parses the top-level document name and every placemark's point. Placemarks
with missing, malformed or out-of-range coordinates are skipped, not errored.
Element lookups ignore XML namespaces so both namespaced and bare KML load.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
import xml.etree.ElementTree as ET

from loguru import logger

from core.models import ImageRecord
from core.services.geo_validator import GeoValidator
from core.services.interfaces import MalformedDocumentError
from core.services.rtk_classifier import to_float

DEFAULT_LOADED_NAME = "Loaded Session"
DEFAULT_PLACEMARK_NAME = "Image"
_COMMA_SPACING = re.compile(r"\s*,\s*")


@dataclass
class ImportedSession:
    session_name: str
    images: list[ImageRecord] = field(default_factory=list)
    skipped: int = 0


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(node: ET.Element, name: str) -> ET.Element | None:
    for child in node:
        if _local(child.tag) == name:
            return child
    return None


def _descendant(node: ET.Element, name: str) -> ET.Element | None:
    for el in node.iter():
        if el is not node and _local(el.tag) == name:
            return el
    return None


def _text(node: ET.Element | None) -> str | None:
    if node is None or node.text is None:
        return None
    return node.text.strip()


class ExchangeImporter:
    """Reads placemarks back out of a KML document."""

    def __init__(self, validator: GeoValidator | None = None) -> None:
        self._validator = validator or GeoValidator()

    def parse(self, text: str) -> ImportedSession:
        """Parse KML `text`.

        Raises:
            MalformedDocumentError: If the text is not well-formed XML.
        """
        try:
            root = ET.fromstring(text.encode("utf-8") if isinstance(text, str) else text)
        except ET.ParseError as ex:
            raise MalformedDocumentError(f"Invalid KML: {ex}") from ex

        document = root if _local(root.tag) == "Document" else _descendant(root, "Document")
        name = _text(_child(document, "name")) if document is not None else None
        session = ImportedSession(session_name=name or DEFAULT_LOADED_NAME)

        for placemark in (el for el in root.iter() if _local(el.tag) == "Placemark"):
            record = self._placemark_to_record(placemark)
            if record is None:
                session.skipped += 1
                continue
            session.images.append(record)

        if session.skipped:
            logger.warning("Skipped {} placemark(s) without usable coordinates", session.skipped)
        logger.info("Imported {} placemark(s) from '{}'", len(session.images), session.session_name)
        return session

    def _placemark_to_record(self, placemark: ET.Element) -> ImageRecord | None:
        raw = _text(_descendant(placemark, "coordinates"))
        if not raw:
            return None
        # Only the first tuple matters for a point
        parts = _COMMA_SPACING.sub(",", raw.strip()).split()[0].split(",")
        if len(parts) < 2:
            return None
        lon = to_float(parts[0])
        lat = to_float(parts[1])
        if lat is None or lon is None or not self._validator.validate(lat, lon).ok:
            return None
        altitude = to_float(parts[2]) if len(parts) > 2 and parts[2].strip() else None

        when = None
        stamp = _descendant(placemark, "TimeStamp")
        if stamp is not None:
            when = _text(_descendant(stamp, "when")) or None

        name_el = _child(placemark, "name")
        filename = name_el.text if name_el is not None and name_el.text else DEFAULT_PLACEMARK_NAME

        return ImageRecord(
            filename=filename,
            latitude=lat,
            longitude=lon,
            altitude=altitude,
            timestamp=when,
        )
