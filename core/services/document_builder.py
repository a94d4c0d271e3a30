"""Exchange document (KML) and HTML report rendering.

Every builder is a pure function of its arguments: no clock reads and no
randomness. Callers check for empty input before calling; the builders assume
there is something to render.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from core.models import ErrorRecord, ImageRecord, RTKData
from core.services.rtk_classifier import RTKFieldClassifier
from core.services.timestamps import to_utc_iso

DEFAULT_SESSION_NAME = "Session"

_XML_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&apos;"}
_HTML_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#39;"}

_KML_HEADER = """<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <name>{name}</name>
    <Style id="imagePoint">
      <IconStyle>
        <color>ff00ff00</color>
        <scale>0.8</scale>
        <Icon>
          <href>http://maps.google.com/mapfiles/kml/shapes/camera.png</href>
        </Icon>
      </IconStyle>
    </Style>
    <Style id="flightPath">
      <LineStyle>
        <color>ff0088ff</color>
        <width>2</width>
      </LineStyle>
    </Style>
    <Folder>
      <name>Image Locations</name>
"""

_KML_FOOTER = """    </Folder>
  </Document>
</kml>
"""

_REPORT_STYLE = """        body { font-family: Arial, sans-serif; margin: 20px; }
        h1 { color: #d32f2f; }
        h2 { margin-top: 30px; }
        table { width: 100%; border-collapse: collapse; margin-top: 20px; }
        th, td { padding: 10px; text-align: left; border: 1px solid #ddd; }
        th { background-color: #f2f2f2; }
        .summary { background: #fff3e0; padding: 15px; border-radius: 5px; margin-bottom: 20px; }"""


def _replace_chars(text: object, table: dict[str, str]) -> str:
    if text is None:
        return ""
    return "".join(table.get(ch, ch) for ch in str(text))


def escape_xml(text: object) -> str:
    """Escape the five reserved markup characters; None becomes ''."""
    return _replace_chars(text, _XML_ESCAPES)


def escape_html(text: object) -> str:
    return _replace_chars(text, _HTML_ESCAPES)


def format_number(value: float) -> str:
    """Shortest text that parses back to the same float (integral values keep no fraction)."""
    if float(value).is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(float(value))


def _fmt(value: float | None, suffix: str = "", digits: int | None = None) -> str | None:
    if value is None:
        return None
    text = f"{value:.{digits}f}" if digits is not None else format_number(value)
    return f"{text}{suffix}"


def rtk_lines(rtk: RTKData, classifier: RTKFieldClassifier | None = None) -> list[str]:
    """Display lines for an RTK block; absent fields are left out."""
    cls = classifier or RTKFieldClassifier()
    lines: list[str] = []
    status = cls.status_text(rtk.status)
    if status is not None:
        lines.append(f"RTK Status: {status}")
    if rtk.processing_method:
        lines.append(f"Processing Method: {rtk.processing_method}")
    h_acc = _fmt(rtk.horizontal_accuracy, " m")
    if h_acc:
        lines.append(f"Horizontal Accuracy: {h_acc}")
    v_acc = _fmt(rtk.vertical_accuracy, " m")
    if v_acc:
        lines.append(f"Vertical Accuracy: {v_acc}")
    dop = _fmt(rtk.dop)
    if dop:
        lines.append(f"DOP: {dop}")
    if rtk.differential is not None:
        lines.append(f"Differential: {'Yes' if rtk.differential else 'No'}")
    age = _fmt(rtk.correction_age, " ms")
    if age:
        lines.append(f"Correction Age: {age}")
    return lines


def describe_image(image: ImageRecord, classifier: RTKFieldClassifier | None = None) -> list[str]:
    """Description lines for a placemark, before escaping."""
    details = [
        f"File: {image.filename}",
        f"Lat: {image.latitude:.6f}",
        f"Lon: {image.longitude:.6f}",
    ]
    if image.altitude is not None:
        details.append(f"Alt: {image.altitude:.1f}m")
    iso = to_utc_iso(image.timestamp)
    if iso is not None:
        details.append(f"Time: {iso}")
    if image.rtk is not None:
        block = rtk_lines(image.rtk, classifier)
        if block:
            details.append("RTK:")
            details.extend(f"  {line}" for line in block)
    return details


class DocumentBuilder:
    """Renders datasets into KML and HTML documents."""

    def __init__(self, classifier: RTKFieldClassifier | None = None) -> None:
        self._classifier = classifier or RTKFieldClassifier()

    def build_exchange_document(self, session_name: str | None, images: Sequence[ImageRecord]) -> str:
        """Render images as a KML document with one placemark per image."""
        parts = [_KML_HEADER.format(name=escape_xml(session_name or DEFAULT_SESSION_NAME))]
        for image in images:
            parts.append(self._placemark(image))
        parts.append(_KML_FOOTER)
        return "".join(parts)

    def _placemark(self, image: ImageRecord) -> str:
        description = escape_xml("\n".join(describe_image(image, self._classifier)))
        coords = [format_number(image.longitude), format_number(image.latitude)]
        if image.altitude is not None:
            coords.append(format_number(image.altitude))
        lines = [
            "      <Placemark>",
            f"        <name>{escape_xml(image.filename)}</name>",
            f"        <description>{description}</description>",
            "        <styleUrl>#imagePoint</styleUrl>",
            "        <Point>",
            f"          <coordinates>{','.join(coords)}</coordinates>",
            "        </Point>",
        ]
        iso = to_utc_iso(image.timestamp)
        if iso is not None:
            lines.append(f"        <TimeStamp><when>{iso}</when></TimeStamp>")
        lines.append("      </Placemark>")
        return "\n".join(lines) + "\n"

    def build_error_report(
        self,
        session_name: str | None,
        errors: Sequence[ErrorRecord],
        generated_at: datetime | None = None,
    ) -> str:
        """Render ingestion failures as a standalone HTML page."""
        name = escape_html(session_name or DEFAULT_SESSION_NAME)
        summary = [f"        <p><strong>Location:</strong> {name}</p>"]
        if generated_at is not None:
            summary.append(f"        <p><strong>Date:</strong> {escape_html(generated_at.isoformat(sep=' '))}</p>")
        summary.append(f"        <p><strong>Total Errors:</strong> {len(errors)}</p>")
        rows = [
            "            <tr>"
            f"<td>{escape_html(e.filename)}</td>"
            f"<td>{escape_html(e.reason.value)}</td>"
            f"<td>{escape_html(e.details)}</td>"
            "</tr>"
            for e in errors
        ]
        return self._html_page(
            title=f"Error Report - {name}",
            heading="GPS Metadata Error Report",
            summary=summary,
            sections=[self._table(["Filename", "Error Type", "Details"], rows)],
        )

    def build_rtk_report(
        self,
        session_name: str | None,
        images: Sequence[ImageRecord],
        generated_at: datetime | None = None,
    ) -> str:
        """Render RTK statistics followed by a per-image detail table."""
        name = escape_html(session_name or DEFAULT_SESSION_NAME)
        agg = self._classifier.aggregate(images)
        avg = (
            f"{agg.avg_correction_age_ms:.1f} ms" if agg.avg_correction_age_ms is not None else "N/A"
        )
        summary = [f"        <p><strong>Location:</strong> {name}</p>"]
        if generated_at is not None:
            summary.append(f"        <p><strong>Date:</strong> {escape_html(generated_at.isoformat(sep=' '))}</p>")
        summary.extend(
            [
                f"        <p><strong>Total Images:</strong> {agg.total}</p>",
                f"        <p><strong>RTK Fixed:</strong> {agg.fixed}</p>",
                f"        <p><strong>RTK Float:</strong> {agg.float}</p>",
                f"        <p><strong>RTK Single:</strong> {agg.single}</p>",
                f"        <p><strong>No RTK Data:</strong> {agg.no_rtk}</p>",
                f"        <p><strong>Average Correction Age:</strong> {escape_html(avg)}</p>",
            ]
        )
        headers = [
            "Filename",
            "RTK Status",
            "Quality",
            "Processing Method",
            "H Accuracy (m)",
            "V Accuracy (m)",
            "DOP",
            "Differential",
            "Correction Age (ms)",
            "Std Lon",
            "Std Lat",
            "Std Hgt",
        ]
        rows = [self._rtk_row(image) for image in images]
        return self._html_page(
            title=f"RTK Report - {name}",
            heading="RTK Positioning Report",
            summary=summary,
            sections=[self._table(headers, rows)],
        )

    def _rtk_row(self, image: ImageRecord) -> str:
        rtk = image.rtk or RTKData()
        tier = self._classifier.derive_tier(image.rtk)
        quality = tier.tier.value if tier.tier is not None else "No RTK Data"
        differential = "" if rtk.differential is None else ("Yes" if rtk.differential else "No")
        cells = [
            image.filename,
            self._classifier.status_text(rtk.status) or "",
            quality,
            rtk.processing_method or "",
            _fmt(rtk.horizontal_accuracy) or "",
            _fmt(rtk.vertical_accuracy) or "",
            _fmt(rtk.dop) or "",
            differential,
            _fmt(rtk.correction_age) or "",
            _fmt(rtk.rtk_std_lon) or "",
            _fmt(rtk.rtk_std_lat) or "",
            _fmt(rtk.rtk_std_hgt) or "",
        ]
        return "            <tr>" + "".join(f"<td>{escape_html(c)}</td>" for c in cells) + "</tr>"

    @staticmethod
    def _table(headers: list[str], rows: list[str]) -> str:
        head = "".join(f"<th>{escape_html(h)}</th>" for h in headers)
        body = "\n".join(rows)
        return (
            "    <table>\n"
            f"        <thead><tr>{head}</tr></thead>\n"
            "        <tbody>\n"
            f"{body}\n"
            "        </tbody>\n"
            "    </table>"
        )

    @staticmethod
    def _html_page(title: str, heading: str, summary: list[str], sections: list[str]) -> str:
        summary_html = "\n".join(summary)
        sections_html = "\n".join(sections)
        return (
            "<!DOCTYPE html>\n"
            "<html>\n"
            "<head>\n"
            '    <meta charset="utf-8">\n'
            f"    <title>{title}</title>\n"
            "    <style>\n"
            f"{_REPORT_STYLE}\n"
            "    </style>\n"
            "</head>\n"
            "<body>\n"
            f"    <h1>{escape_html(heading)}</h1>\n"
            '    <div class="summary">\n'
            f"{summary_html}\n"
            "    </div>\n"
            f"{sections_html}\n"
            "</body>\n"
            "</html>\n"
        )
