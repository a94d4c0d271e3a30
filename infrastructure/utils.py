"""Utilities for EXIF date normalization and export file naming.

This module centralizes date parsing so the extractor and the exporters share
one behavior. It uses best-effort parsing and will not raise on errors;
callers should expect `None` when data is not available.
"""

from __future__ import annotations

from datetime import datetime
import re
from typing import Any

from loguru import logger

EXIF_DT_FMT = "%Y:%m:%d %H:%M:%S"
_OFFSET_RE = re.compile(r"^[+-]\d{2}:\d{2}$")
_UNSAFE_NAME_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None


def normalize_exif_datetime(value: Any, offset: Any = None) -> str | None:
    """Convert an EXIF `YYYY:MM:DD HH:MM:SS` value to ISO-8601.

    `offset` is an EXIF OffsetTime value such as `+09:00`; it is appended when
    well-formed. ISO input is passed through after validation. Returns None if
    the value is empty or invalid.
    """
    text = _as_text(value)
    if not text:
        return None
    try:
        if len(text) >= 19 and text[4] == ":" and text[7] == ":":
            dt = datetime.strptime(text[:19], EXIF_DT_FMT)
        else:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if dt.tzinfo is not None:
                return dt.isoformat()
    except (ValueError, TypeError) as ex:
        logger.debug("Unparseable EXIF datetime {!r}: {}", text, ex)
        return None

    iso = dt.isoformat()
    offset_text = _as_text(offset)
    if offset_text and _OFFSET_RE.match(offset_text):
        iso += offset_text
    return iso


def safe_export_stem(session_name: str | None) -> str:
    """Session name with every non-alphanumeric character replaced by `_`."""
    return _UNSAFE_NAME_RE.sub("_", session_name or "session")
