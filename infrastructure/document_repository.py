"""File persistence for exported documents and loaded KML/KMZ sessions."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from core.services.interfaces import ArchiveReader
from infrastructure.archive_reader import ZipArchiveReader
from infrastructure.utils import safe_export_stem

EXPORT_PATTERNS = {
    "exchange": "{stem}.kml",
    "errors": "error_report_{stem}.html",
    "rtk": "rtk_report_{stem}.html",
    "frame": "{stem}_frame.json",
}


def export_filename(session_name: str | None, kind: str) -> str:
    """File name for an export of `kind` (exchange, errors, rtk, frame)."""
    try:
        pattern = EXPORT_PATTERNS[kind]
    except KeyError:
        raise ValueError(f"Unknown export kind: {kind}") from None
    return pattern.format(stem=safe_export_stem(session_name))


class DocumentRepository:
    """Reads and writes session documents under an output directory."""

    def __init__(self, output_dir: str | Path = ".", archive_reader: ArchiveReader | None = None) -> None:
        self._output_dir = Path(output_dir)
        self._archive_reader = archive_reader or ZipArchiveReader()

    @property
    def archive_reader(self) -> ArchiveReader:
        return self._archive_reader

    def save_text(self, session_name: str | None, kind: str, text: str) -> Path:
        """Write `text` as the `kind` export of the session and return its path."""
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / export_filename(session_name, kind)
        path.write_text(text, encoding="utf-8")
        logger.info("Wrote {}", path)
        return path

    @staticmethod
    def read_bytes(path: str | Path) -> bytes:
        return Path(path).read_bytes()
