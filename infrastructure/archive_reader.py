"""KMZ (zip) archive access."""

from __future__ import annotations

import io
import zipfile

from loguru import logger

from core.services.interfaces import MalformedDocumentError

EXCHANGE_SUFFIX = ".kml"


class ZipArchiveReader:
    """Reads the embedded KML document out of a KMZ archive."""

    def read_exchange_member(self, data: bytes) -> str | None:
        """Return the text of the first `.kml` member, or None if there is none.

        Raises:
            MalformedDocumentError: If `data` is not a readable zip archive.
        """
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir() or not info.filename.lower().endswith(EXCHANGE_SUFFIX):
                        continue
                    logger.debug("Reading '{}' from archive", info.filename)
                    return archive.read(info).decode("utf-8", errors="replace")
        except zipfile.BadZipFile as ex:
            raise MalformedDocumentError(f"Invalid KMZ archive: {ex}") from ex
        return None
