from __future__ import annotations

from typing import Any

import pytest

from core.services.interfaces import ExtractedMetadata, MetadataReadError


class FakeExtractor:
    """Returns canned metadata keyed by the file's bytes."""

    def __init__(self, by_content: dict[bytes, Any]) -> None:
        self._by_content = by_content
        self.calls: list[tuple[bytes, bool]] = []

    async def extract(self, data: bytes, include_rtk: bool = False) -> ExtractedMetadata:
        self.calls.append((data, include_rtk))
        result = self._by_content.get(data)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise MetadataReadError("unreadable")
        return result


@pytest.fixture
def three_file_extractor() -> FakeExtractor:
    """a.jpg fixed RTK, b.jpg without GPS, c.jpg with latitude 200."""
    return FakeExtractor(
        {
            b"a.jpg": ExtractedMetadata(
                latitude=37.0,
                longitude=-122.0,
                altitude=100.0,
                timestamp="2024-01-01T10:00:00Z",
                raw_tags={"RtkFlag": 50, "RtkStdLon": 0.01},
            ),
            b"b.jpg": ExtractedMetadata(),
            b"c.jpg": ExtractedMetadata(latitude=200, longitude=0),
        }
    )


@pytest.fixture
def make_extractor():
    return FakeExtractor
