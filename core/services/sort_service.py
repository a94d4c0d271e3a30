"""Sorting service for ingested image records.

Records are ordered by capture timestamp. A record without a usable timestamp
cannot be compared, so it keeps its exact index; only the timestamped records
are reordered, among the slots they already occupy.
"""

from __future__ import annotations

from datetime import datetime

from core.models import ImageRecord
from core.services.timestamps import parse_timestamp


class SortService:
    """Provides timestamp ordering for `ImageRecord` lists."""

    def sort(self, records: list[ImageRecord]) -> None:
        """Sort `records` in place, ascending by timestamp.

        The sort is stable: equal timestamps keep their ingestion order.
        """
        slots: list[int] = []
        decorated: list[tuple[datetime, int, ImageRecord]] = []
        for index, record in enumerate(records):
            ts = parse_timestamp(record.timestamp)
            if ts is None:
                continue
            slots.append(index)
            decorated.append((ts, index, record))

        decorated.sort(key=lambda x: (x[0], x[1]))
        for slot, (_, _, record) in zip(slots, decorated):
            records[slot] = record
