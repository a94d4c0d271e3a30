"""Ingestion pipeline: extraction, validation, classification and ordering.

Files are processed strictly in input order, one at a time. Each file's read
and extraction is awaited before the next one starts, so progress and error
attribution follow the input order. A failing file becomes an `ErrorRecord`
and never aborts the batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence

from loguru import logger

from core.models import Dataset, ErrorReason, ErrorRecord, ImageRecord
from core.services.geo_validator import GeoValidator, is_number
from core.services.interfaces import (
    IngestOutcome,
    MetadataExtractor,
    MetadataReadError,
    SourceFile,
)
from core.services.rtk_classifier import RTKFieldClassifier
from core.services.sort_service import SortService

DEFAULT_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg")

ProgressCallback = Callable[[int, int], None]


class IngestionPipeline:
    """Turns source files into image records and error records on a `Dataset`."""

    def __init__(
        self,
        extractor: MetadataExtractor,
        validator: GeoValidator | None = None,
        classifier: RTKFieldClassifier | None = None,
        sorter: SortService | None = None,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        """Create a pipeline.

        Args:
            extractor: Metadata-extraction collaborator.
            validator: Coordinate validator (defaults to `GeoValidator`).
            classifier: RTK classifier (defaults to `RTKFieldClassifier`).
            sorter: Timestamp sorter (defaults to `SortService`).
            extensions: Accepted filename suffixes, matched case-insensitively.
        """
        self._extractor = extractor
        self._validator = validator or GeoValidator()
        self._classifier = classifier or RTKFieldClassifier()
        self._sorter = sorter or SortService()
        self._extensions = tuple(e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions)

    def filter_supported(self, files: Iterable[SourceFile]) -> list[SourceFile]:
        """Keep only files whose name ends with an accepted suffix."""
        return [f for f in files if f.name.lower().endswith(self._extensions)]

    async def ingest(
        self,
        dataset: Dataset,
        files: Sequence[SourceFile],
        rtk_enabled: bool,
        on_progress: ProgressCallback | None = None,
    ) -> IngestOutcome:
        """Process `files` into `dataset` and re-sort its images.

        Returns an outcome with `nothing_to_process` set when no file matched
        the suffix allow-list; the dataset is untouched in that case.
        """
        accepted = self.filter_supported(files)
        if not accepted:
            logger.info("No supported images among {} file(s)", len(files))
            return IngestOutcome(nothing_to_process=True)

        total = len(accepted)
        outcome = IngestOutcome()
        logger.info("Ingesting {} file(s), rtk_enabled={}", total, rtk_enabled)
        for source in accepted:
            result = await self._process_one(source, rtk_enabled)
            if isinstance(result, ImageRecord):
                dataset.images.append(result)
                outcome.added += 1
            else:
                dataset.errors.append(result)
                outcome.failed += 1
                logger.warning("{}: {} ({})", result.filename, result.reason.value, result.details)
            outcome.processed += 1
            if on_progress is not None:
                on_progress(outcome.processed, total)

        self._sorter.sort(dataset.images)
        logger.info(
            "Batch done: {} processed, {} added, {} failed",
            outcome.processed,
            outcome.added,
            outcome.failed,
        )
        return outcome

    async def _process_one(self, source: SourceFile, rtk_enabled: bool) -> ImageRecord | ErrorRecord:
        try:
            data = await asyncio.to_thread(source.read)
            meta = await self._extractor.extract(data, include_rtk=rtk_enabled)
        except (MetadataReadError, OSError, ValueError) as ex:
            return ErrorRecord(
                filename=source.name,
                reason=ErrorReason.READ_FAILURE,
                details=str(ex) or ex.__class__.__name__,
            )
        except Exception as ex:
            logger.exception("Unexpected failure reading {}", source.name)
            return ErrorRecord(
                filename=source.name,
                reason=ErrorReason.READ_FAILURE,
                details=str(ex) or ex.__class__.__name__,
            )

        if not (is_number(meta.latitude) and is_number(meta.longitude)):
            return ErrorRecord(
                filename=source.name,
                reason=ErrorReason.NO_GPS_DATA,
                details="Image does not contain GPS metadata",
            )

        check = self._validator.validate(meta.latitude, meta.longitude)
        if not check.ok:
            return ErrorRecord(
                filename=source.name,
                reason=ErrorReason.INVALID_COORDINATES,
                details=f"Lat: {meta.latitude}, Lon: {meta.longitude}",
            )

        record = ImageRecord(
            filename=source.name,
            latitude=float(meta.latitude),
            longitude=float(meta.longitude),
            altitude=meta.altitude,
            timestamp=meta.timestamp,
            make=meta.make,
            model=meta.model,
        )
        if rtk_enabled:
            record.rtk = self._classifier.classify(meta.raw_tags)
        logger.debug("{}: {:.6f}, {:.6f}", record.filename, record.latitude, record.longitude)
        return record
