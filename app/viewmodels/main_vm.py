"""ViewModel for one mapping session: ingestion, map state and exports."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from app.viewmodels.photo_vm import PhotoVM
from core.models import Dataset, GeoBounds
from core.services.basemap_selector import BasemapSelector, MapConfig
from core.services.document_builder import DocumentBuilder
from core.services.exchange_import import ExchangeImporter
from core.services.geo_bounds import GeoBoundsEngine
from core.services.ingestion import DEFAULT_EXTENSIONS, IngestionPipeline, ProgressCallback
from core.services.interfaces import (
    ArchiveReader,
    FailureReason,
    KeyValueStore,
    MalformedDocumentError,
    MapRenderer,
    MetadataExtractor,
    Outcome,
    RenderFrame,
    SourceFile,
)
from core.services.rtk_classifier import RTKAggregate, RTKFieldClassifier
from infrastructure.archive_reader import ZipArchiveReader
from infrastructure.key_value_store import PRIVACY_ACK_KEY, THEME_KEY, TOKEN_KEY, MemoryStore

THEME_DARK = "dark"
THEME_LIGHT = "light"


@dataclass(frozen=True)
class SessionStats:
    total: int
    valid: int
    errors: int


class MainVM:
    """Main application view-model.

    Owns the session `Dataset` and the `BasemapSelector`, and reaches the
    outside world only through the extractor, store, renderer and archive
    reader collaborators. Failures cross this boundary as `Outcome` values.
    """

    def __init__(
        self,
        extractor: MetadataExtractor,
        store: KeyValueStore | None = None,
        renderer: MapRenderer | None = None,
        map_config: MapConfig | None = None,
        archive_reader: ArchiveReader | None = None,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        classifier: RTKFieldClassifier | None = None,
    ) -> None:
        """Create a MainVM.

        Args:
            extractor: Metadata-extraction collaborator.
            store: Key-value store for token and preferences (in-memory if None).
            renderer: Map renderer; frames are still built when None.
            map_config: Map configuration (defaults to `MapConfig()`).
            archive_reader: KMZ reader (defaults to `ZipArchiveReader`).
            extensions: Accepted image suffixes.
            classifier: RTK classifier shared by ingestion, markers and reports.
        """
        self._store = store or MemoryStore()
        self._renderer = renderer
        self._archive_reader = archive_reader or ZipArchiveReader()
        self._classifier = classifier or RTKFieldClassifier()
        config = map_config or MapConfig()
        self._pipeline = IngestionPipeline(extractor, classifier=self._classifier, extensions=extensions)
        self._bounds_engine = GeoBoundsEngine(config.buffer_feet)
        self._builder = DocumentBuilder(self._classifier)
        self._importer = ExchangeImporter()
        self.selector = BasemapSelector(config, stored_token=self._safe_get(TOKEN_KEY))

        self.session_name: str | None = None
        self.rtk_enabled = False
        self.dataset = Dataset()
        self.geo_bounds: GeoBounds | None = None
        self.exchange_document: str | None = None
        self._busy = False
        self._theme: str | None = None
        self._privacy_ack = False

    # ---- persistence helpers -------------------------------------------

    def _safe_get(self, key: str) -> str | None:
        try:
            return self._store.get(key)
        except (OSError, ValueError) as ex:
            logger.warning("Store read failed for '{}': {}", key, ex)
            return None

    def _safe_set(self, key: str, value: str | None) -> None:
        try:
            self._store.set(key, value)
        except (OSError, ValueError) as ex:
            logger.warning("Store write failed for '{}': {}", key, ex)

    # ---- session lifecycle ---------------------------------------------

    @property
    def busy(self) -> bool:
        return self._busy

    def start_session(self, session_name: str | None, rtk_enabled: bool = False) -> Outcome:
        """Begin a fresh session; the location name must not be blank."""
        name = (session_name or "").strip()
        if not name:
            return Outcome.fail(FailureReason.MISSING_SESSION_NAME)
        if self._busy:
            return Outcome.fail(FailureReason.SESSION_BUSY)
        self._reset_state()
        self.session_name = name
        self.rtk_enabled = bool(rtk_enabled)
        logger.info("Session '{}' started (rtk_enabled={})", name, self.rtk_enabled)
        return Outcome.ok(value=name)

    def clear_session(self) -> Outcome:
        """Drop all session data and return the map to its startup state."""
        if self._busy:
            return Outcome.fail(FailureReason.SESSION_BUSY)
        self._reset_state()
        self.session_name = None
        self.rtk_enabled = False
        logger.info("Session cleared")
        self.render()
        return Outcome.ok()

    def _reset_state(self) -> None:
        self.dataset = Dataset()
        self.geo_bounds = None
        self.exchange_document = None
        self.selector.reset()

    async def handle_files(
        self, files: Sequence[SourceFile], on_progress: ProgressCallback | None = None
    ) -> Outcome:
        """Ingest a batch into the session dataset.

        Returns an outcome whose value is the `IngestOutcome` on success.
        """
        if not self.session_name:
            return Outcome.fail(FailureReason.MISSING_SESSION_NAME)
        if self._busy:
            logger.warning("Batch rejected, another batch is in progress")
            return Outcome.fail(FailureReason.SESSION_BUSY)

        self._busy = True
        try:
            result = await self._pipeline.ingest(self.dataset, files, self.rtk_enabled, on_progress)
        finally:
            self._busy = False

        if result.nothing_to_process:
            return Outcome.fail(FailureReason.NOTHING_TO_PROCESS)

        self._refresh_map()
        if self.dataset.images:
            self.exchange_document = self._builder.build_exchange_document(
                self.session_name, self.dataset.images
            )
        return Outcome.ok(
            value=result,
            message=f"Processed {result.processed} file(s): {result.added} valid, {result.failed} error(s)",
        )

    def load_session(self, filename: str, data: bytes) -> Outcome:
        """Replace the dataset's images with the placemarks of a KML or KMZ file.

        Previously recorded errors are kept.
        """
        if self._busy:
            return Outcome.fail(FailureReason.SESSION_BUSY)
        try:
            if Path(filename).suffix.lower() == ".kmz":
                text = self._archive_reader.read_exchange_member(data)
                if text is None:
                    return Outcome.fail(FailureReason.NO_ARCHIVE_MEMBER)
            else:
                text = data.decode("utf-8", errors="replace")
            imported = self._importer.parse(text)
        except MalformedDocumentError as ex:
            logger.error("Could not load {}: {}", filename, ex)
            return Outcome.fail(FailureReason.MALFORMED_DOCUMENT, f"{FailureReason.MALFORMED_DOCUMENT.value}: {ex}")

        self.session_name = imported.session_name
        self.dataset = Dataset(images=imported.images, errors=self.dataset.errors)
        self._refresh_map()
        self.exchange_document = (
            self._builder.build_exchange_document(self.session_name, self.dataset.images)
            if self.dataset.images
            else None
        )
        logger.info("Loaded {} image(s) from {}", len(imported.images), filename)
        return Outcome.ok(value=imported, message=f"Loaded {len(imported.images)} image(s)")

    # ---- map -----------------------------------------------------------

    def _refresh_map(self) -> None:
        self.geo_bounds = self._bounds_engine.compute_bounds(self.dataset.coordinates)
        if self.geo_bounds is not None:
            self.selector.on_dataset_bounds_available(self.geo_bounds)
        else:
            self.selector.clear_bounds()
        self.render()

    def photo_vms(self) -> list[PhotoVM]:
        return [PhotoVM(record, self.rtk_enabled, self._classifier) for record in self.dataset.images]

    def build_frame(self) -> RenderFrame:
        """Assemble markers, flight path, bounds and base layer for the current state."""
        coords = self.dataset.coordinates
        return RenderFrame(
            markers=[vm.marker for vm in self.photo_vms()],
            path=coords if len(coords) >= 2 else None,
            bounds=self.geo_bounds.bounds if self.geo_bounds is not None else None,
            pan_constraint=self.selector.pan_constraint(),
            base_layer=self.selector.base_layer(),
            view=self.selector.view,
        )

    def render(self) -> RenderFrame:
        frame = self.build_frame()
        if self._renderer is not None:
            self._renderer.render(frame)
        return frame

    def set_token(self, token: str | None, persist: bool = True) -> Outcome:
        """Apply a hybrid-tile token; an empty token reverts to the server default."""
        applied = self.selector.set_token(token)
        if persist:
            self._safe_set(TOKEN_KEY, (token or "").strip() if applied else None)
        self.render()
        return Outcome.ok(value=applied, message=self.selector.status_message())

    def clear_token(self) -> Outcome:
        return self.set_token(None)

    def on_tile_load_failure(self) -> Outcome:
        """Fall back from hybrid tiles; reported as a recovered failure."""
        if not self.selector.on_tile_load_failure():
            return Outcome.ok()
        self.render()
        return Outcome.fail(FailureReason.TILE_LOAD_FAILURE)

    @property
    def token_status(self) -> str:
        return self.selector.status_message()

    # ---- exports -------------------------------------------------------

    def generate_exchange_document(self) -> Outcome:
        if not self.dataset.images:
            return Outcome.fail(FailureReason.EMPTY_DATASET)
        self.exchange_document = self._builder.build_exchange_document(self.session_name, self.dataset.images)
        return Outcome.ok(value=self.exchange_document)

    def error_report(self, generated_at: datetime | None = None) -> Outcome:
        if not self.dataset.errors:
            return Outcome.fail(FailureReason.EMPTY_DATASET, "No errors to report")
        html = self._builder.build_error_report(
            self.session_name, self.dataset.errors, generated_at or datetime.now().replace(microsecond=0)
        )
        return Outcome.ok(value=html)

    def rtk_report(self, generated_at: datetime | None = None) -> Outcome:
        if not self.dataset.images:
            return Outcome.fail(FailureReason.EMPTY_DATASET)
        html = self._builder.build_rtk_report(
            self.session_name, self.dataset.images, generated_at or datetime.now().replace(microsecond=0)
        )
        return Outcome.ok(value=html)

    # ---- stats and preferences -----------------------------------------

    @property
    def stats(self) -> SessionStats:
        valid = len(self.dataset.images)
        errors = len(self.dataset.errors)
        return SessionStats(total=valid + errors, valid=valid, errors=errors)

    def rtk_summary(self) -> RTKAggregate:
        return self._classifier.aggregate(self.dataset.images)

    @property
    def theme(self) -> str:
        value = self._theme or self._safe_get(THEME_KEY)
        return value if value in (THEME_DARK, THEME_LIGHT) else THEME_DARK

    def toggle_theme(self) -> str:
        theme = THEME_LIGHT if self.theme == THEME_DARK else THEME_DARK
        self._theme = theme
        self._safe_set(THEME_KEY, theme)
        return theme

    @property
    def privacy_acknowledged(self) -> bool:
        return self._privacy_ack or self._safe_get(PRIVACY_ACK_KEY) == "true"

    def acknowledge_privacy(self) -> None:
        self._privacy_ack = True
        self._safe_set(PRIVACY_ACK_KEY, "true")
