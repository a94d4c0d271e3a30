from __future__ import annotations

import argparse
import asyncio
from collections.abc import Iterable
from pathlib import Path
import sys

from loguru import logger

from app.viewmodels.main_vm import MainVM
from core.services.interfaces import SourceFile
from infrastructure.document_repository import DocumentRepository, export_filename
from infrastructure.exif_extractor import PillowMetadataExtractor
from infrastructure.frame_renderer import JsonFrameRenderer
from infrastructure.key_value_store import JsonFileStore
from infrastructure.logging import init_logging
from infrastructure.settings import JsonSettings, expand_path, load_extensions, load_map_config

BASE_DIR = Path(__file__).parent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metainfo-mapper",
        description="Map drone images by their embedded GPS/RTK metadata and export KML and HTML reports.",
    )
    parser.add_argument("session_name", help="Location / session name used for document titles and file names")
    parser.add_argument("paths", nargs="*", help="Image files or folders (searched recursively)")
    parser.add_argument("--rtk", action="store_true", help="Analyze RTK positioning quality")
    parser.add_argument("--output", default=".", help="Directory for exported documents")
    parser.add_argument("--settings", default=None, help="settings.json path (defaults to the bundled one)")
    parser.add_argument("--token", default=None, help="Mapbox token for hybrid tiles")
    parser.add_argument("--load", default=None, help="Existing KML/KMZ to load instead of ingesting images")
    return parser


def _load_settings(path: str | None) -> JsonSettings:
    settings_path = Path(path) if path else BASE_DIR / "settings.json"
    try:
        return JsonSettings(settings_path)
    except FileNotFoundError:
        if path:
            raise
        return JsonSettings.from_dict({})


def _collect_files(paths: Iterable[str]) -> list[SourceFile]:
    """Expand folders recursively; files are kept in the order given."""
    files: list[SourceFile] = []
    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            files.extend(SourceFile.from_path(f) for f in sorted(p.rglob("*")) if f.is_file())
        elif p.is_file():
            files.append(SourceFile.from_path(p))
        else:
            logger.warning("Skipping missing path {}", p)
    return files


def _print_progress(done: int, total: int) -> None:
    print(f"\rProcessing {done}/{total}", end="" if done < total else "\n", file=sys.stderr)


def _print_summary(vm: MainVM) -> None:
    stats = vm.stats
    print(f"Total: {stats.total}  Valid: {stats.valid}  Errors: {stats.errors}")
    if vm.rtk_enabled:
        agg = vm.rtk_summary()
        avg = f"{agg.avg_correction_age_ms:.1f} ms" if agg.avg_correction_age_ms is not None else "N/A"
        print(
            f"RTK Fixed: {agg.fixed}  Float: {agg.float}  Single: {agg.single}  "
            f"No RTK: {agg.no_rtk}  Avg correction age: {avg}"
        )
    print(vm.token_status)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = _load_settings(args.settings)
    init_logging(
        expand_path(settings.get("logging.dir")),
        level=str(settings.get("logging.level", "INFO")),
        console=True,
    )

    repo = DocumentRepository(args.output)
    renderer = JsonFrameRenderer(Path(args.output) / export_filename(args.session_name, "frame"))
    store = JsonFileStore(expand_path(settings.get("storage.path")))
    vm = MainVM(
        PillowMetadataExtractor(),
        store=store,
        renderer=renderer,
        map_config=load_map_config(settings),
        archive_reader=repo.archive_reader,
        extensions=load_extensions(settings),
    )
    if args.token:
        vm.set_token(args.token)

    if args.load:
        outcome = vm.load_session(args.load, repo.read_bytes(args.load))
        if not outcome.success:
            logger.error(outcome.message)
            return 1
        # The document name wins over the command line name
        renderer.set_path(Path(args.output) / export_filename(vm.session_name, "frame"))
        vm.render()
    else:
        outcome = vm.start_session(args.session_name, rtk_enabled=args.rtk)
        if not outcome.success:
            logger.error(outcome.message)
            return 1
        outcome = asyncio.run(vm.handle_files(_collect_files(args.paths), _print_progress))
        if not outcome.success:
            logger.error(outcome.message)
            return 1

    exchange = vm.generate_exchange_document()
    if exchange.success:
        repo.save_text(vm.session_name, "exchange", exchange.value)
    else:
        logger.warning(exchange.message)

    errors = vm.error_report()
    if errors.success:
        repo.save_text(vm.session_name, "errors", errors.value)

    if vm.rtk_enabled:
        rtk = vm.rtk_report()
        if rtk.success:
            repo.save_text(vm.session_name, "rtk", rtk.value)

    _print_summary(vm)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
