"""Loguru sinks for the mapper: a rotating daily file plus optional stderr."""

from __future__ import annotations

from pathlib import Path
import sys

from loguru import logger

APP_DIR_NAME = ".metainfo-mapper"
LOG_FILE_PREFIX = "metainfo_"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
CONSOLE_FORMAT = "<level>{level: <8}</level> | {message}"


def get_log_directory() -> str:
    """Default log folder, `~/.metainfo-mapper/logs`."""
    return str(Path.home() / APP_DIR_NAME / "logs")


def init_logging(log_dir: str | None = None, level: str = "INFO", console: bool = False) -> None:
    """Replace all loguru sinks with the mapper's own.

    Files are named per day, rotate at 10 MB and are zipped and kept for
    10 days. Writes go through loguru's queue so ingestion worker threads
    never block on disk.

    Args:
        log_dir: Target folder; created when missing. Defaults to
            `get_log_directory()`.
        level: Minimum level for every sink.
        console: Also echo to stderr (used by the command line front end).
    """
    target = Path(log_dir or get_log_directory())
    target.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        target / f"{LOG_FILE_PREFIX}{{time:YYYYMMDD}}.log",
        format=FILE_FORMAT,
        level=level,
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
    if console:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level)
    logger.debug("Logging to {} at level {}", target, level)


def find_latest_log_file(log_dir: str | None = None) -> Path | None:
    """Most recently modified `metainfo_*.log` in `log_dir`, or None."""
    folder = Path(log_dir or get_log_directory())
    try:
        candidates = sorted(folder.glob(f"{LOG_FILE_PREFIX}*.log"), key=lambda p: p.stat().st_mtime)
    except OSError:
        return None
    return candidates[-1] if candidates else None
