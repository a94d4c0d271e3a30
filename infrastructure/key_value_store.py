"""Key-value persistence for tokens and user preferences.

Storage problems never propagate: a store that cannot be read behaves as
empty, and a write that fails is dropped with a warning.
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from infrastructure.logging import APP_DIR_NAME

TOKEN_KEY = "metainfo-mapbox-token"
THEME_KEY = "metainfo-theme"
PRIVACY_ACK_KEY = "metainfo-privacy-ack"


def default_store_path() -> Path:
    return Path.home() / APP_DIR_NAME / "store.json"


class MemoryStore:
    """In-process store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str | None) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class JsonFileStore:
    """Store backed by a single JSON object on disk."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else default_store_path()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as ex:
            logger.warning("Store {} unreadable: {}", self._path, ex)
            return {}
        if not isinstance(data, dict):
            logger.warning("Store {} does not hold an object, ignoring", self._path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str | None) -> None:
        """Write or remove `key`; failures are logged and ignored."""
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            tmp.replace(self._path)
        except OSError as ex:
            logger.warning("Could not persist '{}' to {}: {}", key, self._path, ex)
