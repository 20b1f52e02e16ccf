"""Key-value persistence for the session record, server list and settings.

`JsonFileStore` keeps every key in one JSON document, loaded lazily on first
access and flushed on `save()`. Writes go to a temporary file that replaces
the target, so an interrupted save never leaves a truncated document.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from serveme.auth.models.errors import StorageError

logger = logging.getLogger(__name__)

SESSION_KEY = "session"
SERVERS_KEY = "saved_servers"
SERVER_URL_KEY = "server_url"


class KeyValueStore(Protocol):
    """Storage boundary consumed by the session manager, registry and settings."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def save(self) -> None:
        """Flush pending writes to the durable medium."""
        ...


class InMemoryStore:
    """Volatile store. `save()` only counts flushes."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.save_count = 0

    def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key, default)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def save(self) -> None:
        self.save_count += 1


class JsonFileStore:
    """Store backed by a single JSON file."""

    def __init__(self, path: str | os.PathLike[str]):
        """Initialize the file store.

        Args:
            path: Location of the JSON document; parent directories are
                created on first save
        """
        self.path = Path(path).expanduser()
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        try:
            contents = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read store {self.path}: {e}") from e

        if not isinstance(contents, dict):
            raise StorageError(f"Store {self.path} does not contain a JSON object")

        logger.debug(f"Loaded {len(contents)} keys from {self.path}")
        self._data = contents
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        value = self._load().get(key, default)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = copy.deepcopy(value)

    def save(self) -> None:
        data = self._load()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to save store {self.path}: {e}") from e

        logger.debug(f"Saved store to {self.path}")
