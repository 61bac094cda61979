"""Map file store — a JSON object persisted to one file with an in-memory cache.

This is the minimal persistence primitive the user preset store sits on:
reads come from the cache, writes replace the file atomically.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any

from modelhub.presets.errors import FileStoreError
from modelhub.presets.overlay import atomic_write_json

logger = logging.getLogger(__name__)


class MapFileStore:
    """JSON map persisted at *path*, seeded from *defaults* when absent.

    Args:
        path: Target JSON file.
        defaults: Initial content written when the file does not exist.
        auto_flush: When ``False`` writes only update the cache until
            :meth:`flush` is called.
    """

    def __init__(
        self,
        path: Path | str,
        defaults: dict[str, Any] | None = None,
        *,
        auto_flush: bool = True,
    ) -> None:
        self._path = Path(path)
        self._auto_flush = auto_flush
        self._lock = threading.RLock()
        self._data: dict[str, Any] = {}

        if self._path.exists():
            self._data = self._read()
        else:
            self._data = copy.deepcopy(defaults or {})
            self.flush()

    @property
    def path(self) -> Path:
        return self._path

    def get_all(self, force: bool = False) -> dict[str, Any]:
        """Return a deep copy of the map, re-reading the file when *force*."""
        with self._lock:
            if force:
                self._data = self._read()
            return copy.deepcopy(self._data)

    def set_all(self, data: dict[str, Any]) -> None:
        with self._lock:
            self._data = copy.deepcopy(data)
            self._maybe_flush()

    def set_key(self, key_path: list[str], value: Any) -> None:
        """Set a nested value, creating intermediate objects."""
        if not key_path:
            raise FileStoreError(str(self._path), "empty key path")
        with self._lock:
            node = self._data
            for part in key_path[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            node[key_path[-1]] = copy.deepcopy(value)
            self._maybe_flush()

    def delete_key(self, key_path: list[str]) -> None:
        """Delete a nested value (no-op if any segment is missing)."""
        if not key_path:
            raise FileStoreError(str(self._path), "empty key path")
        with self._lock:
            node: Any = self._data
            for part in key_path[:-1]:
                node = node.get(part) if isinstance(node, dict) else None
                if node is None:
                    return
            if isinstance(node, dict) and key_path[-1] in node:
                del node[key_path[-1]]
                self._maybe_flush()

    def flush(self) -> None:
        with self._lock:
            try:
                atomic_write_json(self._path, self._data)
            except OSError as exc:
                raise FileStoreError(str(self._path), str(exc)) from exc

    def _maybe_flush(self) -> None:
        if self._auto_flush:
            self.flush()

    def _read(self) -> dict[str, Any]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise FileStoreError(str(self._path), str(exc)) from exc
        if not isinstance(raw, dict):
            raise FileStoreError(str(self._path), "top-level JSON value must be an object")
        return raw
