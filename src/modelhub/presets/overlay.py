"""Overlay flag store — small persisted ``(group, key) -> value`` map.

The overlay records user edits to built-in data (enable/disable toggles, a
provider's default model) without touching the built-in catalogue itself.
The whole map lives in one JSON file::

    {
      "providers": {"openai": {"value": false, "modifiedAt": "..."}},
      "models/openai": {"openai/gpt4o": {"value": true, "modifiedAt": "..."}}
    }

Every write rewrites the file atomically (temp file + ``os.replace``).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modelhub.presets.errors import OverlayStoreError

logger = logging.getLogger(__name__)

GROUP_PROVIDERS = "providers"
GROUP_PROVIDER_DEFAULT_MODEL_ID = "providerDefaultModelID"
MODELS_GROUP_PREFIX = "models/"


def models_group(provider_name: str) -> str:
    """Return the overlay group that holds model toggles of *provider_name*."""
    return f"{MODELS_GROUP_PREFIX}{provider_name}"


def model_key(provider_name: str, model_preset_id: str) -> str:
    """Return the overlay key of a model inside :func:`models_group`."""
    return f"{provider_name}/{model_preset_id}"


class OverlayFlag(BaseModel):
    """A single overlay value with the time it was last written."""

    model_config = ConfigDict(populate_by_name=True)

    value: bool | str
    modified_at: datetime = Field(alias="modifiedAt")


class OverlayStore:
    """JSON-file backed overlay map guarded by a single writer lock."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._flags: dict[str, dict[str, OverlayFlag]] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get_flag(self, group: str, key: str) -> OverlayFlag | None:
        """Return the flag stored under ``(group, key)``, or ``None``."""
        with self._lock:
            return self._flags.get(group, {}).get(key)

    def set_flag(self, group: str, key: str, value: bool | str) -> OverlayFlag:
        """Store *value* under ``(group, key)`` and flush to disk."""
        flag = OverlayFlag(value=value, modified_at=datetime.now(UTC))
        with self._lock:
            self._flags.setdefault(group, {})[key] = flag
            self._flush()
        return flag

    def delete_flag(self, group: str, key: str) -> None:
        """Remove ``(group, key)`` (no-op if absent)."""
        with self._lock:
            entries = self._flags.get(group)
            if entries is None or key not in entries:
                return
            del entries[key]
            if not entries:
                del self._flags[group]
            self._flush()

    def iter_group(self, group: str) -> Iterator[tuple[str, OverlayFlag]]:
        """Yield ``(key, flag)`` pairs of *group* from a point-in-time copy."""
        with self._lock:
            items = list(self._flags.get(group, {}).items())
        yield from items

    def groups(self) -> list[str]:
        with self._lock:
            return list(self._flags)

    # -- persistence --------------------------------------------------------

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise OverlayStoreError(str(self._path), str(exc)) from exc
        if not isinstance(raw, dict):
            raise OverlayStoreError(str(self._path), "top-level JSON value must be an object")

        try:
            for group, entries in raw.items():
                if not isinstance(entries, dict):
                    raise OverlayStoreError(str(self._path), f"group {group!r} must be an object")
                self._flags[group] = {
                    key: OverlayFlag.model_validate(flag) for key, flag in entries.items()
                }
        except ValidationError as exc:
            raise OverlayStoreError(str(self._path), str(exc)) from exc

    def _flush(self) -> None:
        data = {
            group: {
                key: flag.model_dump(mode="json", by_alias=True) for key, flag in entries.items()
            }
            for group, entries in self._flags.items()
        }
        atomic_write_json(self._path, data)


def atomic_write_json(path: Path, data: object) -> None:
    """Write *data* as JSON next to *path*, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("wrote %s", path)


# ---------------------------------------------------------------------------
# Typed group helpers
# ---------------------------------------------------------------------------

T = TypeVar("T", bool, str)


class FlagGroup(Generic[T]):
    """View of one overlay group whose values all share type ``T``."""

    def __init__(self, store: OverlayStore, group: str, value_type: type[T]) -> None:
        self._store = store
        self.group = group
        self._value_type = value_type

    def get(self, key: str) -> tuple[T, datetime] | None:
        flag = self._store.get_flag(self.group, key)
        if flag is None or not isinstance(flag.value, self._value_type):
            return None
        return flag.value, flag.modified_at

    def set(self, key: str, value: T) -> datetime:
        return self._store.set_flag(self.group, key, value).modified_at

    def delete(self, key: str) -> None:
        self._store.delete_flag(self.group, key)

    def items(self) -> Iterator[tuple[str, T, datetime]]:
        for key, flag in self._store.iter_group(self.group):
            if isinstance(flag.value, self._value_type):
                yield key, flag.value, flag.modified_at
