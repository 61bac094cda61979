"""User preset store — CRUD for user-defined providers and model presets.

All state lives in one :class:`~modelhub.presets.filestore.MapFileStore`
document shaped like :class:`~modelhub.presets.models.PresetsSchema`.  Reads
use the cached map; every write parses a fresh copy, mutates it, validates
the touched provider and flushes the whole document.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from modelhub.presets.errors import (
    FileStoreError,
    InvalidRequestError,
    ModelPresetNotFoundError,
    ProviderNotEmptyError,
    ProviderNotFoundError,
)
from modelhub.presets.filestore import MapFileStore
from modelhub.presets.models import (
    ModelPreset,
    ModelPresetBody,
    PresetsSchema,
    ProviderPreset,
    ProviderPresetBody,
)
from modelhub.presets.validation import validate_model_preset, validate_provider_preset
from modelhub.settings import SCHEMA_VERSION, USER_PRESETS_FILE

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class UserPresetStore:
    """Persisted user providers, guarded by one store-wide lock."""

    def __init__(self, base_dir: Path | str) -> None:
        base = Path(base_dir)
        defaults = PresetsSchema().to_json_dict()
        self._file = MapFileStore(base / USER_PRESETS_FILE, defaults)
        self._lock = threading.RLock()

    # -- document access ----------------------------------------------------

    def read_all(self, force: bool = False) -> PresetsSchema:
        """Parse the cached (or, with *force*, re-read) document."""
        raw = self._file.get_all(force)
        try:
            return PresetsSchema.model_validate(raw)
        except ValidationError as exc:
            raise FileStoreError(str(self._file.path), str(exc)) from exc

    def _write_all(self, schema: PresetsSchema) -> None:
        schema.schema_version = SCHEMA_VERSION
        self._file.set_all(schema.to_json_dict())

    # -- default provider ----------------------------------------------------

    def get_default_provider(self) -> str:
        return self.read_all().default_provider

    def set_default_provider(self, provider_name: str) -> None:
        with self._lock:
            schema = self.read_all()
            schema.default_provider = provider_name
            self._write_all(schema)

    # -- providers ----------------------------------------------------------

    def get_provider(self, name: str) -> ProviderPreset:
        provider = self.read_all().provider_presets.get(name)
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider

    def list_providers(self) -> list[ProviderPreset]:
        return list(self.read_all().provider_presets.values())

    def put_provider(self, name: str, body: ProviderPresetBody) -> ProviderPreset:
        """Create or replace a provider, keeping ``created_at`` and its models."""
        now = _now()
        provider = ProviderPreset(
            **body.model_dump(),
            schema_version=SCHEMA_VERSION,
            name=name,
            created_at=now,
            modified_at=now,
            is_built_in=False,
        )
        with self._lock:
            schema = self.read_all()
            existing = schema.provider_presets.get(name)
            if existing is not None:
                provider.created_at = existing.created_at
                provider.model_presets = existing.model_presets
                provider.default_model_preset_id = existing.default_model_preset_id
            validate_provider_preset(provider)
            schema.provider_presets[name] = provider
            self._write_all(schema)
        logger.info("put provider preset %s", name)
        return provider

    def patch_provider(
        self,
        name: str,
        *,
        is_enabled: bool | None = None,
        default_model_preset_id: str | None = None,
    ) -> ProviderPreset:
        """Toggle a provider and/or point its default at an existing model."""
        with self._lock:
            schema = self.read_all()
            provider = schema.provider_presets.get(name)
            if provider is None:
                raise ProviderNotFoundError(name)

            changed = False
            if is_enabled is not None and provider.is_enabled != is_enabled:
                provider.is_enabled = is_enabled
                changed = True
            if (
                default_model_preset_id is not None
                and provider.default_model_preset_id != default_model_preset_id
            ):
                if default_model_preset_id not in provider.model_presets:
                    raise ModelPresetNotFoundError(name, default_model_preset_id)
                provider.default_model_preset_id = default_model_preset_id
                changed = True

            if not changed:
                return provider

            provider.modified_at = _now()
            self._write_all(schema)
        logger.info(
            "patched provider preset %s (is_enabled=%s, default_model_preset_id=%s)",
            name,
            is_enabled,
            default_model_preset_id,
        )
        return provider

    def delete_provider(self, name: str) -> None:
        """Delete an empty provider."""
        with self._lock:
            schema = self.read_all(force=True)
            provider = schema.provider_presets.get(name)
            if provider is None:
                raise ProviderNotFoundError(name)
            if provider.model_presets:
                raise ProviderNotEmptyError(name, len(provider.model_presets))
            del schema.provider_presets[name]
            if schema.default_provider == name:
                schema.default_provider = ""
            self._write_all(schema)
        logger.info("deleted provider preset %s", name)

    # -- model presets --------------------------------------------------------

    def put_model(
        self, provider_name: str, model_preset_id: str, body: ModelPresetBody
    ) -> ModelPreset:
        """Create or replace a model preset, stamping model and parent."""
        if not provider_name or not model_preset_id:
            raise InvalidRequestError("provider name and model preset id are required")
        now = _now()
        model = ModelPreset(
            **body.model_dump(),
            schema_version=SCHEMA_VERSION,
            id=model_preset_id,
            created_at=now,
            modified_at=now,
            is_built_in=False,
        )
        validate_model_preset(model)

        with self._lock:
            schema = self.read_all()
            provider = schema.provider_presets.get(provider_name)
            if provider is None:
                raise ProviderNotFoundError(provider_name)
            existing = provider.model_presets.get(model_preset_id)
            if existing is not None:
                model.created_at = existing.created_at
            provider.model_presets[model_preset_id] = model
            provider.modified_at = now
            self._write_all(schema)
        logger.info("put model preset %s/%s", provider_name, model_preset_id)
        return model

    def patch_model(self, provider_name: str, model_preset_id: str, is_enabled: bool) -> ModelPreset:
        with self._lock:
            schema = self.read_all()
            provider = schema.provider_presets.get(provider_name)
            if provider is None:
                raise ProviderNotFoundError(provider_name)
            model = provider.model_presets.get(model_preset_id)
            if model is None:
                raise ModelPresetNotFoundError(provider_name, model_preset_id)
            model.is_enabled = is_enabled
            model.modified_at = _now()
            provider.modified_at = model.modified_at
            self._write_all(schema)
        logger.info(
            "patched model preset %s/%s is_enabled=%s", provider_name, model_preset_id, is_enabled
        )
        return model

    def delete_model(self, provider_name: str, model_preset_id: str) -> None:
        """Delete a model preset; clears the parent's default if it pointed here."""
        with self._lock:
            schema = self.read_all()
            provider = schema.provider_presets.get(provider_name)
            if provider is None:
                raise ProviderNotFoundError(provider_name)
            if model_preset_id not in provider.model_presets:
                raise ModelPresetNotFoundError(provider_name, model_preset_id)
            del provider.model_presets[model_preset_id]
            if provider.default_model_preset_id == model_preset_id:
                provider.default_model_preset_id = ""
            provider.modified_at = _now()
            self._write_all(schema)
        logger.info("deleted model preset %s/%s", provider_name, model_preset_id)
