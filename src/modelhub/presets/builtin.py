"""Built-in preset catalogue with an overlay-backed snapshot view.

The catalogue ships as ``modelpresets.json`` inside :mod:`modelhub.presets.data`
and is never mutated.  User edits to built-ins (enable/disable, default model)
are stored in an :class:`~modelhub.presets.overlay.OverlayStore` and applied
onto a copy of the base maps to produce the observable snapshot.
"""

from __future__ import annotations

import json
import logging
import threading
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

from pydantic import ValidationError

from modelhub.presets.errors import (
    BuiltInProviderAbsentError,
    InvalidRequestError,
    ModelPresetNotFoundError,
    ProviderNotFoundError,
    SchemaVersionError,
    ValidationFailedError,
)
from modelhub.presets.models import ModelPreset, PresetsSchema, ProviderPreset
from modelhub.presets.overlay import (
    GROUP_PROVIDER_DEFAULT_MODEL_ID,
    GROUP_PROVIDERS,
    FlagGroup,
    OverlayStore,
    model_key,
    models_group,
)
from modelhub.presets.rebuild import AsyncRebuilder
from modelhub.presets.validation import validate_provider_preset
from modelhub.settings import (
    BUILTIN_SNAPSHOT_MAX_AGE,
    MODEL_PRESETS_FILE,
    OVERLAY_FILE,
    SCHEMA_VERSION,
)
from modelhub.utils.telemetry import ATTR_PROVIDER_COUNT, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


def default_presets_source() -> Traversable:
    """Return the package directory holding the embedded catalogue."""
    return resources.files("modelhub.presets.data")


class BuiltInPresets:
    """Immutable built-in providers plus the overlay-derived snapshot.

    Args:
        overlay_base_dir: Directory for the overlay JSON file.
        max_snapshot_age: Seconds a snapshot stays fresh before reads or
            overlay writes trigger a background rebuild.
        presets_source: Traversable containing the catalogue (tests inject
            their own).
        presets_root: Sub-directory of *presets_source* holding the file.
    """

    def __init__(
        self,
        overlay_base_dir: Path | str,
        max_snapshot_age: float = BUILTIN_SNAPSHOT_MAX_AGE,
        *,
        presets_source: Traversable | Path | None = None,
        presets_root: str = "",
    ) -> None:
        if not str(overlay_base_dir):
            raise InvalidRequestError("overlay base dir is required")
        base_dir = Path(overlay_base_dir)
        base_dir.mkdir(parents=True, exist_ok=True)

        self._source: Traversable | Path = presets_source or default_presets_source()
        self._root = presets_root

        self._lock = threading.RLock()
        self.overlay = OverlayStore(base_dir / OVERLAY_FILE)
        self._provider_flags = FlagGroup(self.overlay, GROUP_PROVIDERS, bool)
        self._default_model_flags = FlagGroup(self.overlay, GROUP_PROVIDER_DEFAULT_MODEL_ID, str)

        self.default_provider = ""
        self._providers: dict[str, ProviderPreset] = {}
        self._models: dict[str, dict[str, ModelPreset]] = {}
        self._view_providers: dict[str, ProviderPreset] = {}
        self._view_models: dict[str, dict[str, ModelPreset]] = {}

        self._load()

        self.rebuilder = AsyncRebuilder(max_snapshot_age, self._locked_rebuild)
        self.rebuilder.mark_fresh()

    # -- reads --------------------------------------------------------------

    def list_providers(self) -> dict[str, ProviderPreset]:
        """Return deep copies of every provider in the current snapshot."""
        self.rebuilder.trigger()
        with self._lock:
            return {name: p.model_copy(deep=True) for name, p in self._view_providers.items()}

    def list_models(self) -> dict[str, dict[str, ModelPreset]]:
        self.rebuilder.trigger()
        with self._lock:
            return {
                name: {mid: m.model_copy(deep=True) for mid, m in models.items()}
                for name, models in self._view_models.items()
            }

    def has_provider(self, name: str) -> bool:
        return name in self._providers

    def get_provider(self, name: str) -> ProviderPreset:
        """Return one provider from the snapshot.

        Raises:
            ProviderNotFoundError: If *name* is not a built-in provider.
        """
        self.rebuilder.trigger()
        with self._lock:
            provider = self._view_providers.get(name)
            if provider is None:
                raise ProviderNotFoundError(name)
            return provider.model_copy(deep=True)

    def get_model_preset(self, provider_name: str, model_preset_id: str) -> ModelPreset:
        self.rebuilder.trigger()
        with self._lock:
            models = self._view_models.get(provider_name)
            if models is None:
                raise ProviderNotFoundError(provider_name)
            model = models.get(model_preset_id)
            if model is None:
                raise ModelPresetNotFoundError(provider_name, model_preset_id)
            return model.model_copy(deep=True)

    # -- overlay writes -----------------------------------------------------

    def set_provider_enabled(self, name: str, enabled: bool) -> ProviderPreset:
        """Enable or disable a built-in provider through the overlay."""
        if name not in self._providers:
            raise BuiltInProviderAbsentError(name)
        modified_at = self._provider_flags.set(name, enabled)

        with self._lock:
            provider = self._view_providers[name]
            provider.is_enabled = enabled
            provider.modified_at = modified_at
            result = provider.model_copy(deep=True)

        self.rebuilder.trigger()
        logger.info("built-in provider %s enabled=%s", name, enabled)
        return result

    def set_model_preset_enabled(
        self, provider_name: str, model_preset_id: str, enabled: bool
    ) -> ModelPreset:
        """Enable or disable one built-in model preset through the overlay."""
        if provider_name not in self._models:
            raise BuiltInProviderAbsentError(provider_name)
        if model_preset_id not in self._models[provider_name]:
            raise ModelPresetNotFoundError(provider_name, model_preset_id)

        modified_at = self.overlay.set_flag(
            models_group(provider_name), model_key(provider_name, model_preset_id), enabled
        ).modified_at

        with self._lock:
            model = self._view_models[provider_name][model_preset_id]
            model.is_enabled = enabled
            model.modified_at = modified_at
            # Keep the provider's embedded map consistent for immediate reads.
            self._view_providers[provider_name].model_presets[model_preset_id] = (
                model.model_copy(deep=True)
            )
            result = model.model_copy(deep=True)

        self.rebuilder.trigger()
        logger.info(
            "built-in model preset %s/%s enabled=%s", provider_name, model_preset_id, enabled
        )
        return result

    def set_default_model_preset(self, provider_name: str, model_preset_id: str) -> ProviderPreset:
        """Point a built-in provider's default model at *model_preset_id*."""
        models = self._models.get(provider_name)
        if models is None:
            raise ProviderNotFoundError(provider_name)
        if model_preset_id not in models:
            raise ModelPresetNotFoundError(provider_name, model_preset_id)

        modified_at = self._default_model_flags.set(provider_name, model_preset_id)

        with self._lock:
            provider = self._view_providers[provider_name]
            provider.default_model_preset_id = model_preset_id
            provider.modified_at = modified_at
            result = provider.model_copy(deep=True)

        self.rebuilder.trigger()
        return result

    # -- loading and rebuilding ----------------------------------------------

    def _read_catalogue(self) -> str:
        source = self._source
        if self._root:
            source = source.joinpath(self._root)
        return source.joinpath(MODEL_PRESETS_FILE).read_text(encoding="utf-8")

    def _load(self) -> None:
        try:
            raw = json.loads(self._read_catalogue())
            schema = PresetsSchema.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise ValidationFailedError(MODEL_PRESETS_FILE, str(exc)) from exc

        if schema.schema_version != SCHEMA_VERSION:
            raise SchemaVersionError(MODEL_PRESETS_FILE, schema.schema_version, SCHEMA_VERSION)
        if not schema.default_provider:
            raise ValidationFailedError(MODEL_PRESETS_FILE, "no default provider in built-in data")
        if not schema.provider_presets:
            raise ValidationFailedError(MODEL_PRESETS_FILE, "contains no providers")

        providers: dict[str, ProviderPreset] = {}
        models: dict[str, dict[str, ModelPreset]] = {}
        for name, provider in schema.provider_presets.items():
            if provider.name != name:
                raise ValidationFailedError(
                    MODEL_PRESETS_FILE, f"provider key {name!r} does not match name {provider.name!r}"
                )
            validate_provider_preset(provider)
            provider.is_built_in = True
            for model in provider.model_presets.values():
                model.is_built_in = True
            providers[name] = provider
            models[name] = dict(provider.model_presets)

        if schema.default_provider not in providers:
            raise ValidationFailedError(
                MODEL_PRESETS_FILE,
                f"default provider {schema.default_provider!r} not present in presets",
            )

        self.default_provider = schema.default_provider
        self._providers = providers
        self._models = models
        with self._lock:
            self.rebuild_snapshot()
        logger.debug("loaded %d built-in providers", len(providers))

    def _locked_rebuild(self) -> None:
        with self._lock:
            self.rebuild_snapshot()

    def rebuild_snapshot(self) -> None:
        """Apply overlay flags onto the immutable base maps.

        Caller must hold the snapshot lock.
        """
        with _tracer.start_as_current_span("presets.rebuild") as span:
            span.set_attribute(ATTR_PROVIDER_COUNT, len(self._providers))

            new_models: dict[str, dict[str, ModelPreset]] = {}
            for provider_name, base_models in self._models.items():
                group = FlagGroup(self.overlay, models_group(provider_name), bool)
                sub: dict[str, ModelPreset] = {}
                for model_id, base in base_models.items():
                    model = base.model_copy(deep=True)
                    flag = group.get(model_key(provider_name, model_id))
                    if flag is not None:
                        model.is_enabled, model.modified_at = flag
                    sub[model_id] = model
                new_models[provider_name] = sub

            new_providers: dict[str, ProviderPreset] = {}
            for name, base in self._providers.items():
                provider = base.model_copy(deep=True)

                default_flag = self._default_model_flags.get(name)
                if default_flag is not None:
                    model_id, modified_at = default_flag
                    if model_id in new_models[name]:
                        provider.default_model_preset_id = model_id
                        provider.modified_at = modified_at
                    else:
                        logger.warning(
                            "dropping overlay default model %r for %s: model no longer exists",
                            model_id,
                            name,
                        )
                        self._default_model_flags.delete(name)

                enabled_flag = self._provider_flags.get(name)
                if enabled_flag is not None:
                    provider.is_enabled = enabled_flag[0]
                    if provider.modified_at is None or enabled_flag[1] > provider.modified_at:
                        provider.modified_at = enabled_flag[1]

                provider.model_presets = {
                    mid: m.model_copy(deep=True) for mid, m in new_models[name].items()
                }
                new_providers[name] = provider

            self._view_providers = new_providers
            self._view_models = new_models
