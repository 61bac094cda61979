"""Provider and model preset registry: built-in catalogue, overlay and user store."""

from modelhub.presets.errors import (
    BuiltInProviderAbsentError,
    BuiltInReadOnlyError,
    InvalidRequestError,
    ModelPresetNotFoundError,
    PresetsError,
    ProviderNotEmptyError,
    ProviderNotFoundError,
    ValidationFailedError,
)
from modelhub.presets.models import (
    ListProviderPresetsResponse,
    ModelPreset,
    ModelPresetBody,
    PresetsSchema,
    ProviderPreset,
    ProviderPresetBody,
    ReasoningParams,
)
from modelhub.presets.registry import PresetRegistry

__all__ = [
    "BuiltInProviderAbsentError",
    "BuiltInReadOnlyError",
    "InvalidRequestError",
    "ListProviderPresetsResponse",
    "ModelPreset",
    "ModelPresetBody",
    "ModelPresetNotFoundError",
    "PresetRegistry",
    "PresetsError",
    "PresetsSchema",
    "ProviderNotEmptyError",
    "ProviderNotFoundError",
    "ProviderPreset",
    "ProviderPresetBody",
    "ReasoningParams",
    "ValidationFailedError",
]
