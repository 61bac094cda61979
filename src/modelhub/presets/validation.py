"""Structural validation for provider and model presets."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from modelhub.presets.errors import (
    InvalidTimestampError,
    SchemaVersionError,
    ValidationFailedError,
)
from modelhub.presets.models import REASONING_LEVELS
from modelhub.settings import SCHEMA_VERSION

if TYPE_CHECKING:
    from datetime import datetime

    from modelhub.presets.models import ModelPreset, ProviderPreset, ReasoningParams

# ASCII letters, digits, "-" and "_"; must not start with "-" or "_"; 1..64 chars.
_TAG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


def validate_tag(value: str) -> str | None:
    """Return a problem description for an invalid slug/ID, or ``None``."""
    if not value:
        return "must not be empty"
    if len(value) > 64:
        return f"{value!r} is longer than 64 characters"
    if not _TAG_RE.match(value):
        return f"{value!r} may only contain letters, digits, '-' and '_' and must start with a letter or digit"
    return None


def validate_reasoning(reasoning: ReasoningParams) -> str | None:
    """Return a problem description for inconsistent reasoning params, or ``None``."""
    if reasoning.type == "hybridWithTokens":
        if reasoning.tokens <= 0:
            return "tokens must be >0 for hybridWithTokens"
        return None
    if reasoning.type == "singleWithLevels":
        if reasoning.level not in REASONING_LEVELS:
            return f"invalid level {reasoning.level!r} for singleWithLevels"
        return None
    return f"unknown type {reasoning.type!r}"


def _check_timestamps(
    subject: str, created_at: datetime | None, modified_at: datetime | None
) -> None:
    if created_at is None or modified_at is None:
        raise InvalidTimestampError(subject)
    if created_at > modified_at:
        raise InvalidTimestampError(subject, "createdAt is later than modifiedAt")


def validate_model_preset(model: ModelPreset, subject: str = "") -> None:
    """Validate a single model preset.

    Raises:
        ValidationFailedError: On the first violated rule.
    """
    subject = subject or f"model {model.id!r}"
    if model.schema_version != SCHEMA_VERSION:
        raise SchemaVersionError(subject, model.schema_version, SCHEMA_VERSION)
    problem = validate_tag(model.id)
    if problem:
        raise ValidationFailedError(subject, f"id {problem}")
    if not model.name.strip():
        raise ValidationFailedError(subject, "name is empty")
    problem = validate_tag(model.slug)
    if problem:
        raise ValidationFailedError(subject, f"slug {problem}")
    if not model.display_name.strip():
        raise ValidationFailedError(subject, "displayName is empty")
    _check_timestamps(subject, model.created_at, model.modified_at)

    if model.reasoning is None and model.temperature is None:
        raise ValidationFailedError(subject, "either reasoning or temperature must be set")
    if model.reasoning is not None:
        problem = validate_reasoning(model.reasoning)
        if problem:
            raise ValidationFailedError(subject, f"invalid reasoning: {problem}")


def validate_provider_preset(provider: ProviderPreset) -> None:
    """Validate a provider together with its embedded model presets.

    Raises:
        ValidationFailedError: On the first violated rule.
    """
    subject = f"provider {provider.name!r}"
    if provider.schema_version != SCHEMA_VERSION:
        raise SchemaVersionError(subject, provider.schema_version, SCHEMA_VERSION)
    if not provider.name.strip():
        raise ValidationFailedError(subject, "name is empty")
    if not provider.display_name.strip():
        raise ValidationFailedError(subject, "displayName is empty")
    _check_timestamps(subject, provider.created_at, provider.modified_at)
    if not provider.origin.strip():
        raise ValidationFailedError(subject, "origin is empty")
    if not provider.chat_completion_path_prefix.strip():
        raise ValidationFailedError(subject, "chatCompletionPathPrefix is empty")

    for model_id, model in provider.model_presets.items():
        if model.id != model_id:
            raise ValidationFailedError(
                subject, f"model key {model_id!r} does not match id {model.id!r}"
            )
        validate_model_preset(model, f"{subject}, model {model_id!r}")

    if provider.default_model_preset_id and (
        provider.default_model_preset_id not in provider.model_presets
    ):
        raise ValidationFailedError(
            subject,
            f"defaultModelPresetID {provider.default_model_preset_id!r} not present",
        )
