"""Tests for preset validation rules."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from modelhub.presets.errors import (
    InvalidTimestampError,
    SchemaVersionError,
    ValidationFailedError,
)
from modelhub.presets.models import ModelPreset, ProviderPreset, ReasoningParams
from modelhub.presets.validation import (
    validate_model_preset,
    validate_provider_preset,
    validate_reasoning,
    validate_tag,
)

_NOW = datetime(2025, 7, 1, tzinfo=UTC)


def _model(**overrides: object) -> ModelPreset:
    fields: dict[str, object] = {
        "id": "m1",
        "name": "model-one",
        "slug": "m1",
        "display_name": "Model One",
        "temperature": 0.1,
        "created_at": _NOW,
        "modified_at": _NOW,
    }
    fields.update(overrides)
    return ModelPreset(**fields)


def _provider(**overrides: object) -> ProviderPreset:
    fields: dict[str, object] = {
        "name": "prov",
        "display_name": "Provider",
        "sdk_type": "openAIChatCompletions",
        "origin": "https://example.com",
        "chat_completion_path_prefix": "/v1/chat/completions",
        "created_at": _NOW,
        "modified_at": _NOW,
        "model_presets": {"m1": _model()},
    }
    fields.update(overrides)
    return ProviderPreset(**fields)


class TestValidateTag:
    @pytest.mark.parametrize("tag", ["gpt4o", "o4-mini", "a_b", "A1", "x" * 64])
    def test_valid(self, tag: str) -> None:
        assert validate_tag(tag) is None

    @pytest.mark.parametrize("tag", ["", "-lead", "_lead", "has space", "dot.ted", "x" * 65])
    def test_invalid(self, tag: str) -> None:
        assert validate_tag(tag) is not None


class TestValidateReasoning:
    def test_hybrid_needs_tokens(self) -> None:
        assert validate_reasoning(ReasoningParams(type="hybridWithTokens", tokens=0)) is not None
        assert validate_reasoning(ReasoningParams(type="hybridWithTokens", tokens=1024)) is None

    def test_levels(self) -> None:
        assert validate_reasoning(ReasoningParams(type="singleWithLevels", level="high")) is None
        assert validate_reasoning(ReasoningParams(type="singleWithLevels", level="max")) is not None


class TestValidateModelPreset:
    def test_valid(self) -> None:
        validate_model_preset(_model())

    def test_schema_version(self) -> None:
        with pytest.raises(SchemaVersionError):
            validate_model_preset(_model(schema_version="2020-01-01"))

    def test_needs_temperature_or_reasoning(self) -> None:
        with pytest.raises(ValidationFailedError, match="reasoning or temperature"):
            validate_model_preset(_model(temperature=None))

    def test_reasoning_alone_is_enough(self) -> None:
        validate_model_preset(
            _model(temperature=None, reasoning=ReasoningParams(type="singleWithLevels", level="low"))
        )

    def test_missing_timestamps(self) -> None:
        with pytest.raises(InvalidTimestampError):
            validate_model_preset(_model(created_at=None))

    def test_created_after_modified(self) -> None:
        with pytest.raises(InvalidTimestampError, match="later"):
            validate_model_preset(_model(created_at=_NOW + timedelta(seconds=1)))

    def test_bad_slug(self) -> None:
        with pytest.raises(ValidationFailedError, match="slug"):
            validate_model_preset(_model(slug="bad slug"))


class TestValidateProviderPreset:
    def test_valid(self) -> None:
        validate_provider_preset(_provider())

    def test_empty_origin(self) -> None:
        with pytest.raises(ValidationFailedError, match="origin"):
            validate_provider_preset(_provider(origin=" "))

    def test_model_key_mismatch(self) -> None:
        with pytest.raises(ValidationFailedError, match="does not match"):
            validate_provider_preset(_provider(model_presets={"other": _model()}))

    def test_default_model_must_exist(self) -> None:
        with pytest.raises(ValidationFailedError, match="defaultModelPresetID"):
            validate_provider_preset(_provider(default_model_preset_id="missing"))

    def test_naive_timestamps_are_utc(self) -> None:
        provider = _provider(created_at=datetime(2025, 7, 1), modified_at=datetime(2025, 7, 1))
        assert provider.created_at.tzinfo is not None
        validate_provider_preset(provider)
