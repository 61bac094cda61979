"""Preset data model — providers, model presets, reasoning params, list envelopes.

Field names are snake_case in Python and camelCase on disk so that the
embedded catalogue and the user store share one JSON schema.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from modelhub.settings import SCHEMA_VERSION

SDKType = Literal[
    "openAIChatCompletions",
    "openAIResponses",
    "anthropicMessages",
    "customOpenAICompatible",
]

SDK_TYPES: tuple[str, ...] = (
    "openAIChatCompletions",
    "openAIResponses",
    "anthropicMessages",
    "customOpenAICompatible",
)

ReasoningType = Literal["hybridWithTokens", "singleWithLevels"]

REASONING_LEVELS: tuple[str, ...] = ("none", "minimal", "low", "medium", "high", "xhigh")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


Timestamp = Annotated[datetime, AfterValidator(_as_utc)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, object]:
        """Dump using on-disk aliases, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Model presets
# ---------------------------------------------------------------------------


class ReasoningParams(_CamelModel):
    """Reasoning configuration for a model preset.

    ``hybridWithTokens`` uses ``tokens`` as a budget; ``singleWithLevels`` uses
    ``level`` (one of :data:`REASONING_LEVELS`).
    """

    type: ReasoningType
    level: str = ""
    tokens: int = 0


class ModelPresetBody(_CamelModel):
    """Caller-supplied fields of a model preset (``put_model_preset`` input)."""

    name: str
    slug: str
    display_name: str
    is_enabled: bool = False

    stream: bool | None = None
    max_prompt_length: int | None = None
    max_output_length: int | None = None
    temperature: float | None = None
    reasoning: ReasoningParams | None = None
    system_prompt: str | None = None
    timeout: int | None = None
    additional_parameters_raw_json: str | None = Field(
        default=None, alias="additionalParametersRawJSON"
    )


class ModelPreset(ModelPresetBody):
    """A stored model preset, identified by ``(provider name, id)``."""

    schema_version: str = SCHEMA_VERSION
    id: str
    created_at: Timestamp | None = None
    modified_at: Timestamp | None = None
    is_built_in: bool = False


# ---------------------------------------------------------------------------
# Provider presets
# ---------------------------------------------------------------------------


class ProviderPresetBody(_CamelModel):
    """Caller-supplied fields of a provider (``put_provider_preset`` input)."""

    display_name: str
    sdk_type: SDKType
    is_enabled: bool = False
    origin: str
    chat_completion_path_prefix: str
    api_key_header_key: str = ""
    default_headers: dict[str, str] = {}


class ProviderPreset(ProviderPresetBody):
    """A stored provider with its embedded model presets."""

    schema_version: str = SCHEMA_VERSION
    name: str
    created_at: Timestamp | None = None
    modified_at: Timestamp | None = None
    is_built_in: bool = False
    default_model_preset_id: str = Field(default="", alias="defaultModelPresetID")
    model_presets: dict[str, ModelPreset] = {}


class PresetsSchema(_CamelModel):
    """Top-level document of both the embedded catalogue and the user store."""

    schema_version: str = SCHEMA_VERSION
    default_provider: str = ""
    provider_presets: dict[str, ProviderPreset] = {}


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class ProviderPageToken(BaseModel):
    """Decoded continuation token; serialised with one-letter keys."""

    names: list[str] = Field(default=[], alias="n")
    include_disabled: bool = Field(default=False, alias="d")
    page_size: int = Field(default=0, alias="s")
    cursor: str = Field(default="", alias="c")

    model_config = ConfigDict(populate_by_name=True)


class ListProviderPresetsResponse(BaseModel):
    """One page of providers plus the token for the next page, if any."""

    providers: list[ProviderPreset]
    next_page_token: str | None = None
