"""Canonical message model for the dispatch core.

Adapters translate these provider-agnostic types into SDK payloads and map
SDK responses back into :class:`CompletionResponse`.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

from modelhub.presets.models import ModelPreset, ProviderPreset, ReasoningParams, SDKType

Role = Literal["system", "developer", "user", "assistant", "function", "tool"]

# ---------------------------------------------------------------------------
# Attachments and content blocks
# ---------------------------------------------------------------------------


class ContentBlock(BaseModel):
    """A resolved attachment: text, or base64 data with a MIME type."""

    kind: Literal["text", "image", "file"]
    text: str = ""
    data: str = ""
    mime_type: str = ""
    file_name: str = ""


class Attachment(BaseModel):
    """A reference to content the caller wants to send with a message.

    ``path`` is a local path for ``file``/``image`` kinds, a URL for ``url``
    and an opaque handle for ``generic``.  ``content_block`` and
    ``snapshot_mtime`` record an earlier resolution so that retries send the
    same bytes.
    """

    kind: Literal["file", "image", "url", "generic"]
    label: str = ""
    path: str = ""
    mime_type: str = ""
    content_block: ContentBlock | None = None
    snapshot_mtime: float | None = None


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolChoice(BaseModel):
    """A tool the model may call, declared with a JSON schema."""

    id: str
    slug: str
    version: str = ""
    display_name: str = ""
    description: str = ""
    arg_schema: dict[str, Any] = {}
    type: Literal["function", "custom"] = "function"


class ToolCall(BaseModel):
    """A model-issued tool invocation."""

    id: str = ""
    call_id: str = ""
    name: str
    arguments: str = ""
    type: Literal["function", "custom"] = "function"
    status: str | None = None
    tool_choice: ToolChoice | None = None


class ToolOutput(BaseModel):
    """The result of a tool call, linked to it by ``call_id``."""

    id: str = ""
    call_id: str = ""
    name: str = ""
    raw_output: str = ""
    summary: str = ""


# ---------------------------------------------------------------------------
# Messages and request envelope
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """A single canonical chat message."""

    role: Role
    name: str | None = None
    content: str | None = None
    attachments: list[Attachment] = []
    tool_attachments: list[Attachment] = []
    tool_calls: list[ToolCall] = []
    tool_outputs: list[ToolOutput] = []

    @classmethod
    def user(cls, text: str, **kwargs: Any) -> ChatMessage:
        return cls(role="user", content=text, **kwargs)

    @classmethod
    def system(cls, text: str) -> ChatMessage:
        return cls(role="system", content=text)


class ModelParams(BaseModel):
    """Effective model parameters for one completion."""

    name: str
    stream: bool = False
    max_prompt_length: int = 0
    max_output_length: int = 0
    temperature: float | None = None
    reasoning: ReasoningParams | None = None
    system_prompt: str = ""
    timeout: int = 0
    additional_parameters_raw_json: str | None = None

    @classmethod
    def from_preset(cls, preset: ModelPreset) -> ModelParams:
        """Build params from a stored preset, filling unset optionals."""
        return cls(
            name=preset.name,
            stream=bool(preset.stream),
            max_prompt_length=preset.max_prompt_length or 0,
            max_output_length=preset.max_output_length or 0,
            temperature=preset.temperature,
            reasoning=preset.reasoning,
            system_prompt=preset.system_prompt or "",
            timeout=preset.timeout or 0,
            additional_parameters_raw_json=preset.additional_parameters_raw_json,
        )


class CompletionData(BaseModel):
    """Everything an adapter needs to issue one completion call."""

    model_params: ModelParams
    messages: list[ChatMessage] = []
    tool_choices: list[ToolChoice] = []


class ProviderParams(BaseModel):
    """Connection settings for one provider adapter."""

    name: str
    sdk_type: SDKType
    api_key: str = ""
    origin: str = ""
    chat_completion_path_prefix: str = ""
    api_key_header_key: str = ""
    default_headers: dict[str, str] = {}

    @classmethod
    def from_preset(cls, preset: ProviderPreset, api_key: str = "") -> ProviderParams:
        return cls(
            name=preset.name,
            sdk_type=preset.sdk_type,
            api_key=api_key,
            origin=preset.origin,
            chat_completion_path_prefix=preset.chat_completion_path_prefix,
            api_key_header_key=preset.api_key_header_key,
            default_headers=dict(preset.default_headers),
        )


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------


class Usage(BaseModel):
    """Token usage echoed from the provider."""

    input_tokens_total: int = 0
    input_tokens_cached: int = 0
    input_tokens_uncached: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0


class APIRequestDetails(BaseModel):
    url: str | None = None
    method: str | None = None
    headers: dict[str, Any] | None = None
    params: dict[str, Any] | None = None
    data: Any = None
    timeout: int | None = None
    curl_command: str | None = None


class APIResponseDetails(BaseModel):
    data: Any = None
    status: int = 0
    headers: dict[str, Any] = {}
    request_details: APIRequestDetails | None = None


class APIErrorDetails(BaseModel):
    message: str = ""
    request_details: APIRequestDetails | None = None
    response_details: APIResponseDetails | None = None


class ResponseContent(BaseModel):
    """One block of model output."""

    type: Literal["text", "thinking", "thinkingSummary"]
    content: str


class CompletionResponse(BaseModel):
    """Result of a completion, including HTTP capture and any error details."""

    request_details: APIRequestDetails | None = None
    response_details: APIResponseDetails | None = None
    error_details: APIErrorDetails | None = None
    response_content: list[ResponseContent] = []
    tool_calls: list[ToolCall] = []
    usage: Usage | None = None

    @property
    def text(self) -> str:
        """Concatenate every ``text`` block."""
        return "".join(c.content for c in self.response_content if c.type == "text")

    @property
    def thinking(self) -> str:
        return "".join(
            c.content for c in self.response_content if c.type in ("thinking", "thinkingSummary")
        )
