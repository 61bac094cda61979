"""LLM inference dispatch: canonical messages, adapters and the provider set."""

from __future__ import annotations

from modelhub.inference.errors import (
    FetchCompletionError,
    InferenceError,
    InferenceRequestError,
    ProviderExistsError,
    ProviderMissingError,
    ProviderNotConfiguredError,
    StreamTerminalError,
    UnsupportedSDKTypeError,
)
from modelhub.inference.models import (
    Attachment,
    ChatMessage,
    CompletionData,
    CompletionResponse,
    ModelParams,
    ProviderParams,
    ToolCall,
    ToolChoice,
    ToolOutput,
    Usage,
)
from modelhub.inference.provider_set import ProviderSet

__all__ = [
    "Attachment",
    "ChatMessage",
    "CompletionData",
    "CompletionResponse",
    "FetchCompletionError",
    "InferenceError",
    "InferenceRequestError",
    "ModelParams",
    "ProviderExistsError",
    "ProviderMissingError",
    "ProviderNotConfiguredError",
    "ProviderParams",
    "ProviderSet",
    "StreamTerminalError",
    "ToolCall",
    "ToolChoice",
    "ToolOutput",
    "UnsupportedSDKTypeError",
    "Usage",
]
