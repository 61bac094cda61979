"""Provider adapters, one per SDK family."""

from __future__ import annotations

from modelhub.inference.adapters.anthropic_messages import AnthropicMessagesAdapter
from modelhub.inference.adapters.base import BaseAdapter, CompletionProvider
from modelhub.inference.adapters.openai_chat import OpenAIChatCompletionsAdapter
from modelhub.inference.adapters.openai_responses import OpenAIResponsesAdapter

ADAPTERS: dict[str, type[BaseAdapter]] = {
    "openAIChatCompletions": OpenAIChatCompletionsAdapter,
    "openAIResponses": OpenAIResponsesAdapter,
    "anthropicMessages": AnthropicMessagesAdapter,
    "customOpenAICompatible": OpenAIChatCompletionsAdapter,
}

__all__ = [
    "ADAPTERS",
    "AnthropicMessagesAdapter",
    "BaseAdapter",
    "CompletionProvider",
    "OpenAIChatCompletionsAdapter",
    "OpenAIResponsesAdapter",
]
