"""Anthropic Messages API adapter.

Key differences from the canonical model:
- System prompt and system/developer messages are joined into the
  top-level ``system`` string.
- Tool outputs become ``tool_result`` blocks inside a user turn; assistant
  tool calls become ``tool_use`` blocks.
- Extended thinking is enabled by a token budget, and temperature is not
  sent alongside it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from anthropic import AsyncAnthropic

from modelhub.inference.adapters.base import (
    BaseAdapter,
    Write,
    append_content,
    tool_function_name,
    tool_schema,
)
from modelhub.inference.adapters.openai_chat import match_tool_choice, tool_output_as_text
from modelhub.inference.attachments import resolve_attachments
from modelhub.inference.debug import DebugTransport
from modelhub.inference.models import (
    ChatMessage,
    CompletionData,
    CompletionResponse,
    ContentBlock,
    ToolCall,
    ToolChoice,
    ToolOutput,
    Usage,
)
from modelhub.settings import (
    DEFAULT_ANTHROPIC_API_KEY_HEADER_KEY,
    DEFAULT_ANTHROPIC_ORIGIN,
    DEFAULT_API_TIMEOUT,
    DEFAULT_AUTHORIZATION_HEADER_KEY,
)

logger = logging.getLogger(__name__)

# The API requires max_tokens on every request.
DEFAULT_MAX_TOKENS = 8192
MIN_THINKING_BUDGET = 1024


def content_blocks_to_anthropic(blocks: list[ContentBlock]) -> list[dict[str, Any]]:
    """Images go as base64 image blocks, PDFs as documents, other files as text."""
    out: list[dict[str, Any]] = []
    for block in blocks:
        if block.kind == "text":
            if block.text.strip():
                out.append({"type": "text", "text": block.text.strip()})
        elif block.kind == "image":
            if not block.data:
                continue
            out.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": block.mime_type or "image/png",
                        "data": block.data,
                    },
                }
            )
        elif block.kind == "file":
            if not block.data:
                continue
            if block.mime_type == "application/pdf":
                out.append(
                    {
                        "type": "document",
                        "source": {"type": "base64", "media_type": "application/pdf", "data": block.data},
                    }
                )
            else:
                out.append({"type": "text", "text": f"[Attachment: {block.file_name or 'file'}]"})
    return out


def tool_outputs_to_anthropic(outputs: list[ToolOutput]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    orphans: list[ToolOutput] = []
    for output in outputs:
        if not output.call_id:
            orphans.append(output)
            continue
        content = output.raw_output.strip() or output.summary.strip()
        if not content:
            continue
        blocks.append(
            {"type": "tool_result", "tool_use_id": output.call_id, "content": content, "is_error": False}
        )
    if orphans:
        text = "\n\n".join(tool_output_as_text(o) for o in orphans).strip()
        if text:
            blocks.append({"type": "text", "text": text})
    return blocks


def tool_calls_to_anthropic(calls: list[ToolCall]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for call in calls:
        call_id = call.call_id or call.id
        if not call_id or not call.name:
            continue
        try:
            arguments = json.loads(call.arguments.strip() or "{}")
        except ValueError:
            logger.debug("tool call %s has non-JSON arguments, sending as raw input", call_id)
            arguments = {"input": call.arguments}
        blocks.append({"type": "tool_use", "id": call_id, "name": call.name, "input": arguments})
    return blocks


def anthropic_tool(choice: ToolChoice) -> dict[str, Any]:
    schema = tool_schema(choice)
    input_schema: dict[str, Any] = {"type": "object"}
    for key, value in schema.items():
        if key == "type":
            if isinstance(value, str) and value.strip():
                input_schema["type"] = value.strip().lower()
        elif key == "required":
            required = [s.strip() for s in value if isinstance(s, str) and s.strip()] if isinstance(value, list) else []
            if required:
                input_schema["required"] = required
        else:
            input_schema[key] = value

    tool: dict[str, Any] = {"name": tool_function_name(choice), "input_schema": input_schema}
    if choice.description.strip():
        tool["description"] = choice.description.strip()
    return tool


class AnthropicMessagesAdapter(BaseAdapter):
    """Adapter for the ``anthropicMessages`` SDK family."""

    sdk_suffix = "v1/messages"
    default_origin = DEFAULT_ANTHROPIC_ORIGIN
    sdk_key_headers = (DEFAULT_AUTHORIZATION_HEADER_KEY, DEFAULT_ANTHROPIC_API_KEY_HEADER_KEY)

    def _create_client(self) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=self.params.api_key,
            base_url=self.base_url,
            default_headers=self.default_headers(),
            timeout=DEFAULT_API_TIMEOUT,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=DebugTransport(log_mode=self.debug)),
        )

    # -- payload ------------------------------------------------------------

    def build_messages(self, data: CompletionData) -> tuple[list[dict[str, Any]], str]:
        """Return the ``messages`` list and the joined ``system`` string."""
        system_parts: list[str] = []
        if data.model_params.system_prompt.strip():
            system_parts.append(data.model_params.system_prompt.strip())

        last_user = max(
            (i for i, m in enumerate(data.messages) if m.role == "user"), default=-1
        )
        out: list[dict[str, Any]] = []
        for idx, message in enumerate(data.messages):
            text = (message.content or "").strip()
            if message.role in ("system", "developer"):
                if text:
                    system_parts.append(text)
                continue

            parts: list[dict[str, Any]] = []
            if text:
                parts.append({"type": "text", "text": text})

            if message.role == "assistant":
                parts.extend(tool_calls_to_anthropic(message.tool_calls))
                if parts:
                    out.append({"role": "assistant", "content": parts})
                continue

            if message.role == "user" and message.attachments:
                parts.extend(self._attachment_blocks(message, idx == last_user))
            parts.extend(tool_outputs_to_anthropic(message.tool_outputs))
            if parts:
                out.append({"role": "user", "content": parts})

        return out, "\n\n".join(system_parts)

    def _attachment_blocks(self, message: ChatMessage, is_last_user: bool) -> list[dict[str, Any]]:
        blocks = resolve_attachments(
            self.resolver, message.attachments, override_original=is_last_user
        )
        return content_blocks_to_anthropic(blocks)

    def build_params(self, data: CompletionData) -> dict[str, Any]:
        model = data.model_params
        messages, system = self.build_messages(data)
        params: dict[str, Any] = {
            "model": model.name,
            "max_tokens": model.max_output_length if model.max_output_length > 0 else DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system:
            params["system"] = system

        reasoning = model.reasoning
        if reasoning is not None and reasoning.type == "hybridWithTokens" and reasoning.tokens > 0:
            params["thinking"] = {
                "type": "enabled",
                "budget_tokens": max(reasoning.tokens, MIN_THINKING_BUDGET),
            }
        elif model.temperature is not None:
            params["temperature"] = model.temperature

        if data.tool_choices:
            params["tools"] = [anthropic_tool(choice) for choice in data.tool_choices]
        return params

    # -- calls --------------------------------------------------------------

    async def _create_completion(self, data: CompletionData, response: CompletionResponse) -> None:
        params = self.build_params(data)
        result = await self._client.messages.create(**params, timeout=self.request_timeout(data))
        _fill_from_message(response, result, data)

    async def _stream_completion(
        self,
        data: CompletionData,
        response: CompletionResponse,
        write_text: Write,
        write_thinking: Write,
    ) -> None:
        params = self.build_params(data)
        stream: Any = None
        started = False

        try:
            async with self._client.messages.stream(
                **params, timeout=self.request_timeout(data)
            ) as stream:
                async for event in stream:
                    if event.type == "message_start":
                        started = True
                    elif event.type == "content_block_start":
                        _write_block_start(event.content_block, write_text, write_thinking)
                    elif event.type == "text":
                        write_text(event.text)
                    elif event.type == "thinking":
                        write_thinking(event.thinking)
                    elif event.type == "message_stop":
                        break
        finally:
            if started and stream is not None:
                _fill_from_message(response, stream.current_message_snapshot, data)


# ---------------------------------------------------------------------------
# Response accumulation
# ---------------------------------------------------------------------------


def _write_block_start(block: Any, write_text: Write, write_thinking: Write) -> None:
    """Forward text a block carries at its start; deltas arrive as separate events."""
    if block.type == "text" and block.text:
        write_text(block.text)
    elif block.type == "thinking" and block.thinking:
        write_thinking(block.thinking)


def _fill_from_message(response: CompletionResponse, message: Any, data: CompletionData) -> None:
    """Copy usage and content blocks from a complete or accumulated message."""
    if message.usage is not None:
        response.usage = _usage(
            message.usage.input_tokens,
            message.usage.cache_read_input_tokens,
            message.usage.output_tokens,
        )
    for block in message.content:
        if block.type == "text":
            append_content(response, "text", block.text)
        elif block.type == "thinking":
            append_content(response, "thinking", block.thinking)
        elif block.type == "tool_use" and block.id and block.name:
            response.tool_calls.append(
                ToolCall(
                    id=block.id,
                    call_id=block.id,
                    name=block.name,
                    arguments=json.dumps(block.input or {}),
                    type="function",
                    tool_choice=match_tool_choice(block.name, data.tool_choices),
                )
            )


def _usage(input_tokens: int | None, cached: int | None, output_tokens: int | None) -> Usage:
    uncached = input_tokens or 0
    cached = cached or 0
    return Usage(
        input_tokens_total=uncached + cached,
        input_tokens_cached=cached,
        input_tokens_uncached=uncached,
        output_tokens=output_tokens or 0,
    )
