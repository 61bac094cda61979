"""OpenAI Chat Completions adapter.

Also serves ``customOpenAICompatible`` providers (DeepSeek, Gemini's OpenAI
endpoint, llama.cpp, ...), which speak the same wire format.

Key differences from the canonical model:
- The system prompt travels as a ``system`` message, or ``developer`` for
  OpenAI reasoning models (``o*`` and ``gpt-5*``).
- Attachments become ``image_url`` / ``file`` content parts with data URLs.
- Tool outputs become ``tool`` messages linked by ``tool_call_id``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from openai import AsyncOpenAI
from openai.lib.streaming.chat import ChatCompletionStreamState

from modelhub.inference.adapters.base import (
    BaseAdapter,
    Write,
    append_content,
    tool_function_name,
    tool_schema,
)
from modelhub.inference.attachments import resolve_attachments
from modelhub.inference.debug import DebugTransport
from modelhub.inference.errors import InferenceRequestError
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
    DEFAULT_API_TIMEOUT,
    DEFAULT_AUTHORIZATION_HEADER_KEY,
    DEFAULT_OPENAI_ORIGIN,
)

logger = logging.getLogger(__name__)

CHAT_REASONING_LEVELS = ("none", "minimal", "low", "medium", "high")


def uses_developer_role(model_name: str) -> bool:
    """OpenAI reasoning models take instructions as ``developer`` messages."""
    return model_name.startswith("o") or model_name.startswith("gpt-5")


def parse_extra_body(raw: str | None) -> dict[str, Any] | None:
    """Parse ``additional_parameters_raw_json`` into an ``extra_body`` dict."""
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise InferenceRequestError(f"invalid additional parameters JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise InferenceRequestError("additional parameters JSON must be an object")
    return value


def tool_output_as_text(output: ToolOutput) -> str:
    name = output.name or "tool"
    return f"Tool output ({name}):\n{output.raw_output}"


def content_blocks_to_openai_chat(blocks: list[ContentBlock]) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    for block in blocks:
        if block.kind == "text":
            if block.text.strip():
                parts.append({"type": "text", "text": block.text})
        elif block.kind == "image":
            if not block.data:
                continue
            mime = block.mime_type or "image/png"
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime};base64,{block.data}", "detail": "auto"},
                }
            )
        elif block.kind == "file":
            if not block.data:
                continue
            mime = block.mime_type or "application/octet-stream"
            file_param: dict[str, Any] = {"file_data": f"data:{mime};base64,{block.data}"}
            if block.file_name:
                file_param["filename"] = block.file_name
            parts.append({"type": "file", "file": file_param})
    return parts


def match_tool_choice(name: str, choices: list[ToolChoice]) -> ToolChoice | None:
    for choice in choices:
        if tool_function_name(choice) == name:
            return choice
    return None


class OpenAIChatCompletionsAdapter(BaseAdapter):
    """Adapter for ``openAIChatCompletions`` and ``customOpenAICompatible``."""

    sdk_suffix = "chat/completions"
    default_origin = DEFAULT_OPENAI_ORIGIN
    sdk_key_headers = (DEFAULT_AUTHORIZATION_HEADER_KEY,)

    def _create_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self.params.api_key,
            base_url=self.base_url,
            default_headers=self.default_headers(),
            timeout=DEFAULT_API_TIMEOUT,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=DebugTransport(log_mode=self.debug)),
        )

    # -- payload ------------------------------------------------------------

    def _developer_role_applies(self, model_name: str) -> bool:
        return self.params.sdk_type != "customOpenAICompatible" and uses_developer_role(model_name)

    def build_messages(self, data: CompletionData) -> list[dict[str, Any]]:
        model_name = data.model_params.name
        system_role = "developer" if self._developer_role_applies(model_name) else "system"
        out: list[dict[str, Any]] = []

        system_prompt = data.model_params.system_prompt.strip()
        if system_prompt:
            out.append({"role": system_role, "content": system_prompt})

        last_user = max(
            (i for i, m in enumerate(data.messages) if m.role == "user"), default=-1
        )
        for idx, message in enumerate(data.messages):
            out.extend(self._convert_message(message, system_role, idx == last_user))
        return out

    def _convert_message(
        self, message: ChatMessage, system_role: str, is_last_user: bool
    ) -> list[dict[str, Any]]:
        text = (message.content or "").strip()

        if message.role in ("system", "developer"):
            if not text:
                return []
            role = system_role if message.role == "system" else "developer"
            return [{"role": role, "content": text}]

        if message.role == "assistant":
            if not text and not message.tool_calls:
                return []
            item: dict[str, Any] = {"role": "assistant", "content": text or None}
            if message.tool_calls:
                item["tool_calls"] = [_tool_call_param(call) for call in message.tool_calls]
            return [item]

        # user, tool and function messages
        out = _tool_output_messages(message.tool_outputs)
        parts: list[dict[str, Any]] = []
        if message.attachments:
            blocks = resolve_attachments(
                self.resolver, message.attachments, override_original=is_last_user
            )
            parts = content_blocks_to_openai_chat(blocks)

        if parts:
            if text:
                parts.insert(0, {"type": "text", "text": text})
            out.append({"role": "user", "content": parts})
        elif text:
            out.append({"role": "user", "content": text})
        return out

    def build_params(self, data: CompletionData) -> dict[str, Any]:
        model = data.model_params
        params: dict[str, Any] = {
            "model": model.name,
            "messages": self.build_messages(data),
        }
        if model.max_output_length > 0:
            params["max_completion_tokens"] = model.max_output_length
        if model.temperature is not None:
            params["temperature"] = model.temperature

        reasoning = model.reasoning
        if reasoning is not None and reasoning.type == "singleWithLevels":
            if reasoning.level not in CHAT_REASONING_LEVELS:
                raise InferenceRequestError(
                    f"invalid level {reasoning.level!r} for singleWithLevels"
                )
            params["reasoning_effort"] = reasoning.level

        if data.tool_choices:
            params["tools"] = [_function_tool(choice) for choice in data.tool_choices]

        extra_body = parse_extra_body(model.additional_parameters_raw_json)
        if extra_body:
            params["extra_body"] = extra_body
        return params

    # -- calls --------------------------------------------------------------

    async def _create_completion(self, data: CompletionData, response: CompletionResponse) -> None:
        params = self.build_params(data)
        result = await self._client.chat.completions.create(
            **params, timeout=self.request_timeout(data)
        )
        if result.usage is not None:
            response.usage = _usage(result.usage)
        if result.choices:
            _fill_from_message(response, result.choices[0].message, data)

    async def _stream_completion(
        self,
        data: CompletionData,
        response: CompletionResponse,
        write_text: Write,
        write_thinking: Write,
    ) -> None:
        params = self.build_params(data)
        state = ChatCompletionStreamState()
        thinking_parts: list[str] = []
        started = False

        try:
            stream = await self._client.chat.completions.create(
                **params, stream=True, timeout=self.request_timeout(data)
            )
            async with stream:
                async for chunk in stream:
                    events = state.handle_chunk(chunk)
                    started = True
                    if chunk.usage is not None:
                        response.usage = _usage(chunk.usage)
                    for event in events:
                        if event.type == "chunk":
                            _write_reasoning(event.chunk, thinking_parts, write_thinking)
                        elif event.type in ("content.delta", "refusal.delta"):
                            write_text(event.delta)
                        elif event.type == "refusal.done":
                            logger.debug("model %s refused: %s", data.model_params.name, event.refusal)
                        elif event.type == "tool_calls.function.arguments.done":
                            logger.debug("tool call %s finished streaming", event.name)
        finally:
            append_content(response, "thinking", "".join(thinking_parts))
            if started:
                snapshot = state.current_completion_snapshot
                if snapshot.choices:
                    _fill_from_message(response, snapshot.choices[0].message, data)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _function_tool(choice: ToolChoice) -> dict[str, Any]:
    function: dict[str, Any] = {
        "name": tool_function_name(choice),
        "parameters": tool_schema(choice),
    }
    if choice.description.strip():
        function["description"] = choice.description.strip()
    return {"type": "function", "function": function}


def _tool_call_param(call: ToolCall) -> dict[str, Any]:
    call_id = call.call_id or call.id
    if call.type == "custom":
        return {"id": call_id, "type": "custom", "custom": {"name": call.name, "input": call.arguments}}
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": call.name, "arguments": call.arguments or "{}"},
    }


def _tool_output_messages(outputs: list[ToolOutput]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for output in outputs:
        if output.call_id:
            out.append({"role": "tool", "tool_call_id": output.call_id, "content": output.raw_output})
        else:
            out.append({"role": "user", "content": tool_output_as_text(output)})
    return out


def _fill_from_message(response: CompletionResponse, message: Any, data: CompletionData) -> None:
    """Copy text, refusal and tool calls from a complete or accumulated message."""
    append_content(response, "text", message.content or "")
    append_content(response, "text", getattr(message, "refusal", None) or "")
    for raw in message.tool_calls or []:
        call = _tool_call_from_sdk(raw)
        if call is not None:
            call.tool_choice = match_tool_choice(call.name, data.tool_choices)
            response.tool_calls.append(call)


def _write_reasoning(chunk: Any, parts: list[str], write_thinking: Write) -> None:
    if not chunk.choices:
        return
    # OpenAI-compatible servers (DeepSeek, llama.cpp) stream reasoning here.
    reasoning = getattr(chunk.choices[0].delta, "reasoning_content", None)
    if isinstance(reasoning, str) and reasoning:
        parts.append(reasoning)
        write_thinking(reasoning)


def _tool_call_from_sdk(raw: Any) -> ToolCall | None:
    if raw.type == "function":
        return ToolCall(
            id=raw.id,
            call_id=raw.id,
            name=raw.function.name,
            arguments=raw.function.arguments,
            type="function",
        )
    if raw.type == "custom":
        return ToolCall(
            id=raw.id,
            call_id=raw.id,
            name=raw.custom.name,
            arguments=raw.custom.input,
            type="custom",
        )
    logger.debug("ignoring tool call of unknown type %r", raw.type)
    return None


def _usage(raw: Any) -> Usage:
    total = raw.prompt_tokens or 0
    cached = 0
    if raw.prompt_tokens_details is not None:
        cached = raw.prompt_tokens_details.cached_tokens or 0
    reasoning = 0
    if raw.completion_tokens_details is not None:
        reasoning = raw.completion_tokens_details.reasoning_tokens or 0
    return Usage(
        input_tokens_total=total,
        input_tokens_cached=cached,
        input_tokens_uncached=max(total - cached, 0),
        output_tokens=raw.completion_tokens or 0,
        reasoning_tokens=reasoning,
    )
