"""OpenAI Responses API adapter.

Key differences from Chat Completions:
- The system prompt goes into ``instructions``; nothing is stored server side.
- Conversation turns are typed input items; tool calls and tool outputs are
  ``function_call`` / ``function_call_output`` items.
- Streaming is event based and ends with ``response.completed``,
  ``response.failed`` or ``response.incomplete``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from openai import AsyncOpenAI

from modelhub.inference.adapters.base import (
    BaseAdapter,
    Write,
    append_content,
    tool_function_name,
    tool_schema,
)
from modelhub.inference.adapters.openai_chat import (
    CHAT_REASONING_LEVELS,
    match_tool_choice,
    parse_extra_body,
    tool_output_as_text,
)
from modelhub.inference.attachments import resolve_attachments
from modelhub.inference.debug import DebugTransport
from modelhub.inference.errors import InferenceRequestError, StreamTerminalError
from modelhub.inference.models import (
    ChatMessage,
    CompletionData,
    CompletionResponse,
    ContentBlock,
    ToolCall,
    Usage,
)
from modelhub.settings import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_AUTHORIZATION_HEADER_KEY,
    DEFAULT_OPENAI_ORIGIN,
)

logger = logging.getLogger(__name__)

_TEXT_DELTA = "response.output_text.delta"
_THINKING_DELTAS = ("response.reasoning_summary_text.delta", "response.reasoning_text.delta")


def content_blocks_to_openai_responses(blocks: list[ContentBlock]) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    for block in blocks:
        if block.kind == "text":
            if block.text.strip():
                parts.append({"type": "input_text", "text": block.text.strip()})
        elif block.kind == "image":
            if not block.data:
                continue
            mime = block.mime_type or "image/png"
            parts.append(
                {
                    "type": "input_image",
                    "image_url": f"data:{mime};base64,{block.data}",
                    "detail": "auto",
                }
            )
        elif block.kind == "file":
            if not block.data:
                continue
            mime = block.mime_type or "application/octet-stream"
            parts.append(
                {
                    "type": "input_file",
                    "file_data": f"data:{mime};base64,{block.data}",
                    "filename": block.file_name,
                }
            )
    return parts


class OpenAIResponsesAdapter(BaseAdapter):
    """Adapter for the ``openAIResponses`` SDK family."""

    sdk_suffix = "responses"
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

    def build_input(self, data: CompletionData) -> list[dict[str, Any]]:
        last_user = max(
            (i for i, m in enumerate(data.messages) if m.role == "user"), default=-1
        )
        items: list[dict[str, Any]] = []
        for idx, message in enumerate(data.messages):
            items.extend(self._convert_message(message, idx == last_user))
        return items

    def _convert_message(self, message: ChatMessage, is_last_user: bool) -> list[dict[str, Any]]:
        text = (message.content or "").strip()

        if message.role in ("system", "developer"):
            if not text:
                return []
            return [{"type": "message", "role": message.role, "content": text}]

        if message.role == "assistant":
            items: list[dict[str, Any]] = []
            if text:
                items.append({"type": "message", "role": "assistant", "content": text})
            for call in message.tool_calls:
                call_id = call.call_id or call.id
                if call.type == "custom":
                    items.append(
                        {"type": "custom_tool_call", "call_id": call_id, "name": call.name, "input": call.arguments}
                    )
                else:
                    items.append(
                        {
                            "type": "function_call",
                            "call_id": call_id,
                            "name": call.name,
                            "arguments": call.arguments or "{}",
                        }
                    )
            return items

        items = []
        for output in message.tool_outputs:
            if output.call_id:
                items.append(
                    {"type": "function_call_output", "call_id": output.call_id, "output": output.raw_output}
                )
            else:
                items.append({"type": "message", "role": "user", "content": tool_output_as_text(output)})

        parts: list[dict[str, Any]] = []
        if message.attachments:
            blocks = resolve_attachments(
                self.resolver, message.attachments, override_original=is_last_user
            )
            parts = content_blocks_to_openai_responses(blocks)
        if parts:
            if text:
                parts.insert(0, {"type": "input_text", "text": text})
            items.append({"type": "message", "role": "user", "content": parts})
        elif text:
            items.append({"type": "message", "role": "user", "content": text})
        return items

    def build_params(self, data: CompletionData) -> dict[str, Any]:
        model = data.model_params
        params: dict[str, Any] = {
            "model": model.name,
            "input": self.build_input(data),
            "store": False,
        }
        instructions = model.system_prompt.strip()
        if instructions:
            params["instructions"] = instructions
        if model.max_output_length > 0:
            params["max_output_tokens"] = model.max_output_length
        if model.temperature is not None:
            params["temperature"] = model.temperature

        reasoning = model.reasoning
        if reasoning is not None and reasoning.type == "singleWithLevels":
            if reasoning.level not in CHAT_REASONING_LEVELS:
                raise InferenceRequestError(
                    f"invalid level {reasoning.level!r} for singleWithLevels"
                )
            params["reasoning"] = {"effort": reasoning.level, "summary": "auto"}

        if data.tool_choices:
            tools = []
            for choice in data.tool_choices:
                tool: dict[str, Any] = {
                    "type": "function",
                    "name": tool_function_name(choice),
                    "parameters": tool_schema(choice),
                    "strict": False,
                }
                if choice.description.strip():
                    tool["description"] = choice.description.strip()
                tools.append(tool)
            params["tools"] = tools

        extra_body = parse_extra_body(model.additional_parameters_raw_json)
        if extra_body:
            params["extra_body"] = extra_body
        return params

    # -- calls --------------------------------------------------------------

    async def _create_completion(self, data: CompletionData, response: CompletionResponse) -> None:
        params = self.build_params(data)
        result = await self._client.responses.create(**params, timeout=self.request_timeout(data))
        _fill_from_response(response, result, data)

    async def _stream_completion(
        self,
        data: CompletionData,
        response: CompletionResponse,
        write_text: Write,
        write_thinking: Write,
    ) -> None:
        params = self.build_params(data)
        text_parts: list[str] = []
        thinking_parts: list[str] = []
        final: Any = None

        try:
            stream = await self._client.responses.create(
                **params, stream=True, timeout=self.request_timeout(data)
            )
            async with stream:
                async for event in stream:
                    if event.type == _TEXT_DELTA:
                        text_parts.append(event.delta)
                        write_text(event.delta)
                    elif event.type in _THINKING_DELTAS:
                        thinking_parts.append(event.delta)
                        write_thinking(event.delta)
                    elif event.type == "response.completed":
                        final = event.response
                        break
                    elif event.type == "response.failed":
                        final = event.response
                        detail = final.error.model_dump_json() if final.error is not None else ""
                        raise StreamTerminalError(f"API failed, {detail}", detail)
                    elif event.type == "response.incomplete":
                        final = event.response
                        reason = ""
                        if final.incomplete_details is not None:
                            reason = final.incomplete_details.reason or ""
                        raise StreamTerminalError(f"API finished as incomplete, {reason}", reason)
        finally:
            if final is not None and final.output:
                _fill_from_response(response, final, data)
            else:
                append_content(response, "thinking", "".join(thinking_parts))
                append_content(response, "text", "".join(text_parts))


def _fill_from_response(response: CompletionResponse, result: Any, data: CompletionData) -> None:
    if result.usage is not None:
        response.usage = _usage(result.usage)

    text: list[str] = []
    thinking: list[str] = []
    summary: list[str] = []
    for item in result.output or []:
        if item.type == "message":
            for content in item.content:
                if content.type == "output_text":
                    text.append(content.text)
        elif item.type == "reasoning":
            for content in item.content or []:
                thinking.append(content.text)
            for content in item.summary or []:
                summary.append(content.text)
        elif item.type == "function_call":
            response.tool_calls.append(
                ToolCall(
                    id=item.id or item.call_id,
                    call_id=item.call_id,
                    name=item.name,
                    arguments=item.arguments,
                    type="function",
                    status=item.status,
                    tool_choice=match_tool_choice(item.name, data.tool_choices),
                )
            )
        elif item.type == "custom_tool_call":
            response.tool_calls.append(
                ToolCall(
                    id=item.id or item.call_id,
                    call_id=item.call_id,
                    name=item.name,
                    arguments=item.input,
                    type="custom",
                    tool_choice=match_tool_choice(item.name, data.tool_choices),
                )
            )

    append_content(response, "thinkingSummary", "".join(summary))
    append_content(response, "thinking", "".join(thinking))
    append_content(response, "text", "".join(text))


def _usage(raw: Any) -> Usage:
    total = raw.input_tokens or 0
    cached = 0
    if raw.input_tokens_details is not None:
        cached = raw.input_tokens_details.cached_tokens or 0
    reasoning = 0
    if raw.output_tokens_details is not None:
        reasoning = raw.output_tokens_details.reasoning_tokens or 0
    return Usage(
        input_tokens_total=total,
        input_tokens_cached=cached,
        input_tokens_uncached=max(total - cached, 0),
        output_tokens=raw.output_tokens or 0,
        reasoning_tokens=reasoning,
    )
