"""Tests for the Anthropic Messages adapter."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from anthropic import AsyncAnthropic

from modelhub.inference.adapters.anthropic_messages import (
    DEFAULT_MAX_TOKENS,
    AnthropicMessagesAdapter,
    anthropic_tool,
    content_blocks_to_anthropic,
    tool_calls_to_anthropic,
    tool_outputs_to_anthropic,
)
from modelhub.inference.debug import DebugTransport
from modelhub.inference.errors import FetchCompletionError
from modelhub.inference.models import (
    ChatMessage,
    CompletionData,
    ContentBlock,
    ModelParams,
    ProviderParams,
    ToolCall,
    ToolChoice,
    ToolOutput,
)
from modelhub.presets.models import ReasoningParams

Handler = Callable[[httpx.Request], httpx.Response]

LOOKUP = ToolChoice(
    id="abcd1234ef",
    slug="lookup",
    description="Look things up",
    arg_schema={"type": "OBJECT", "properties": {"q": {"type": "string"}}, "required": ["q", " ", 3]},
)


def _adapter(handler: Handler | None = None) -> AnthropicMessagesAdapter:
    adapter = AnthropicMessagesAdapter(
        ProviderParams(
            name="anthropic",
            sdk_type="anthropicMessages",
            api_key="sk-ant-test",
            origin="https://api.anthropic.com",
            chat_completion_path_prefix="/v1/messages",
        )
    )
    if handler is not None:
        adapter._client = AsyncAnthropic(
            api_key="sk-ant-test",
            base_url=adapter.base_url,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=DebugTransport(httpx.MockTransport(handler))),
        )
    return adapter


def _data(messages: list[ChatMessage] | None = None, **params: Any) -> CompletionData:
    return CompletionData(
        model_params=ModelParams(name="claude-sonnet-4-0", **params),
        messages=messages if messages is not None else [ChatMessage.user("hi")],
        tool_choices=[LOOKUP],
    )


def _sse(*events: dict[str, Any]) -> httpx.Response:
    body = "".join(f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events)
    return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


class TestBuildParams:
    def test_thinking_budget_replaces_temperature(self) -> None:
        params = _adapter().build_params(
            _data(temperature=0.5, reasoning=ReasoningParams(type="hybridWithTokens", tokens=500))
        )
        assert params["thinking"] == {"type": "enabled", "budget_tokens": 1024}
        assert "temperature" not in params

    def test_large_budget_is_kept(self) -> None:
        params = _adapter().build_params(
            _data(reasoning=ReasoningParams(type="hybridWithTokens", tokens=4096))
        )
        assert params["thinking"]["budget_tokens"] == 4096

    def test_temperature_without_thinking(self) -> None:
        params = _adapter().build_params(_data(temperature=0.5))
        assert params["temperature"] == 0.5
        assert "thinking" not in params

    def test_max_tokens(self) -> None:
        assert _adapter().build_params(_data())["max_tokens"] == DEFAULT_MAX_TOKENS
        assert _adapter().build_params(_data(max_output_length=2000))["max_tokens"] == 2000

    def test_system_is_joined(self) -> None:
        messages = [ChatMessage.system("rule one"), ChatMessage(role="developer", content="rule two"), ChatMessage.user("hi")]
        params = _adapter().build_params(_data(messages, system_prompt="persona"))
        assert params["system"] == "persona\n\nrule one\n\nrule two"
        assert params["messages"] == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]

    def test_tool_turns(self) -> None:
        messages = [
            ChatMessage.user("weather?"),
            ChatMessage(
                role="assistant",
                tool_calls=[ToolCall(call_id="toolu_1", name="lookup", arguments='{"q": "paris"}')],
            ),
            ChatMessage(role="user", tool_outputs=[ToolOutput(call_id="toolu_1", raw_output="sunny")]),
        ]
        out, _ = _adapter().build_messages(_data(messages))
        assert out[1] == {
            "role": "assistant",
            "content": [{"type": "tool_use", "id": "toolu_1", "name": "lookup", "input": {"q": "paris"}}],
        }
        assert out[2] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "sunny", "is_error": False}],
        }

    def test_tool_definition(self) -> None:
        assert anthropic_tool(LOOKUP) == {
            "name": "lookup_abcd1234",
            "description": "Look things up",
            "input_schema": {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
        }


class TestConversions:
    def test_non_json_arguments_are_wrapped(self) -> None:
        (block,) = tool_calls_to_anthropic([ToolCall(id="t1", name="run", arguments="ls -la")])
        assert block["input"] == {"input": "ls -la"}

    def test_calls_without_id_are_dropped(self) -> None:
        assert tool_calls_to_anthropic([ToolCall(name="run", arguments="{}")]) == []

    def test_orphan_outputs_become_text(self) -> None:
        blocks = tool_outputs_to_anthropic(
            [ToolOutput(call_id="t1", raw_output="", summary="done"), ToolOutput(name="clock", raw_output="noon")]
        )
        assert blocks == [
            {"type": "tool_result", "tool_use_id": "t1", "content": "done", "is_error": False},
            {"type": "text", "text": "Tool output (clock):\nnoon"},
        ]

    def test_content_blocks(self) -> None:
        blocks = content_blocks_to_anthropic(
            [
                ContentBlock(kind="image", data="AAA", mime_type="image/gif"),
                ContentBlock(kind="file", data="BBB", mime_type="application/pdf"),
                ContentBlock(kind="file", data="CCC", mime_type="application/zip", file_name="x.zip"),
            ]
        )
        assert blocks == [
            {"type": "image", "source": {"type": "base64", "media_type": "image/gif", "data": "AAA"}},
            {"type": "document", "source": {"type": "base64", "media_type": "application/pdf", "data": "BBB"}},
            {"type": "text", "text": "[Attachment: x.zip]"},
        ]


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


class TestFetch:
    async def test_non_streaming(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "msg_1",
                    "type": "message",
                    "role": "assistant",
                    "model": "claude-sonnet-4-0",
                    "content": [
                        {"type": "thinking", "thinking": "hmm", "signature": "sig"},
                        {"type": "text", "text": "Hello"},
                        {"type": "tool_use", "id": "toolu_1", "name": "lookup_abcd1234", "input": {"q": "x"}},
                    ],
                    "stop_reason": "tool_use",
                    "stop_sequence": None,
                    "usage": {"input_tokens": 10, "output_tokens": 5, "cache_read_input_tokens": 4},
                },
            )

        response = await _adapter(handler).fetch_completion(_data())

        assert str(seen[0].url) == "https://api.anthropic.com/v1/messages"
        assert response.text == "Hello"
        assert response.thinking == "hmm"
        (call,) = response.tool_calls
        assert json.loads(call.arguments) == {"q": "x"}
        assert call.tool_choice == LOOKUP
        assert response.usage is not None
        assert response.usage.input_tokens_total == 14
        assert response.usage.input_tokens_uncached == 10
        assert response.request_details is not None
        assert response.request_details.headers is not None
        assert response.request_details.headers["x-api-key"] == "***"

    async def test_streaming(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _sse(
                {
                    "type": "message_start",
                    "message": {
                        "id": "msg_1",
                        "type": "message",
                        "role": "assistant",
                        "model": "claude-sonnet-4-0",
                        "content": [],
                        "stop_reason": None,
                        "stop_sequence": None,
                        "usage": {"input_tokens": 10, "output_tokens": 1, "cache_read_input_tokens": 4},
                    },
                },
                {"type": "content_block_start", "index": 0, "content_block": {"type": "thinking", "thinking": "", "signature": ""}},
                {"type": "content_block_delta", "index": 0, "delta": {"type": "thinking_delta", "thinking": "hmm"}},
                {"type": "content_block_stop", "index": 0},
                {"type": "content_block_start", "index": 1, "content_block": {"type": "text", "text": ""}},
                {"type": "content_block_delta", "index": 1, "delta": {"type": "text_delta", "text": "Hel"}},
                {"type": "content_block_delta", "index": 1, "delta": {"type": "text_delta", "text": "lo"}},
                {"type": "content_block_stop", "index": 1},
                {
                    "type": "content_block_start",
                    "index": 2,
                    "content_block": {"type": "tool_use", "id": "toolu_1", "name": "lookup_abcd1234", "input": {}},
                },
                {"type": "content_block_delta", "index": 2, "delta": {"type": "input_json_delta", "partial_json": '{"q":'}},
                {"type": "content_block_delta", "index": 2, "delta": {"type": "input_json_delta", "partial_json": ' "x"}'}},
                {"type": "content_block_stop", "index": 2},
                {
                    "type": "message_delta",
                    "delta": {"stop_reason": "tool_use", "stop_sequence": None},
                    "usage": {"output_tokens": 7},
                },
                {"type": "message_stop"},
            )

        text: list[str] = []
        thinking: list[str] = []
        response = await _adapter(handler).fetch_completion(
            _data(stream=True), text.append, thinking.append
        )

        assert "".join(text) == "Hello"
        assert "".join(thinking) == "hmm"
        assert [c.type for c in response.response_content] == ["thinking", "text"]
        (call,) = response.tool_calls
        assert call.arguments == '{"q": "x"}'
        assert response.usage is not None
        assert response.usage.output_tokens == 7
        assert response.usage.input_tokens_cached == 4

    async def test_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                529, json={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
            )

        with pytest.raises(FetchCompletionError) as exc_info:
            await _adapter(handler).fetch_completion(_data())

        partial = exc_info.value.response
        assert partial is not None
        assert partial.error_details is not None
        assert "Overloaded" in partial.error_details.message

    async def test_error_mid_stream_keeps_delivered_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _sse(
                {
                    "type": "message_start",
                    "message": {
                        "id": "msg_1",
                        "type": "message",
                        "role": "assistant",
                        "model": "claude-sonnet-4-0",
                        "content": [],
                        "stop_reason": None,
                        "stop_sequence": None,
                        "usage": {"input_tokens": 3, "output_tokens": 1},
                    },
                },
                {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
                {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hal"}},
                {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
            )

        text: list[str] = []
        with pytest.raises(FetchCompletionError) as exc_info:
            await _adapter(handler).fetch_completion(_data(stream=True), text.append, lambda _: None)

        assert text == ["Hal"]
        partial = exc_info.value.response
        assert partial is not None
        assert partial.text == "Hal"
        assert partial.error_details is not None
        assert "Overloaded" in partial.error_details.message
