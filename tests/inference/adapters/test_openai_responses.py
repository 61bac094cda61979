"""Tests for the OpenAI Responses adapter."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from openai import AsyncOpenAI

from modelhub.inference.adapters.openai_responses import (
    OpenAIResponsesAdapter,
    content_blocks_to_openai_responses,
)
from modelhub.inference.debug import DebugTransport
from modelhub.inference.errors import FetchCompletionError, StreamTerminalError
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

LOOKUP = ToolChoice(id="abcd1234ef", slug="lookup", arg_schema={"type": "object"})


def _adapter(handler: Handler | None = None) -> OpenAIResponsesAdapter:
    adapter = OpenAIResponsesAdapter(
        ProviderParams(
            name="openaiResponses",
            sdk_type="openAIResponses",
            api_key="sk-test",
            origin="https://api.openai.com",
            chat_completion_path_prefix="/v1/responses",
        )
    )
    if handler is not None:
        adapter._client = AsyncOpenAI(
            api_key="sk-test",
            base_url=adapter.base_url,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=DebugTransport(httpx.MockTransport(handler))),
        )
    return adapter


def _data(messages: list[ChatMessage] | None = None, **params: Any) -> CompletionData:
    return CompletionData(
        model_params=ModelParams(name="gpt-5", **params),
        messages=messages if messages is not None else [ChatMessage.user("hi")],
        tool_choices=[LOOKUP],
    )


def _response_body(status: str = "completed", output: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": "resp_1",
        "object": "response",
        "created_at": 1,
        "model": "gpt-5",
        "status": status,
        "parallel_tool_calls": True,
        "tool_choice": "auto",
        "tools": [],
        "output": output if output is not None else [],
        "usage": {
            "input_tokens": 10,
            "input_tokens_details": {"cached_tokens": 2},
            "output_tokens": 5,
            "output_tokens_details": {"reasoning_tokens": 3},
            "total_tokens": 15,
        },
    }
    body.update(extra)
    return body


FULL_OUTPUT = [
    {"type": "reasoning", "id": "rs_1", "summary": [{"type": "summary_text", "text": "Plan."}]},
    {
        "type": "message",
        "id": "msg_1",
        "role": "assistant",
        "status": "completed",
        "content": [{"type": "output_text", "text": "Hi there", "annotations": []}],
    },
    {
        "type": "function_call",
        "id": "fc_1",
        "call_id": "call_1",
        "name": "lookup_abcd1234",
        "arguments": "{}",
        "status": "completed",
    },
]


def _sse(*events: dict[str, Any]) -> httpx.Response:
    body = "".join(f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events)
    return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


class TestBuildParams:
    def test_instructions_and_reasoning(self) -> None:
        params = _adapter().build_params(
            _data(
                system_prompt="be brief",
                max_output_length=100,
                reasoning=ReasoningParams(type="singleWithLevels", level="low"),
            )
        )
        assert params["instructions"] == "be brief"
        assert params["store"] is False
        assert params["max_output_tokens"] == 100
        assert params["reasoning"] == {"effort": "low", "summary": "auto"}
        assert params["tools"] == [
            {"type": "function", "name": "lookup_abcd1234", "parameters": {"type": "object"}, "strict": False}
        ]

    def test_input_items(self) -> None:
        messages = [
            ChatMessage.system("context"),
            ChatMessage.user("weather?"),
            ChatMessage(
                role="assistant",
                content="checking",
                tool_calls=[ToolCall(call_id="call_1", name="lookup", arguments='{"q": "paris"}')],
            ),
            ChatMessage(role="user", tool_outputs=[ToolOutput(call_id="call_1", raw_output="sunny")]),
        ]
        items = _adapter().build_input(_data(messages))
        assert items == [
            {"type": "message", "role": "system", "content": "context"},
            {"type": "message", "role": "user", "content": "weather?"},
            {"type": "message", "role": "assistant", "content": "checking"},
            {"type": "function_call", "call_id": "call_1", "name": "lookup", "arguments": '{"q": "paris"}'},
            {"type": "function_call_output", "call_id": "call_1", "output": "sunny"},
        ]

    def test_content_parts(self) -> None:
        parts = content_blocks_to_openai_responses(
            [
                ContentBlock(kind="image", data="AAA", mime_type="image/png"),
                ContentBlock(kind="file", data="BBB", mime_type="application/pdf", file_name="r.pdf"),
            ]
        )
        assert parts == [
            {"type": "input_image", "image_url": "data:image/png;base64,AAA", "detail": "auto"},
            {"type": "input_file", "file_data": "data:application/pdf;base64,BBB", "filename": "r.pdf"},
        ]


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


class TestFetch:
    async def test_non_streaming(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://api.openai.com/v1/responses"
            return httpx.Response(200, json=_response_body(output=FULL_OUTPUT))

        response = await _adapter(handler).fetch_completion(_data())

        assert [c.type for c in response.response_content] == ["thinkingSummary", "text"]
        assert response.text == "Hi there"
        assert response.thinking == "Plan."
        (call,) = response.tool_calls
        assert (call.id, call.call_id, call.tool_choice) == ("fc_1", "call_1", LOOKUP)
        assert response.usage is not None
        assert response.usage.input_tokens_uncached == 8
        assert response.usage.reasoning_tokens == 3

    async def test_streaming_uses_final_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _sse(
                {
                    "type": "response.reasoning_summary_text.delta",
                    "item_id": "rs_1",
                    "output_index": 0,
                    "summary_index": 0,
                    "delta": "Plan.",
                    "sequence_number": 1,
                },
                {
                    "type": "response.output_text.delta",
                    "item_id": "msg_1",
                    "output_index": 1,
                    "content_index": 0,
                    "delta": "Hi",
                    "logprobs": [],
                    "sequence_number": 2,
                },
                {
                    "type": "response.output_text.delta",
                    "item_id": "msg_1",
                    "output_index": 1,
                    "content_index": 0,
                    "delta": " there",
                    "logprobs": [],
                    "sequence_number": 3,
                },
                {
                    "type": "response.completed",
                    "response": _response_body(output=FULL_OUTPUT),
                    "sequence_number": 4,
                },
            )

        text: list[str] = []
        thinking: list[str] = []
        response = await _adapter(handler).fetch_completion(
            _data(stream=True), text.append, thinking.append
        )

        assert "".join(text) == "Hi there"
        assert "".join(thinking) == "Plan."
        assert response.text == "Hi there"
        assert len(response.tool_calls) == 1

    async def test_failed_stream_keeps_partial_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _sse(
                {
                    "type": "response.output_text.delta",
                    "item_id": "msg_1",
                    "output_index": 0,
                    "content_index": 0,
                    "delta": "Hi",
                    "logprobs": [],
                    "sequence_number": 1,
                },
                {
                    "type": "response.failed",
                    "response": _response_body(
                        status="failed", error={"code": "server_error", "message": "boom"}
                    ),
                    "sequence_number": 2,
                },
            )

        text: list[str] = []
        with pytest.raises(FetchCompletionError) as exc_info:
            await _adapter(handler).fetch_completion(_data(stream=True), text.append, lambda _: None)

        assert isinstance(exc_info.value.__cause__, StreamTerminalError)
        assert "boom" in str(exc_info.value.__cause__)
        assert text == ["Hi"]
        partial = exc_info.value.response
        assert partial is not None
        assert partial.text == "Hi"

    async def test_incomplete_stream(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _sse(
                {
                    "type": "response.incomplete",
                    "response": _response_body(
                        status="incomplete", incomplete_details={"reason": "max_output_tokens"}
                    ),
                    "sequence_number": 1,
                },
            )

        with pytest.raises(FetchCompletionError) as exc_info:
            await _adapter(handler).fetch_completion(_data(stream=True), lambda _: None, lambda _: None)

        cause = exc_info.value.__cause__
        assert isinstance(cause, StreamTerminalError)
        assert cause.reason == "max_output_tokens"
