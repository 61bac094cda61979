"""Tests for the OpenAI Chat Completions adapter."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from openai import AsyncOpenAI

from modelhub.inference.adapters.openai_chat import (
    OpenAIChatCompletionsAdapter,
    content_blocks_to_openai_chat,
    parse_extra_body,
    uses_developer_role,
)
from modelhub.inference.debug import DebugTransport
from modelhub.inference.errors import FetchCompletionError, InferenceRequestError
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


def _adapter(
    handler: Handler | None = None, sdk_type: str = "openAIChatCompletions"
) -> OpenAIChatCompletionsAdapter:
    adapter = OpenAIChatCompletionsAdapter(
        ProviderParams(
            name="openai",
            sdk_type=sdk_type,
            api_key="sk-test",
            origin="https://api.openai.com",
            chat_completion_path_prefix="/v1/chat/completions",
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


def _data(model: str = "gpt-4o", messages: list[ChatMessage] | None = None, **params: Any) -> CompletionData:
    return CompletionData(
        model_params=ModelParams(name=model, **params),
        messages=messages if messages is not None else [ChatMessage.user("hi")],
    )


def _sse(*events: dict[str, Any]) -> httpx.Response:
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"
    return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})


def _chunk(delta: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1,
        "model": "gpt-4o",
        "choices": [{"index": 0, "delta": delta, "finish_reason": None}],
    }


LOOKUP = ToolChoice(id="abcd1234ef", slug="lookup", description="Look things up", arg_schema={"type": "object"})


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


class TestSystemRole:
    def test_reasoning_models_use_developer(self) -> None:
        assert uses_developer_role("o4-mini")
        assert uses_developer_role("gpt-5")
        assert not uses_developer_role("gpt-4o")

    def test_system_prompt_role(self) -> None:
        adapter = _adapter()
        dev = adapter.build_messages(_data("o4-mini", system_prompt="be brief"))
        sys = adapter.build_messages(_data("gpt-4o", system_prompt="be brief"))
        assert dev[0] == {"role": "developer", "content": "be brief"}
        assert sys[0] == {"role": "system", "content": "be brief"}

    def test_compatible_servers_keep_system(self) -> None:
        adapter = _adapter(sdk_type="customOpenAICompatible")
        messages = adapter.build_messages(_data("o1-local", system_prompt="be brief"))
        assert messages[0]["role"] == "system"


class TestBuildParams:
    def test_basic_fields(self) -> None:
        params = _adapter().build_params(_data(temperature=0.3, max_output_length=256))
        assert params["model"] == "gpt-4o"
        assert params["temperature"] == 0.3
        assert params["max_completion_tokens"] == 256
        assert params["messages"] == [{"role": "user", "content": "hi"}]
        assert "tools" not in params

    def test_reasoning_effort(self) -> None:
        params = _adapter().build_params(
            _data("o4-mini", reasoning=ReasoningParams(type="singleWithLevels", level="high"))
        )
        assert params["reasoning_effort"] == "high"
        assert "temperature" not in params

    def test_invalid_reasoning_level(self) -> None:
        with pytest.raises(InferenceRequestError):
            _adapter().build_params(
                _data("o4-mini", reasoning=ReasoningParams(type="singleWithLevels", level="max"))
            )

    def test_tools(self) -> None:
        data = _data()
        data.tool_choices = [LOOKUP]
        (tool,) = _adapter().build_params(data)["tools"]
        assert tool == {
            "type": "function",
            "function": {
                "name": "lookup_abcd1234",
                "parameters": {"type": "object"},
                "description": "Look things up",
            },
        }

    def test_extra_body(self) -> None:
        params = _adapter().build_params(_data(additional_parameters_raw_json='{"top_k": 5}'))
        assert params["extra_body"] == {"top_k": 5}

    def test_extra_body_must_be_object(self) -> None:
        assert parse_extra_body("  ") is None
        with pytest.raises(InferenceRequestError):
            parse_extra_body("[1]")
        with pytest.raises(InferenceRequestError):
            parse_extra_body("{oops")

    def test_tool_round_trip_messages(self) -> None:
        messages = [
            ChatMessage.user("weather?"),
            ChatMessage(
                role="assistant",
                tool_calls=[ToolCall(id="call_1", name="lookup", arguments='{"q": "paris"}')],
            ),
            ChatMessage(
                role="user",
                tool_outputs=[
                    ToolOutput(call_id="call_1", raw_output="sunny"),
                    ToolOutput(name="clock", raw_output="noon"),
                ],
            ),
        ]
        out = _adapter().build_messages(_data(messages=messages))
        assert out[1] == {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {"id": "call_1", "type": "function", "function": {"name": "lookup", "arguments": '{"q": "paris"}'}}
            ],
        }
        assert out[2] == {"role": "tool", "tool_call_id": "call_1", "content": "sunny"}
        assert out[3] == {"role": "user", "content": "Tool output (clock):\nnoon"}

    def test_content_parts(self) -> None:
        parts = content_blocks_to_openai_chat(
            [
                ContentBlock(kind="text", text="note"),
                ContentBlock(kind="image", data="AAA", mime_type="image/jpeg"),
                ContentBlock(kind="file", data="BBB", mime_type="application/pdf", file_name="r.pdf"),
                ContentBlock(kind="image"),
            ]
        )
        assert parts == [
            {"type": "text", "text": "note"},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAA", "detail": "auto"}},
            {"type": "file", "file": {"file_data": "data:application/pdf;base64,BBB", "filename": "r.pdf"}},
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
                    "id": "chatcmpl-1",
                    "object": "chat.completion",
                    "created": 1,
                    "model": "gpt-4o",
                    "choices": [
                        {
                            "index": 0,
                            "message": {
                                "role": "assistant",
                                "content": "Hello",
                                "tool_calls": [
                                    {
                                        "id": "call_9",
                                        "type": "function",
                                        "function": {"name": "lookup_abcd1234", "arguments": "{}"},
                                    }
                                ],
                            },
                            "finish_reason": "tool_calls",
                        }
                    ],
                    "usage": {
                        "prompt_tokens": 10,
                        "completion_tokens": 2,
                        "total_tokens": 12,
                        "prompt_tokens_details": {"cached_tokens": 4},
                    },
                },
            )

        data = _data()
        data.tool_choices = [LOOKUP]
        response = await _adapter(handler).fetch_completion(data)

        assert str(seen[0].url) == "https://api.openai.com/v1/chat/completions"
        assert response.text == "Hello"
        (call,) = response.tool_calls
        assert call.call_id == "call_9"
        assert call.tool_choice == LOOKUP
        assert response.usage is not None
        assert (response.usage.input_tokens_cached, response.usage.input_tokens_uncached) == (4, 6)
        assert response.request_details is not None
        assert response.request_details.headers is not None
        assert response.request_details.headers["authorization"] == "***"
        assert response.response_details is not None and response.response_details.status == 200

    async def test_streaming(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return _sse(
                _chunk({"role": "assistant", "reasoning_content": "thinking..."}),
                _chunk({"content": "Hel"}),
                _chunk({"content": "lo"}),
                _chunk(
                    {
                        "tool_calls": [
                            {"index": 0, "id": "call_1", "type": "function", "function": {"name": "lookup", "arguments": '{"q"'}}
                        ]
                    }
                ),
                _chunk({"tool_calls": [{"index": 0, "function": {"arguments": ': "x"}'}}]}),
            )

        text: list[str] = []
        thinking: list[str] = []
        response = await _adapter(handler).fetch_completion(
            _data(stream=True), text.append, thinking.append
        )

        assert "".join(text) == "Hello"
        assert "".join(thinking) == "thinking..."
        assert response.text == "Hello"
        assert response.thinking == "thinking..."
        (call,) = response.tool_calls
        assert (call.id, call.name, call.arguments) == ("call_1", "lookup", '{"q": "x"}')

    async def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "bad key", "type": "auth"}})

        with pytest.raises(FetchCompletionError) as exc_info:
            await _adapter(handler).fetch_completion(_data())

        partial = exc_info.value.response
        assert partial is not None
        assert partial.response_details is not None and partial.response_details.status == 401
        assert partial.error_details is not None
        assert "bad key" in partial.error_details.message

    async def test_streamed_refusal_is_kept(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            finish = _chunk({})
            finish["choices"][0]["finish_reason"] = "stop"
            return _sse(
                _chunk({"role": "assistant", "refusal": "I can't "}),
                _chunk({"refusal": "help with that."}),
                finish,
            )

        text: list[str] = []
        response = await _adapter(handler).fetch_completion(
            _data(stream=True), text.append, lambda _: None
        )

        assert "".join(text) == "I can't help with that."
        assert response.text == "I can't help with that."
        assert response.error_details is None

    async def test_error_mid_stream_keeps_delivered_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = (
                f"data: {json.dumps(_chunk({'role': 'assistant', 'content': 'Hel'}))}\n\n"
                'data: {"error": {"message": "upstream reset", "type": "server_error"}}\n\n'
            )
            return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})

        text: list[str] = []
        with pytest.raises(FetchCompletionError) as exc_info:
            await _adapter(handler).fetch_completion(_data(stream=True), text.append, lambda _: None)

        assert text == ["Hel"]
        partial = exc_info.value.response
        assert partial is not None
        assert partial.text == "Hel"
        assert "upstream reset" in str(exc_info.value)
