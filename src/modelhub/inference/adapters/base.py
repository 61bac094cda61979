"""Shared adapter contract and helpers.

Each SDK family has one adapter class.  :class:`BaseAdapter` owns the parts
every family shares: client lifecycle, base URL and header derivation,
timeouts, buffered streaming, debug capture and tracing.  Subclasses
implement ``build_params`` (canonical request to SDK keyword payload) and
the two call paths.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from modelhub.inference.attachments import AttachmentResolver, FileAttachmentResolver
from modelhub.inference.debug import DebugHTTPResponse, debug_capture
from modelhub.inference.errors import (
    EmptyCompletionDataError,
    FetchCompletionError,
    InferenceRequestError,
    ProviderNotConfiguredError,
)
from modelhub.inference.models import (
    APIErrorDetails,
    ChatMessage,
    CompletionData,
    CompletionResponse,
    ModelParams,
    ProviderParams,
    ResponseContent,
    ToolChoice,
)
from modelhub.inference.streamer import BufferedStreamer, StreamCallback
from modelhub.inference.token_filter import filter_messages_by_token_count
from modelhub.settings import DEFAULT_API_TIMEOUT
from modelhub.utils.telemetry import (
    ATTR_ERROR,
    ATTR_MESSAGE_COUNT,
    ATTR_MODEL,
    ATTR_PROVIDER,
    ATTR_SDK_TYPE,
    ATTR_STREAM,
    get_tracer,
    record_usage,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

Write = Callable[[str], None]


@runtime_checkable
class CompletionProvider(Protocol):
    """Capability set every provider adapter exposes."""

    def init_llm(self) -> None: ...

    async def deinit_llm(self) -> None: ...
    def get_provider_info(self) -> ProviderParams: ...

    def is_configured(self) -> bool: ...

    def set_provider_api_key(self, api_key: str) -> None: ...

    def build_completion_data(
        self,
        model_params: ModelParams,
        current_message: ChatMessage,
        prev_messages: list[ChatMessage] | None = None,
        tool_choices: list[ToolChoice] | None = None,
    ) -> CompletionData: ...

    async def fetch_completion(
        self,
        data: CompletionData,
        on_stream_text: StreamCallback | None = None,
        on_stream_thinking: StreamCallback | None = None,
    ) -> CompletionResponse: ...


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def build_completion_data(
    model_params: ModelParams,
    current_message: ChatMessage,
    prev_messages: list[ChatMessage] | None = None,
    tool_choices: list[ToolChoice] | None = None,
) -> CompletionData:
    """Assemble the request envelope and apply the prompt-token budget.

    Prior messages are copied with ``name`` and ``tool_attachments`` cleared
    so that retries send a stable context.
    """
    messages: list[ChatMessage] = []
    for message in prev_messages or []:
        messages.append(message.model_copy(update={"name": None, "tool_attachments": []}, deep=True))
    messages.append(current_message.model_copy(deep=True))

    return CompletionData(
        model_params=model_params.model_copy(deep=True),
        messages=filter_messages_by_token_count(messages, model_params.max_prompt_length),
        tool_choices=list(tool_choices or []),
    )


def _sanitize_tool_name_component(value: str) -> str:
    out = []
    for ch in value.lower():
        if ("a" <= ch <= "z") or ("0" <= ch <= "9") or ch in "_-":
            out.append(ch)
        else:
            out.append("_")
    return "".join(out).strip("_-")


def tool_function_name(choice: ToolChoice) -> str:
    """Derive a provider-safe function name (``[a-z0-9_-]``, at most 64 chars)."""
    slug = _sanitize_tool_name_component(choice.slug)
    version = _sanitize_tool_name_component(choice.version.replace(".", "_"))
    id_part = _sanitize_tool_name_component(choice.id.replace("-", ""))[:8]

    parts = [p for p in (slug, version, id_part) if p] or ["tool"]
    name = "_".join(parts)[:64].strip("_-")
    return name or "tool"


def tool_schema(choice: ToolChoice) -> dict[str, Any]:
    return dict(choice.arg_schema) if choice.arg_schema else {"type": "object"}


def base_url_for(origin: str, path_prefix: str, sdk_suffix: str) -> str:
    """Join *origin* and *path_prefix* minus the path the SDK appends itself."""
    prefix = path_prefix.strip()
    if prefix.endswith(sdk_suffix):
        prefix = prefix[: -len(sdk_suffix)]
    return (origin.strip().rstrip("/") + prefix).rstrip("/")


def attach_debug_resp(
    response: CompletionResponse,
    capture: DebugHTTPResponse | None,
    error: BaseException | None,
    is_nil_resp: bool,
) -> None:
    """Copy HTTP capture onto *response* and merge error fragments.

    Error messages from the transport, the SDK and an empty model reply are
    joined with ``"; "``.  Existing ``error_details`` are left alone when
    there is nothing to add.
    """
    if capture is not None:
        response.request_details = capture.request_details
        response.response_details = capture.response_details

    parts: list[str] = []
    if capture is not None and capture.error_details is not None:
        message = capture.error_details.message.strip()
        if message:
            parts.append(message)
    if error is not None:
        parts.append(str(error))
    if is_nil_resp:
        parts.append("got nil response from LLM api")

    if not parts:
        return

    if capture is not None and capture.error_details is not None:
        details = capture.error_details.model_copy()
        details.message = "; ".join(parts)
    else:
        details = APIErrorDetails(message="; ".join(parts))
    response.error_details = details


def clean_headers(headers: dict[str, str]) -> dict[str, str]:
    """Trim keys and values, dropping entries with an empty key."""
    cleaned: dict[str, str] = {}
    for key, value in headers.items():
        key = key.strip()
        if key:
            cleaned[key] = value.strip()
    return cleaned


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------


class BaseAdapter(ABC):
    """Common lifecycle and dispatch for one provider.

    Args:
        params: Provider connection settings.  The adapter keeps its own copy.
        debug: Log captured HTTP traffic at ``DEBUG`` level.
        resolver: Resolves message attachments into content blocks.
    """

    sdk_suffix: str = ""
    default_origin: str = ""
    # Header names the SDK already fills with the API key.
    sdk_key_headers: tuple[str, ...] = ()

    def __init__(
        self,
        params: ProviderParams,
        *,
        debug: bool = False,
        resolver: AttachmentResolver | None = None,
    ) -> None:
        if not params.name:
            raise InferenceRequestError("provider name is required")
        self.params = params.model_copy(deep=True)
        self.debug = debug
        self.resolver: AttachmentResolver = resolver or FileAttachmentResolver()
        self._client: Any = None

    # -- lifecycle ----------------------------------------------------------

    def init_llm(self) -> None:
        """Create the SDK client.  Without an API key this is a no-op."""
        if not self.params.api_key:
            logger.debug("no api key for provider %s, skipping client init", self.params.name)
            return
        self._client = self._create_client()
        logger.info("initialized provider %s (%s)", self.params.name, self.params.sdk_type)

    async def deinit_llm(self) -> None:
        """Drop the SDK client and close its connection pool."""
        client, self._client = self._client, None
        if client is not None:
            await client.close()
            logger.info("de-initialized provider %s", self.params.name)

    def get_provider_info(self) -> ProviderParams:
        return self.params.model_copy(deep=True)

    def is_configured(self) -> bool:
        return bool(self.params.api_key)

    def set_provider_api_key(self, api_key: str) -> None:
        if not api_key:
            raise InferenceRequestError("invalid api key provided")
        self.params.api_key = api_key

    def build_completion_data(
        self,
        model_params: ModelParams,
        current_message: ChatMessage,
        prev_messages: list[ChatMessage] | None = None,
        tool_choices: list[ToolChoice] | None = None,
    ) -> CompletionData:
        return build_completion_data(model_params, current_message, prev_messages, tool_choices)

    # -- connection settings --------------------------------------------------

    @property
    def base_url(self) -> str:
        origin = self.params.origin or self.default_origin
        return base_url_for(origin, self.params.chat_completion_path_prefix, self.sdk_suffix)

    def default_headers(self) -> dict[str, str]:
        headers = clean_headers(self.params.default_headers)
        key_header = self.params.api_key_header_key.strip()
        if key_header and key_header.lower() not in {h.lower() for h in self.sdk_key_headers}:
            headers[key_header] = self.params.api_key
        return headers

    @staticmethod
    def request_timeout(data: CompletionData) -> float:
        if data.model_params.timeout > 0:
            return float(data.model_params.timeout)
        return DEFAULT_API_TIMEOUT

    # -- dispatch -----------------------------------------------------------

    async def fetch_completion(
        self,
        data: CompletionData,
        on_stream_text: StreamCallback | None = None,
        on_stream_thinking: StreamCallback | None = None,
    ) -> CompletionResponse:
        """Send *data* to the provider and return the parsed response.

        Streams through buffered callbacks only when the model params ask for
        streaming and both callbacks are given.

        Raises:
            ProviderNotConfiguredError: If no client was initialised.
            EmptyCompletionDataError: If *data* has no messages.
            FetchCompletionError: On any SDK or stream failure; carries the
                partial response.
        """
        if self._client is None:
            raise ProviderNotConfiguredError(self.params.name)
        if not data.messages:
            raise EmptyCompletionDataError()

        text: BufferedStreamer | None = None
        thinking: BufferedStreamer | None = None
        if data.model_params.stream and on_stream_text is not None and on_stream_thinking is not None:
            text = BufferedStreamer(on_stream_text)
            thinking = BufferedStreamer(on_stream_thinking)
        streaming = text is not None and thinking is not None
        response = CompletionResponse()

        with _tracer.start_as_current_span("inference.fetch_completion") as span:
            span.set_attribute(ATTR_PROVIDER, self.params.name)
            span.set_attribute(ATTR_SDK_TYPE, self.params.sdk_type)
            span.set_attribute(ATTR_MODEL, data.model_params.name)
            span.set_attribute(ATTR_STREAM, streaming)
            span.set_attribute(ATTR_MESSAGE_COUNT, len(data.messages))

            with debug_capture() as capture:
                try:
                    if text is not None and thinking is not None:
                        await self._stream_with_flush(data, response, text, thinking)
                    else:
                        await self._create_completion(data, response)
                except Exception as exc:
                    attach_debug_resp(response, capture, exc, is_nil_resp=False)
                    span.set_attribute(ATTR_ERROR, str(exc))
                    raise FetchCompletionError(self.params.name, response, str(exc)) from exc

                attach_debug_resp(
                    response,
                    capture,
                    None,
                    is_nil_resp=not response.response_content and not response.tool_calls,
                )

            record_usage(span, response.usage)

        return response

    async def _stream_with_flush(
        self,
        data: CompletionData,
        response: CompletionResponse,
        text: BufferedStreamer,
        thinking: BufferedStreamer,
    ) -> None:
        """Stream into both buffers and flush them however the stream ends.

        A callback failure during the final flush is raised only when the
        stream itself succeeded.
        """
        failed = True
        try:
            await self._stream_completion(data, response, text.write, thinking.write)
            failed = False
        finally:
            flush_error: Exception | None = None
            for streamer in (text, thinking):
                try:
                    streamer.flush()
                except Exception as exc:
                    flush_error = flush_error or exc
            if flush_error is not None:
                if not failed:
                    raise flush_error
                logger.debug("flush after failed stream raised: %s", flush_error)

    # -- subclass hooks -------------------------------------------------------

    @abstractmethod
    def _create_client(self) -> Any:
        """Build the SDK client for the current params."""

    @abstractmethod
    def build_params(self, data: CompletionData) -> dict[str, Any]:
        """Translate *data* into the SDK's keyword arguments."""

    @abstractmethod
    async def _create_completion(self, data: CompletionData, response: CompletionResponse) -> None:
        """Non-streaming call; fill *response* in place."""

    @abstractmethod
    async def _stream_completion(
        self,
        data: CompletionData,
        response: CompletionResponse,
        write_text: Write,
        write_thinking: Write,
    ) -> None:
        """Streaming call; forward deltas and fill *response* in place."""


def append_content(response: CompletionResponse, kind: str, text: str) -> None:
    """Append a non-empty output block of *kind* to *response*."""
    if text:
        response.response_content.append(ResponseContent(type=kind, content=text))  # type: ignore[arg-type]
