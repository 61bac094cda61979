"""HTTP capture for provider calls.

:class:`DebugTransport` wraps an httpx transport and records each request and
response into the :class:`DebugHTTPResponse` opened by :func:`debug_capture`
for the current context.  Sensitive headers and body keys are masked before
anything is stored or logged.

Usage::

    client = httpx.AsyncClient(transport=DebugTransport())
    with debug_capture() as capture:
        await client.post(url, json=payload)
    print(capture.request_details.curl_command)
"""

from __future__ import annotations

import contextvars
import json
import logging
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import contextmanager
from typing import Any

import httpx
from pydantic import BaseModel

from modelhub.inference.models import APIErrorDetails, APIRequestDetails, APIResponseDetails

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("authorization", "key")
MASK = "***"
CYCLE_TOKEN = "<cycle>"
DEPTH_TOKEN = "<max-depth>"
# Kept below the interpreter's default recursion limit.
MAX_FILTER_DEPTH = 512


class DebugHTTPResponse(BaseModel):
    """Request, response and error capture for one provider call."""

    request_details: APIRequestDetails | None = None
    response_details: APIResponseDetails | None = None
    error_details: APIErrorDetails | None = None


_current: contextvars.ContextVar[DebugHTTPResponse | None] = contextvars.ContextVar(
    "modelhub_debug_http_response", default=None
)


@contextmanager
def debug_capture() -> Iterator[DebugHTTPResponse]:
    """Open a fresh capture for HTTP calls made inside the block."""
    capture = DebugHTTPResponse()
    token = _current.set(capture)
    try:
        yield capture
    finally:
        _current.reset(token)


def get_debug_capture() -> DebugHTTPResponse | None:
    """Return the capture opened by the innermost :func:`debug_capture`, if any."""
    return _current.get()


# ---------------------------------------------------------------------------
# Redaction and formatting
# ---------------------------------------------------------------------------


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def filter_sensitive_info(data: Any) -> Any:
    """Return a deep copy of *data* with sensitive keys masked.

    Dicts and lists are copied; any other value is returned as-is.  A
    container reached again through itself becomes ``"<cycle>"``.
    """
    if data is None:
        return None

    visiting: set[int] = set()

    def scrub(value: Any, depth: int) -> Any:
        if depth > MAX_FILTER_DEPTH:
            return DEPTH_TOKEN
        if isinstance(value, dict):
            if id(value) in visiting:
                return CYCLE_TOKEN
            visiting.add(id(value))
            try:
                return {
                    k: MASK if isinstance(k, str) and is_sensitive_key(k) else scrub(v, depth + 1)
                    for k, v in value.items()
                }
            finally:
                visiting.discard(id(value))
        if isinstance(value, list):
            if id(value) in visiting:
                return CYCLE_TOKEN
            visiting.add(id(value))
            try:
                return [scrub(item, depth + 1) for item in value]
            finally:
                visiting.discard(id(value))
        return value

    return scrub(data, 0)


def generate_curl_command(details: APIRequestDetails) -> str:
    """Render *details* as an equivalent ``curl`` command line."""
    parts: list[str] = []
    if details.method:
        parts.append(f"curl -X {details.method.upper()}")
    if details.url:
        parts.append(f'"{details.url}"')
    for key, value in (details.headers or {}).items():
        parts.append(f'-H "{key}: {value}"')
    if details.data is not None:
        try:
            parts.append(f"-d '{json.dumps(details.data)}'")
        except (TypeError, ValueError):
            pass
    return " ".join(parts)


def _headers_to_dict(headers: httpx.Headers) -> dict[str, Any]:
    return {key: ", ".join(headers.get_list(key)) for key in headers.keys()}


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _dump(model: BaseModel) -> str:
    return model.model_dump_json(indent=2)


# ---------------------------------------------------------------------------
# Recorder shared by the sync and async transports
# ---------------------------------------------------------------------------


class _Recorder:
    def __init__(self, log_mode: bool, capture_response_data: bool) -> None:
        self.log_mode = log_mode
        self.capture_response_data = capture_response_data

    def start(self, request: httpx.Request, body: bytes) -> tuple[DebugHTTPResponse, APIRequestDetails]:
        # Calls outside debug_capture() still run through a throwaway capture.
        capture = get_debug_capture() or DebugHTTPResponse()
        details = APIRequestDetails(
            url=str(request.url),
            method=request.method,
            headers=filter_sensitive_info(_headers_to_dict(request.headers)),
            data=filter_sensitive_info(_decode_body(body)),
        )
        details.curl_command = generate_curl_command(details)
        capture.request_details = details
        if self.log_mode:
            logger.debug("request: %s", _dump(details))
        return capture, details

    def failed(self, capture: DebugHTTPResponse, details: APIRequestDetails, exc: Exception) -> None:
        capture.error_details = APIErrorDetails(
            message=str(exc),
            request_details=details,
            response_details=capture.response_details,
        )
        if self.log_mode:
            logger.debug("error: %s", _dump(capture.error_details))

    def responded(self, capture: DebugHTTPResponse, response: httpx.Response) -> APIResponseDetails:
        details = APIResponseDetails(
            status=response.status_code,
            headers=filter_sensitive_info(_headers_to_dict(response.headers)),
        )
        capture.response_details = details
        if self.log_mode:
            logger.debug("response: %s", _dump(details))
        return details

    def body_closed(self, details: APIResponseDetails, raw: bytes) -> None:
        data = _decode_body(raw)
        if isinstance(data, dict):
            details.data = filter_sensitive_info(data)
        else:
            details.data = raw.decode("utf-8", errors="replace")
        if self.log_mode:
            logger.debug("response body: %s", raw.decode("utf-8", errors="replace"))


class _CapturingAsyncStream(httpx.AsyncByteStream):
    def __init__(self, stream: httpx.AsyncByteStream, on_close: Callable[[bytes], None]) -> None:
        self._stream = stream
        self._on_close = on_close
        self._buffer = bytearray()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            self._buffer.extend(chunk)
            yield chunk

    async def aclose(self) -> None:
        await self._stream.aclose()
        self._on_close(bytes(self._buffer))


class _CapturingSyncStream(httpx.SyncByteStream):
    def __init__(self, stream: httpx.SyncByteStream, on_close: Callable[[bytes], None]) -> None:
        self._stream = stream
        self._on_close = on_close
        self._buffer = bytearray()

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._stream:
            self._buffer.extend(chunk)
            yield chunk

    def close(self) -> None:
        self._stream.close()
        self._on_close(bytes(self._buffer))


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class DebugTransport(httpx.AsyncBaseTransport):
    """Async httpx transport that records traffic into the current capture.

    Args:
        transport: The transport that actually sends requests.  Defaults to
            :class:`httpx.AsyncHTTPTransport`.
        log_mode: Also log captured details at ``DEBUG`` level.
        capture_response_data: Record the response body when it is closed.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        *,
        log_mode: bool = False,
        capture_response_data: bool = True,
    ) -> None:
        self._transport = transport or httpx.AsyncHTTPTransport()
        self._recorder = _Recorder(log_mode, capture_response_data)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        capture, req_details = self._recorder.start(request, body)
        try:
            response = await self._transport.handle_async_request(request)
        except Exception as exc:
            self._recorder.failed(capture, req_details, exc)
            raise

        resp_details = self._recorder.responded(capture, response)
        if self._recorder.capture_response_data:
            if response.is_stream_consumed:
                # The inner transport already buffered the body.
                self._recorder.body_closed(resp_details, response.content)
            elif isinstance(response.stream, httpx.AsyncByteStream):
                response.stream = _CapturingAsyncStream(
                    response.stream,
                    lambda raw: self._recorder.body_closed(resp_details, raw),
                )
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()


class SyncDebugTransport(httpx.BaseTransport):
    """Blocking counterpart of :class:`DebugTransport`."""

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        *,
        log_mode: bool = False,
        capture_response_data: bool = True,
    ) -> None:
        self._transport = transport or httpx.HTTPTransport()
        self._recorder = _Recorder(log_mode, capture_response_data)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        body = request.read()
        capture, req_details = self._recorder.start(request, body)
        try:
            response = self._transport.handle_request(request)
        except Exception as exc:
            self._recorder.failed(capture, req_details, exc)
            raise

        resp_details = self._recorder.responded(capture, response)
        if self._recorder.capture_response_data:
            if response.is_stream_consumed:
                self._recorder.body_closed(resp_details, response.content)
            elif isinstance(response.stream, httpx.SyncByteStream):
                response.stream = _CapturingSyncStream(
                    response.stream,
                    lambda raw: self._recorder.body_closed(resp_details, raw),
                )
        return response

    def close(self) -> None:
        self._transport.close()
