"""ProviderSet: named provider adapters behind one routing facade.

The set owns one adapter per provider name, re-initialises the SDK client
when an API key changes, and routes completions to the right adapter.
Completions started with a ``completion_id`` can be cancelled from another
task through :meth:`ProviderSet.cancel_completion`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any

from modelhub.inference.adapters import ADAPTERS, BaseAdapter
from modelhub.inference.attachments import AttachmentResolver
from modelhub.inference.errors import (
    FetchCompletionError,
    InferenceError,
    InferenceRequestError,
    ProviderExistsError,
    ProviderMissingError,
    UnsupportedSDKTypeError,
)
from modelhub.inference.models import (
    APIErrorDetails,
    ChatMessage,
    CompletionData,
    CompletionResponse,
    ModelParams,
    ProviderParams,
    ToolChoice,
)
from modelhub.inference.streamer import StreamCallback
from modelhub.recovery import is_cancellation, with_recovery
from modelhub.utils.telemetry import ATTR_PROVIDER_COUNT, get_tracer

if TYPE_CHECKING:
    from modelhub.presets.registry import PresetRegistry
    from modelhub.secrets import SecretsSource

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

# Seconds a cancel that arrived before its completion is remembered.
PRE_CANCEL_TTL = 120.0


class ProviderSet:
    """Adapters keyed by provider name.

    Args:
        debug: Passed to every adapter; logs captured HTTP traffic.
        resolver: Attachment resolver shared by all adapters.
    """

    def __init__(self, *, debug: bool = False, resolver: AttachmentResolver | None = None) -> None:
        self._debug = debug
        self._resolver = resolver
        self._providers: dict[str, BaseAdapter] = {}
        self._lock = threading.RLock()
        self._inflight: dict[str, asyncio.Task[CompletionResponse]] = {}
        self._pre_cancelled: dict[str, float] = {}

    # -- provider management -------------------------------------------------

    @with_recovery
    def add_provider(self, name: str, params: ProviderParams) -> None:
        """Create the adapter for *params* and initialise it if a key is set."""
        if not name:
            raise InferenceRequestError("provider name is required")
        adapter_cls = ADAPTERS.get(params.sdk_type)
        if adapter_cls is None:
            raise UnsupportedSDKTypeError(params.sdk_type)

        with self._lock:
            if name in self._providers:
                raise ProviderExistsError(name)
            adapter = adapter_cls(
                params.model_copy(update={"name": name}),
                debug=self._debug,
                resolver=self._resolver,
            )
            adapter.init_llm()
            self._providers[name] = adapter
        logger.info("added provider %s (%s)", name, params.sdk_type)

    @with_recovery
    async def delete_provider(self, name: str) -> None:
        """Remove provider *name* and close its SDK client."""
        with self._lock:
            adapter = self._providers.pop(name, None)
        if adapter is None:
            raise ProviderMissingError(name)
        await adapter.deinit_llm()
        logger.info("deleted provider %s", name)

    @with_recovery
    async def set_provider_api_key(self, name: str, api_key: str) -> None:
        """Close the old client, swap the key and rebuild.  An empty key de-initialises.

        Callers must not fetch from *name* while the key is being swapped.
        """
        with self._lock:
            adapter = self._get(name)
        await adapter.deinit_llm()
        with self._lock:
            if not api_key:
                adapter.params.api_key = ""
                logger.info("cleared api key for provider %s", name)
                return
            adapter.set_provider_api_key(api_key)
            adapter.init_llm()

    @with_recovery
    def get_provider_info(self, name: str) -> ProviderParams:
        with self._lock:
            return self._get(name).get_provider_info()

    def provider_names(self) -> list[str]:
        with self._lock:
            return sorted(self._providers)

    def is_configured(self, name: str) -> bool:
        with self._lock:
            return self._get(name).is_configured()

    def _get(self, name: str) -> BaseAdapter:
        adapter = self._providers.get(name)
        if adapter is None:
            raise ProviderMissingError(name)
        return adapter

    # -- completions --------------------------------------------------------

    @with_recovery
    def build_completion_data(
        self,
        name: str,
        model_params: ModelParams,
        current_message: ChatMessage,
        prev_messages: list[ChatMessage] | None = None,
        tool_choices: list[ToolChoice] | None = None,
    ) -> CompletionData:
        """Validate the current turn and assemble the request envelope.

        The current message must be a user message carrying text,
        attachments or tool outputs.
        """
        if current_message.role != "user":
            raise InferenceRequestError("current message must have the user role")
        has_text = bool((current_message.content or "").strip())
        if not (has_text or current_message.attachments or current_message.tool_outputs):
            raise InferenceRequestError("current message has no text, attachments or tool outputs")
        with self._lock:
            adapter = self._get(name)
        return adapter.build_completion_data(model_params, current_message, prev_messages, tool_choices)

    @with_recovery
    async def fetch_completion(
        self,
        name: str,
        data: CompletionData,
        on_stream_text: StreamCallback | None = None,
        on_stream_thinking: StreamCallback | None = None,
        *,
        completion_id: str | None = None,
    ) -> CompletionResponse:
        """Route *data* to provider *name*.

        When the adapter fails after assembling some output, the partial
        response is returned with ``error_details`` set.  Inference errors such
        as :class:`ProviderNotConfiguredError` propagate unchanged; anything
        else is raised as :class:`FetchCompletionError` chaining the original
        exception.  Cancellation propagates as :class:`asyncio.CancelledError`.
        """
        with self._lock:
            adapter = self._get(name)

        coro = adapter.fetch_completion(data, on_stream_text, on_stream_thinking)
        try:
            if completion_id:
                response = await self._run_cancellable(completion_id, coro)
            else:
                response = await coro
        except FetchCompletionError as exc:
            partial = exc.response
            if partial is not None and (partial.response_content or partial.tool_calls):
                if partial.error_details is None:
                    partial.error_details = APIErrorDetails(message=str(exc))
                logger.error("fetch completion failed for %s, returning partial response: %s", name, exc)
                return partial
            raise
        except InferenceError:
            raise
        except Exception as exc:
            if is_cancellation(exc):
                raise
            raise FetchCompletionError(name, None, str(exc)) from exc
        return response

    async def _run_cancellable(
        self, completion_id: str, coro: Coroutine[Any, Any, CompletionResponse]
    ) -> CompletionResponse:
        with self._lock:
            self._prune_pre_cancelled()
            if self._pre_cancelled.pop(completion_id, None) is not None:
                coro.close()
                logger.debug("completion %s was cancelled before it started", completion_id)
                raise asyncio.CancelledError(f"completion {completion_id} cancelled")
            if completion_id in self._inflight:
                coro.close()
                raise InferenceRequestError(
                    f"duplicate completion id: {completion_id!r} is already in flight"
                )
            task = asyncio.ensure_future(coro)
            self._inflight[completion_id] = task
        try:
            return await task
        finally:
            with self._lock:
                if self._inflight.get(completion_id) is task:
                    del self._inflight[completion_id]

    def cancel_completion(self, completion_id: str) -> None:
        """Cancel an in-flight completion, or remember the cancel for a while."""
        if not completion_id:
            return
        with self._lock:
            task = self._inflight.pop(completion_id, None)
            if task is not None:
                task.cancel()
                logger.debug("cancelled completion %s", completion_id)
                return
            self._pre_cancelled[completion_id] = time.monotonic()
            self._prune_pre_cancelled()

    def _prune_pre_cancelled(self) -> None:
        cutoff = time.monotonic() - PRE_CANCEL_TTL
        for key in [k for k, t in self._pre_cancelled.items() if t < cutoff]:
            del self._pre_cancelled[key]

    # -- bulk setup / teardown ------------------------------------------------

    @with_recovery
    def init_from_registry(self, registry: PresetRegistry, secrets: SecretsSource) -> int:
        """Add every registry provider and apply the keys *secrets* knows.

        Returns:
            The number of providers added.
        """
        added = 0
        with_key = 0
        with _tracer.start_as_current_span("inference.init_from_registry") as span:
            for preset in registry.iter_provider_presets(include_disabled=True):
                if not preset.name or not preset.origin:
                    logger.warning("skipping provider with invalid preset: %r", preset.name)
                    continue
                api_key = secrets.get_api_key(preset.name) or ""
                self.add_provider(preset.name, ProviderParams.from_preset(preset, api_key=api_key))
                added += 1
                if api_key:
                    with_key += 1
            span.set_attribute(ATTR_PROVIDER_COUNT, added)

        if added == 0:
            logger.warning("no providers found - nothing to initialize")
        elif with_key == 0:
            logger.warning("no providers with an api key")
        logger.info("initialized %d providers (%d with api key)", added, with_key)
        return added

    async def aclose(self) -> None:
        """Close every adapter's SDK client."""
        with self._lock:
            adapters = list(self._providers.values())
        for adapter in adapters:
            await adapter.deinit_llm()
