"""OpenTelemetry tracing for provider calls and registry bootstrap.

Spans are created through the OpenTelemetry API only.  Until
:func:`configure_telemetry` installs an SDK tracer provider every span is a
no-op, so instrumented code pays nothing when tracing is off.

Usage::

    from modelhub.utils.telemetry import ATTR_PROVIDER, get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("inference.fetch_completion") as span:
        span.set_attribute(ATTR_PROVIDER, "openai")

The SDK and exporter come with the ``otel`` extra:
``pip install modelhub[otel]``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from modelhub.inference.models import Usage
    from modelhub.settings import TelemetrySettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_PROVIDER = "modelhub.provider"
ATTR_PROVIDER_COUNT = "modelhub.provider.count"
ATTR_SDK_TYPE = "modelhub.sdk_type"
ATTR_MODEL = "modelhub.model"
ATTR_STREAM = "modelhub.stream"
ATTR_MESSAGE_COUNT = "modelhub.messages"
ATTR_TOKENS_INPUT = "modelhub.tokens.input"
ATTR_TOKENS_CACHED = "modelhub.tokens.cached"
ATTR_TOKENS_OUTPUT = "modelhub.tokens.output"
ATTR_TOKENS_REASONING = "modelhub.tokens.reasoning"
ATTR_ERROR = "modelhub.error"

_INSTRUMENTATION_NAME = "modelhub"


def get_tracer(name: str | None = None) -> trace.Tracer:
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def record_usage(span: trace.Span, usage: Usage | None) -> None:
    """Copy provider token counts onto *span*."""
    if usage is None:
        return
    span.set_attribute(ATTR_TOKENS_INPUT, usage.input_tokens_total)
    span.set_attribute(ATTR_TOKENS_CACHED, usage.input_tokens_cached)
    span.set_attribute(ATTR_TOKENS_OUTPUT, usage.output_tokens)
    span.set_attribute(ATTR_TOKENS_REASONING, usage.reasoning_tokens)


def configure_telemetry(
    settings: TelemetrySettings,
    *,
    service_name: str = "modelhub",
    export_to_console: bool = False,
) -> bool:
    """Install an SDK tracer provider when *settings* enable tracing.

    Spans go to ``settings.otlp_endpoint`` over OTLP/gRPC when one is set,
    and to stdout when *export_to_console* is true.

    Returns:
        ``True`` if a tracer provider was installed.

    Raises:
        ImportError: If tracing is enabled but ``opentelemetry-sdk`` (or the
            OTLP exporter, when an endpoint is set) is not installed.
    """
    if not settings.enabled:
        return False

    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        raise ImportError(
            "telemetry is enabled but opentelemetry-sdk is missing; "
            "install it with: pip install modelhub[otel]"
        ) from exc

    provider: Any = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if export_to_console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if settings.otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
                OTLPSpanExporter,
            )
        except ImportError as exc:
            raise ImportError(
                "an OTLP endpoint is set but opentelemetry-exporter-otlp is missing; "
                "install it with: pip install modelhub[otel]"
            ) from exc
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )

    trace.set_tracer_provider(provider)
    logger.info("tracing enabled (otlp endpoint: %s)", settings.otlp_endpoint or "none")
    return True
