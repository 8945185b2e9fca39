"""OpenTelemetry spans around transcoding.

Only ``opentelemetry-api`` is a hard dependency.  Until an SDK provider is
installed the API hands out no-op tracers, so :func:`transcode_span` is
safe to leave in hot paths.  :func:`configure_telemetry` installs a real
provider and needs the ``otel`` extra (``pip install chatwire[otel]``).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Span names and attribute keys
# ---------------------------------------------------------------------------

SPAN_TRANSCODE_REQUEST = "chatwire.transcode.request"
SPAN_TRANSCODE_RESPONSE = "chatwire.transcode.response"

ATTR_SOURCE = "chatwire.source"
ATTR_TARGET = "chatwire.target"
ATTR_KIND = "chatwire.kind"
ATTR_MODEL = "chatwire.model"
ATTR_MESSAGE_COUNT = "chatwire.messages"
ATTR_TOOL_COUNT = "chatwire.tools"
ATTR_SPLIT = "chatwire.split_parallel_tool_calls"
ATTR_FINISH_REASON = "chatwire.finish_reason"
ATTR_TOKENS_INPUT = "chatwire.tokens.input"
ATTR_TOKENS_OUTPUT = "chatwire.tokens.output"

_INSTRUMENTATION_NAME = "chatwire"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Tracer for *name*; a no-op tracer until an SDK provider is set."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


@contextmanager
def transcode_span(
    tracer: trace.Tracer,
    name: str,
    *,
    source: str,
    target: str,
    kind: str,
) -> Iterator[trace.Span]:
    """Open *name* with the pair attributes every transcode span carries."""
    with tracer.start_as_current_span(name) as span:
        set_attributes(span, {ATTR_SOURCE: source, ATTR_TARGET: target, ATTR_KIND: kind})
        yield span


def set_attributes(span: trace.Span, attributes: dict[str, Any]) -> None:
    """Set every attribute whose value is not ``None``."""
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


# ---------------------------------------------------------------------------
# SDK setup
# ---------------------------------------------------------------------------

_SDK_HINT = "Install it with: pip install chatwire[otel]"


def configure_telemetry(
    *,
    service_name: str = "chatwire",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider for the whole process.

    Finished spans go to stdout when *export_to_console* is set and to an
    OTLP/gRPC collector when *otlp_endpoint* is given.  Raises
    ``ImportError`` naming the missing package when the ``otel`` extra is
    not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        raise ImportError(f"opentelemetry-sdk is required for configure_telemetry(). {_SDK_HINT}") from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if export_to_console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(_otlp_exporter(otlp_endpoint)))
    trace.set_tracer_provider(provider)


def _otlp_exporter(endpoint: str) -> Any:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
            OTLPSpanExporter,
        )
    except ImportError as exc:
        raise ImportError(f"opentelemetry-exporter-otlp is required for OTLP export. {_SDK_HINT}") from exc
    return OTLPSpanExporter(endpoint=endpoint)
