"""OpenTelemetry tracing for query execution."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.trace import Span, Tracer

from querybridge.common.metrics import DEFAULT_OTLP_ENDPOINT


def get_tracer() -> Tracer:
    return trace.get_tracer("querybridge")


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Span]:
    """Runs the block inside a new current span.

    Attributes whose value is None are skipped; everything else must be an
    OpenTelemetry-compatible primitive.
    """
    with get_tracer().start_as_current_span(name) as current:
        for key, value in (attributes or {}).items():
            if value is not None:
                current.set_attribute(key, value)
        yield current


def _span_exporter(exporter_type: str, otlp_endpoint: Optional[str]) -> Optional[SpanExporter]:
    if exporter_type == "console":
        return ConsoleSpanExporter()
    if exporter_type == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        return OTLPSpanExporter(endpoint=otlp_endpoint or DEFAULT_OTLP_ENDPOINT)
    return None


def configure_tracing(exporter_type: str = "none", otlp_endpoint: Optional[str] = None):
    """Installs a global TracerProvider; 'none' keeps the no-op tracer."""
    exporter = _span_exporter(exporter_type, otlp_endpoint)
    if exporter is None:
        return
    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
