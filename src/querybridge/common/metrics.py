"""OpenTelemetry instruments for query execution and backend connections."""
from typing import Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, MetricExporter, PeriodicExportingMetricReader

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_meter = metrics.get_meter("querybridge")

# Seconds from dispatch to result, per query kind and datasource.
query_duration_histogram = _meter.create_histogram(
    "querybridge.query.duration", unit="s", description="Wall time of one query"
)
# Queries resolved with an error, by error code.
query_failure_counter = _meter.create_counter(
    "querybridge.query.failures", unit="1", description="Queries resolved with an error"
)
handle_created_counter = _meter.create_counter(
    "querybridge.handle.created", unit="1", description="Backend handles opened by instance managers"
)
breaker_state_counter = _meter.create_counter(
    "querybridge.breaker.state_change", unit="1", description="Datasource circuit breaker transitions"
)


def _exporter(exporter_type: str, otlp_endpoint: Optional[str]) -> Optional[MetricExporter]:
    if exporter_type == "console":
        return ConsoleMetricExporter()
    if exporter_type == "otlp":
        return OTLPMetricExporter(endpoint=otlp_endpoint or DEFAULT_OTLP_ENDPOINT)
    return None


def configure_metrics(exporter_type: str = "none", otlp_endpoint: Optional[str] = None):
    """Installs a global MeterProvider exporting to the console or an OTLP collector.

    'none' (or any unknown value) leaves the no-op provider in place.
    """
    exporter = _exporter(exporter_type, otlp_endpoint)
    if exporter is None:
        return
    provider = MeterProvider(metric_readers=[PeriodicExportingMetricReader(exporter)])
    metrics.set_meter_provider(provider)
