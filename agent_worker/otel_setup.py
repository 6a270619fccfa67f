import logging

from opentelemetry import trace
from opentelemetry.metrics import set_meter_provider
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as OTLPMetricExporterGRPC
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as OTLPMetricExporterHTTP
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as OTLPSpanExporterGRPC
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as OTLPSpanExporterHTTP
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


def _parse_pairs(val: str | None) -> dict:
    """Parse ``k1=v1,k2=v2`` as used by OTEL_* header and attribute variables."""
    if not val:
        return {}
    pairs = {}
    for part in val.split(","):
        if "=" in part:
            k, v = part.split("=", 1)
            pairs[k.strip()] = v.strip()
    return pairs


def init_tracing(settings: Settings | None = None, service_name: str | None = None) -> None:
    """Install OTLP trace and metric exporters and instrument aiohttp clients."""
    settings = settings or get_settings()
    svc = service_name or settings.OTEL_SERVICE_NAME

    base_attrs = {
        "service.name": svc,
        "service.namespace": settings.OTEL_SERVICE_NAMESPACE,
    }
    base_attrs.update(_parse_pairs(settings.OTEL_RESOURCE_ATTRIBUTES))
    resource = Resource.create(base_attrs)

    protocol = (settings.OTEL_EXPORTER_OTLP_PROTOCOL or "grpc").lower()
    headers = _parse_pairs(settings.OTEL_EXPORTER_OTLP_HEADERS) or None
    insecure = bool(settings.OTEL_EXPORTER_OTLP_INSECURE)

    provider = TracerProvider(resource=resource)
    if protocol in ("http", "http/protobuf"):
        endpoint = (
            settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT
            or settings.OTEL_EXPORTER_OTLP_ENDPOINT
            or "http://localhost:4318/v1/traces"
        )
        span_exporter = OTLPSpanExporterHTTP(endpoint=endpoint, headers=headers)
        logger.info(f"OTel traces: HTTP exporter configured -> {endpoint}")
    else:
        endpoint = (
            settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT
            or settings.OTEL_EXPORTER_OTLP_ENDPOINT
            or "http://localhost:4317"
        )
        span_exporter = OTLPSpanExporterGRPC(endpoint=endpoint, insecure=insecure, headers=headers)
        logger.info(f"OTel traces: gRPC exporter configured -> {endpoint} (insecure={insecure})")

    provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(provider)

    try:
        if protocol in ("http", "http/protobuf"):
            metrics_endpoint = (
                settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT
                or settings.OTEL_EXPORTER_OTLP_ENDPOINT
                or "http://localhost:4318/v1/metrics"
            )
            metrics_exporter = OTLPMetricExporterHTTP(endpoint=metrics_endpoint, headers=headers)
        else:
            metrics_endpoint = (
                settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT
                or settings.OTEL_EXPORTER_OTLP_ENDPOINT
                or "http://localhost:4317"
            )
            metrics_exporter = OTLPMetricExporterGRPC(endpoint=metrics_endpoint, insecure=insecure, headers=headers)
        reader = PeriodicExportingMetricReader(metrics_exporter)
        set_meter_provider(MeterProvider(metric_readers=[reader], resource=resource))
    except Exception:
        logger.warning("OTel metrics exporter setup failed", exc_info=True)

    try:
        AioHttpClientInstrumentor().instrument()
    except Exception:
        logger.warning("aiohttp client instrumentation failed", exc_info=True)

    logging.getLogger("opentelemetry").setLevel(logging.WARNING)
    logging.getLogger("opentelemetry.exporter").setLevel(logging.ERROR)
