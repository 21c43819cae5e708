# ==== OPENTELEMETRY TRACING CONFIGURATION ==== #

"""
OpenTelemetry tracing configuration for the procurement core.

Sets up OTLP span export when an endpoint is configured and instruments the
Redis client used by the Redis record store.
"""

from typing import Dict, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.redis import RedisInstrumentor

from procurement_core.observability.logging import get_logger
from procurement_core.settings import settings


logger = get_logger(__name__)


# ==== TRACING INITIALIZATION ==== #

def init_tracing(service_name: str) -> None:
    """
    Initialize OpenTelemetry tracing with an OTLP exporter.

    Does nothing when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is unset so local runs
    and tests need no collector.

    Args:
        service_name (str): Name of the service for tracing identification
    """
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT
    headers = settings.OTEL_EXPORTER_OTLP_HEADERS

    if not endpoint:
        return

    resource_attrs = _parse_resource_attributes(settings.OTEL_RESOURCE_ATTRIBUTES or "")
    resource_attrs["service.name"] = settings.OTEL_SERVICE_NAME or service_name

    provider = TracerProvider(resource=Resource.create(resource_attrs))
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers=_parse_headers(headers)
    )

    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    try:
        RedisInstrumentor().instrument()
    except Exception as e:
        logger.warning("Failed to instrument redis client", error=str(e))


def _parse_headers(headers_str: str | None) -> Dict[str, str]:
    """Parse OTLP headers from a comma-separated key=value string."""
    headers = {}
    if not headers_str:
        return headers

    for part in headers_str.split(","):
        if "=" in part:
            key, value = part.split("=", 1)
            headers[key.strip()] = value.strip()

    return headers


def _parse_resource_attributes(attrs_str: str) -> Dict[str, Any]:
    """Parse OTEL resource attributes from a comma-separated key=value string."""
    attrs = {}
    if not attrs_str:
        return attrs

    for part in filter(None, map(str.strip, attrs_str.split(","))):
        if "=" in part:
            key, value = part.split("=", 1)
            attrs[key] = value

    return attrs


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)
