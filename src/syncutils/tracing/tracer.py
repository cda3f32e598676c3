"""
OpenTelemetry tracer setup for rowsync runs.

Spans are exported over OTLP only when an endpoint is configured, so a
plain command-line run does not try to reach a collector.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

logger = logging.getLogger(__name__)

_tracer: trace.Tracer | None = None
_is_initialized = False


def _build_provider(
    service_name: str, otlp_endpoint: str | None, console_export: bool, sampling_rate: float
) -> tuple[TracerProvider, list[str]]:
    provider = TracerProvider(
        resource=Resource(attributes={SERVICE_NAME: service_name}),
        sampler=TraceIdRatioBased(sampling_rate),
    )
    exporters = []

    if otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        exporters.append(f"OTLP {otlp_endpoint}")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("console")

    return provider, exporters


def initialize_tracing(
    service_name: str = "rowsync",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0,
) -> trace.Tracer:
    """
    Install a tracer provider for this process (once) and return the tracer.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP gRPC collector (default: ``OTLP_ENDPOINT`` env var)
        console_export: Also print finished spans (or set ``TRACE_CONSOLE=true``)
        sampling_rate: Fraction of traces kept, 0.0-1.0
    """
    global _tracer, _is_initialized

    if _is_initialized and _tracer is not None:
        return _tracer

    provider, exporters = _build_provider(
        service_name,
        otlp_endpoint if otlp_endpoint is not None else os.getenv("OTLP_ENDPOINT"),
        console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true",
        sampling_rate,
    )
    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(service_name)
    _is_initialized = True

    logger.debug(
        f"Tracing initialized for {service_name}: "
        f"exporters={', '.join(exporters) or 'none'}, sampling={sampling_rate}"
    )
    return _tracer


def get_tracer() -> trace.Tracer:
    """Return the process tracer, initializing tracing with defaults on first use."""
    if _tracer is None:
        return initialize_tracing()
    return _tracer


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down."""
    global _is_initialized, _tracer

    if not _is_initialized:
        return

    provider = trace.get_tracer_provider()
    try:
        if hasattr(provider, "shutdown"):
            provider.shutdown()
    except Exception as e:
        logger.error(f"Error during tracing shutdown: {e}")
    finally:
        _is_initialized = False
        _tracer = None
