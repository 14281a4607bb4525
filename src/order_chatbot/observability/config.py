"""OpenTelemetry and logging configuration."""

import logging
import os
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

SERVICE_NAME = "order-chatbot"
METRIC_EXPORT_INTERVAL_MILLIS = 60000

# Libraries that log every request at INFO
QUIET_LOGGERS = ("botocore", "boto3", "urllib3")


def _service_name() -> str:
    return os.getenv("OTEL_SERVICE_NAME", SERVICE_NAME)


def _otlp_endpoint(signal: str) -> str:
    base = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318").rstrip("/")
    return f"{base}/v1/{signal}"


def get_service_resource() -> Resource:
    """Create the resource identifying this service in traces and metrics."""
    return Resource.create(
        {
            "service.name": _service_name(),
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }
    )


def build_providers(
    resource: Resource, enable_exporters: bool
) -> tuple[TracerProvider, MeterProvider]:
    """Create tracer and meter providers, exporting over OTLP/HTTP when enabled.

    Args:
        resource: Service resource attached to all telemetry
        enable_exporters: Whether spans and metrics leave the process

    Returns:
        Tuple of (tracer provider, meter provider)
    """
    tracer_provider = TracerProvider(resource=resource)
    if not enable_exporters:
        return tracer_provider, MeterProvider(resource=resource)

    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=_otlp_endpoint("traces")))
    )
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=_otlp_endpoint("metrics")),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MILLIS,
    )
    logger.info(f"Exporting spans to {_otlp_endpoint('traces')}, metrics to {_otlp_endpoint('metrics')}")
    return tracer_provider, MeterProvider(resource=resource, metric_readers=[reader])


def setup_observability(app: Any = None, enable_exporters: bool = True) -> None:
    """Install OpenTelemetry providers and auto-instrumentation.

    Exporters are always disabled when ENVIRONMENT=test.

    Args:
        app: FastAPI application to instrument, if any
        enable_exporters: Whether to export spans and metrics over OTLP
    """
    if os.getenv("ENVIRONMENT", "development") == "test":
        enable_exporters = False

    tracer_provider, meter_provider = build_providers(get_service_resource(), enable_exporters)
    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)

    # Covers every DynamoDB call made through boto3
    BotocoreInstrumentor().instrument()

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)

    logger.info(f"Observability configured for {_service_name()} (exporters: {enable_exporters})")


def configure_logging(log_level: str = "INFO") -> None:
    """Send structured JSON logs to stderr.

    Args:
        log_level: Level name such as DEBUG or INFO; unknown names fall back to INFO
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "time"},
        static_fields={"service": _service_name()},
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.info(f"JSON logging configured at {logging.getLevelName(level)}")
