import logging
from typing import Optional

from opentelemetry import trace, _logs
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor

from hybrid_backtest.core.config import settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Install a stream handler on the root logger at the configured level."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


def build_resource(service_name: Optional[str] = None) -> Resource:
    """Service identity attached to every exported span and log record."""
    return Resource(
        attributes={
            SERVICE_NAME: service_name or settings.PROJECT_NAME,
            SERVICE_VERSION: settings.VERSION,
            DEPLOYMENT_ENVIRONMENT: settings.ENV,
        }
    )


def setup_telemetry(
    service_name: Optional[str] = None, endpoint: Optional[str] = None
) -> bool:
    """
    Sets up OpenTelemetry Tracing and Logging.

    Without an OTLP endpoint nothing is installed and the API's no-op
    tracer stays in place, so spans in the engine cost nothing.
    """
    endpoint = endpoint or settings.OTEL_EXPORTER_OTLP_ENDPOINT

    if not endpoint:
        logger.info("Telemetry: OTLP endpoint not set. Skipping setup.")
        return False

    resource = build_resource(service_name)
    logger.info(
        f"Telemetry: Initializing for {resource.attributes[SERVICE_NAME]} "
        f"({settings.ENV}) at {endpoint}"
    )

    # --- TRACING ---
    trace_exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(tracer_provider)

    # --- LOGGING ---
    log_exporter = OTLPLogExporter(endpoint=f"{endpoint}/v1/logs")
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
    _logs.set_logger_provider(logger_provider)

    # Forward standard logging records to the collector
    handler = LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
    logging.getLogger().addHandler(handler)

    logger.info("Telemetry: OTLP Setup Complete (Trace, Logs)")
    return True
