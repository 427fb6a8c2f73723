"""
OpenTelemetry Configuration

Sets up distributed tracing and logging for the delivery platform API.
"""

import os
import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

from .. import __version__

logger = logging.getLogger(__name__)

SAMPLING_RATIOS = {
    'production': 0.1,
    'staging': 0.5,
}


def setup_observability() -> bool:
    """
    Initialize OpenTelemetry tracing based on environment configuration.

    Returns:
        True when a tracer provider was installed
    """
    environment = os.getenv('ENVIRONMENT', 'development')
    otel_enabled = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'
    service_version = os.getenv('SERVICE_VERSION', __version__)

    setup_structured_logging(environment)

    if not otel_enabled:
        logger.info("OpenTelemetry disabled by OTEL_ENABLED")
        return False

    sampler = TraceIdRatioBased(SAMPLING_RATIOS.get(environment, 1.0))

    resource = Resource.create({
        "service.name": "entregas-api",
        "service.version": service_version,
        "deployment.environment": environment
    })

    tracer_provider = TracerProvider(sampler=sampler, resource=resource)

    otlp_endpoint = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
    if otlp_endpoint:
        headers = None
        api_key = os.getenv('OTEL_API_KEY')
        if api_key:
            headers = {"Authorization": f"Bearer {api_key}"}
        tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers),
                max_export_batch_size=512
            )
        )
    elif environment == 'development' and os.getenv('OTEL_CONSOLE_EXPORT', 'false').lower() == 'true':
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(tracer_provider)
    logger.info(
        "OpenTelemetry configured",
        extra={"environment": environment, "otlp_endpoint": otlp_endpoint}
    )
    return True


def setup_structured_logging(environment: str):
    """Configure root logging with environment specific verbosity."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.DEBUG
    }.get(environment, logging.INFO)

    level_override = os.getenv('LOG_LEVEL')
    if level_override:
        log_level = getattr(logging, level_override.upper(), log_level)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
        handlers=[logging.StreamHandler()]
    )

    # Third party clients are noisy below WARNING
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('pika').setLevel(logging.WARNING if environment == 'development' else logging.ERROR)
    logging.getLogger('pymongo').setLevel(logging.WARNING)
