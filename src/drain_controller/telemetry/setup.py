"""OpenTelemetry setup."""

import logging
from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .. import __version__
from ..config import Settings

logger = logging.getLogger(__name__)

# Probe and scrape requests would bury the reconciliation spans
EXCLUDED_URLS = "health,ready,live,metrics"


def setup_telemetry(settings: Settings, app: FastAPI) -> Optional[TracerProvider]:
    """
    Export reconciliation spans over OTLP when tracing is enabled.

    Returns the installed provider so that it can be flushed on shutdown, or
    None when tracing is disabled.
    """
    telemetry = settings.telemetry
    if not telemetry.enabled:
        logger.info("OpenTelemetry disabled")
        return None

    provider = TracerProvider(
        resource=Resource.create({
            SERVICE_NAME: telemetry.service_name,
            SERVICE_VERSION: __version__,
        })
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=telemetry.exporter_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)

    logger.info("OpenTelemetry configured: exporting to %s", telemetry.exporter_endpoint)
    return provider
