"""
Tracing for the Legal Text Analyzer, shipped to Axiom over OTLP/HTTP.

Spans recorded by the service:
    HTTP request spans   FastAPI instrumentation; POST /api/v1/analyze-text
                         adds analysis.text_length
    worker.process_job   one per queued analysis attempt, with analysis.id,
                         analysis.text_length, analysis.attempts and
                         analysis.priority
    analysis.chunk       one per chunk of a chunked analysis, with
                         analysis.chunk_index and analysis.chunk_length

Without AXIOM_API_TOKEN no provider is installed and the spans are no-ops.
"""

import logging
import os

from fastapi import FastAPI

from legal_analyzer.core.config import Settings

logger = logging.getLogger(__name__)

# Module-level reference for shutdown
_tracer_provider = None


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    """
    Configure OpenTelemetry and instrument the FastAPI app.

    No-ops if AXIOM_API_TOKEN is not set.
    """
    if not settings.axiom_api_token:
        logger.info("AXIOM_API_TOKEN not set, telemetry disabled")
        return

    # Exclude /health from tracing to avoid noise
    os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", "/health")

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        global _tracer_provider

        resource = Resource(attributes={SERVICE_NAME: settings.otel_service_name})
        provider = TracerProvider(resource=resource)

        endpoint = f"https://{settings.axiom_domain.rstrip('/')}/v1/traces"
        otlp_exporter = OTLPSpanExporter(
            endpoint=endpoint,
            headers={
                "Authorization": f"Bearer {settings.axiom_api_token}",
                "X-Axiom-Dataset": settings.axiom_dataset,
            },
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        FastAPIInstrumentor.instrument_app(app)

        logger.info(
            f"Telemetry enabled: service={settings.otel_service_name}, "
            f"dataset={settings.axiom_dataset}"
        )
    except ImportError as e:
        logger.warning(f"OpenTelemetry packages not installed: {e}")
    except Exception as e:
        logger.warning(f"Failed to setup telemetry: {e}")


def shutdown_telemetry() -> None:
    """Flush and shut down the tracer provider. Safe to call if telemetry was disabled."""
    global _tracer_provider
    if _tracer_provider is None:
        return
    try:
        _tracer_provider.force_flush()
        _tracer_provider.shutdown()
        logger.info("Telemetry shutdown complete")
    except Exception as e:
        logger.warning(f"Error during telemetry shutdown: {e}")
    finally:
        _tracer_provider = None
