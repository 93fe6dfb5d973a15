"""
Integration Hub OpenTelemetry setup.

- One tracer provider per process, tagged with the service name
- Spans per adapter action (``integration.<provider>.<action>``), opened in
  IntegrationAdapter.execute_action
- OTLP export when an endpoint is configured and the exporter extra is installed
"""
from __future__ import annotations
from typing import Optional
import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)


def setup_otel(
    service_name: str = "integration-hub",
    endpoint: Optional[str] = None,
):
    """Install a tracer provider; returns the hub tracer."""
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    otlp_endpoint = endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            # Exporter is an optional extra; spans are still created, just not shipped
            logger.warning("OTLP endpoint set but opentelemetry-exporter-otlp is not installed")
        else:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(service_name)


def create_webhook_span(tracer, integration_id: str, event_type: str):
    """Span for one inbound provider webhook."""
    if tracer is None:
        tracer = trace.get_tracer("hub.integrations")
    return tracer.start_as_current_span(
        f"webhook.inbound.{event_type}",
        attributes={
            "integration.id": integration_id,
            "webhook.event_type": event_type,
        },
    )
