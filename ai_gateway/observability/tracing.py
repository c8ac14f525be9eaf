"""
AI Gateway - OpenTelemetry Tracing

One ``gateway.execute`` span per request with one ``upstream.<provider>``
child span per attempt, so a trace shows the whole fallback chain.

Usage:
    tracing = setup_tracing(service_version="1.0.0")

    with tracing.request_span(request) as span:
        with tracing.attempt_span("openai-main", attempt=0) as attempt:
            ...
        tracing.finish_request(span, response)
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Sequence

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter
from opentelemetry.trace import SpanKind, Status, StatusCode

from ..core.config import _is_truthy
from ..core.models import CanonicalRequest, CanonicalResponse


class TracingManager:
    """
    Owns a TracerProvider and the gateway's span conventions.

    Managers are independent; tests attach an in-memory exporter to their
    own without touching the process-wide provider.
    """

    def __init__(
        self,
        service_name: str = "ai-gateway",
        service_version: str = "1.0.0",
        exporters: Sequence[SpanExporter] = (),
        set_global: bool = False,
    ):
        self.provider = TracerProvider(
            resource=Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: service_version})
        )
        for exporter in exporters:
            self.provider.add_span_processor(SimpleSpanProcessor(exporter))
        if set_global:
            trace.set_tracer_provider(self.provider)
        self.tracer = self.provider.get_tracer("ai_gateway", service_version)

    def start_span(self, name: str, kind: SpanKind = SpanKind.INTERNAL, attributes: Optional[Dict[str, Any]] = None):
        """Start a current span; attributes set to None are left out."""
        clean = {key: value for key, value in (attributes or {}).items() if value is not None}
        return self.tracer.start_as_current_span(name, kind=kind, attributes=clean)

    def request_span(self, request: CanonicalRequest):
        return self.start_span(
            "gateway.execute",
            kind=SpanKind.SERVER,
            attributes={
                "gateway.request_id": request.request_id,
                "gateway.caller_identity": request.caller_identity,
                "gateway.task_type": request.task_type,
                "gateway.max_attempts": request.max_attempts,
                "gateway.deadline_ms": request.deadline_ms or None,
            },
        )

    @contextmanager
    def attempt_span(self, provider_id: str, attempt: int) -> Iterator[trace.Span]:
        with self.start_span(
            f"upstream.{provider_id}",
            kind=SpanKind.CLIENT,
            attributes={"ai.provider": provider_id, "gateway.attempt": attempt},
        ) as span:
            yield span

    def finish_request(self, span: trace.Span, response: CanonicalResponse):
        """Copy the outcome of a request onto its span."""
        span.set_attribute("gateway.success", response.success)
        span.set_attribute("gateway.attempt_count", response.attempt_count)
        if response.provider_id:
            span.set_attribute("ai.provider", response.provider_id)
        if not response.success:
            self.record_error(span, response.error_kind.value, response.error_message or "")

    @staticmethod
    def record_error(span: trace.Span, error_kind: str, message: str = ""):
        span.set_attribute("gateway.error_kind", error_kind)
        span.set_status(Status(StatusCode.ERROR, message or error_kind))

    def shutdown(self):
        self.provider.shutdown()


def setup_tracing(service_name: str = "ai-gateway", service_version: str = "1.0.0") -> TracingManager:
    """
    Build the server's tracing manager and install it process-wide.

    OTEL_CONSOLE_EXPORT=true prints finished spans to stdout.
    """
    exporters = [ConsoleSpanExporter()] if _is_truthy(os.getenv("OTEL_CONSOLE_EXPORT")) else []
    return TracingManager(
        service_name=service_name,
        service_version=service_version,
        exporters=exporters,
        set_global=True,
    )
