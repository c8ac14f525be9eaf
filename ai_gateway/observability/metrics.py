"""
AI Gateway - Prometheus Metrics

Metrics exposed:
- gateway_requests_total: Counter of gateway requests by outcome and error kind
- gateway_request_duration_seconds: Histogram of end-to-end request latency
- gateway_upstream_attempts_total: Counter of upstream attempts per provider
- gateway_upstream_latency_seconds: Histogram of upstream call latency
- gateway_fallbacks_total: Counter of fallbacks away from a provider
- gateway_rate_limit_rejections_total: Counter of admission rejections
- gateway_circuit_breaker_state: Gauge of circuit state per provider
- gateway_in_flight_requests: Gauge of upstream calls in progress
- gateway_routing_decisions_total: Counter of provider selections

Usage:
    from ai_gateway.observability.metrics import setup_metrics, metrics_endpoint

    metrics = setup_metrics()
    metrics.record_request(outcome="success", error_kind=None, duration_seconds=0.8)

    @app.get("/metrics")
    async def metrics():
        return metrics_endpoint(metrics)

Tests should build their own collector on a fresh CollectorRegistry.
"""

from typing import Optional

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

# 0 = closed (healthy), 1 = half-open, 2 = open (unhealthy)
CIRCUIT_STATE_VALUES = {
    "closed": 0,
    "half_open": 1,
    "open": 2,
}


class MetricsCollector:
    """Central metrics collector using the Prometheus client."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.info = Info(
            "gateway",
            "AI gateway service information",
            registry=registry,
        )
        self.info.info({
            "version": "1.0.0",
            "service": "ai-gateway",
        })

        self.requests_total = Counter(
            "gateway_requests_total",
            "Total number of gateway requests",
            labelnames=["outcome", "error_kind"],
            registry=registry,
        )

        # AI calls typically range from 0.1s to 60s+
        self.request_duration = Histogram(
            "gateway_request_duration_seconds",
            "End-to-end request duration in seconds",
            labelnames=["outcome"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf")),
            registry=registry,
        )

        self.upstream_attempts = Counter(
            "gateway_upstream_attempts_total",
            "Upstream attempts per provider",
            labelnames=["provider", "outcome", "error_kind"],
            registry=registry,
        )

        self.upstream_latency = Histogram(
            "gateway_upstream_latency_seconds",
            "Upstream call latency in seconds",
            labelnames=["provider"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
            registry=registry,
        )

        self.fallbacks = Counter(
            "gateway_fallbacks_total",
            "Fallbacks away from a failed provider",
            labelnames=["from_provider", "reason"],
            registry=registry,
        )

        self.rate_limit_rejections = Counter(
            "gateway_rate_limit_rejections_total",
            "Requests rejected by the admission window",
            registry=registry,
        )

        self.circuit_breaker_state = Gauge(
            "gateway_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=half-open, 2=open)",
            labelnames=["provider"],
            registry=registry,
        )

        self.in_flight = Gauge(
            "gateway_in_flight_requests",
            "Upstream calls currently in progress",
            labelnames=["provider"],
            registry=registry,
        )

        self.routing_decisions = Counter(
            "gateway_routing_decisions_total",
            "Provider selections by strategy",
            labelnames=["strategy", "selected_provider"],
            registry=registry,
        )

    def record_request(
        self,
        outcome: str,
        error_kind: Optional[str],
        duration_seconds: float,
    ):
        """Record a completed gateway request."""
        self.requests_total.labels(
            outcome=outcome,
            error_kind=error_kind or "none",
        ).inc()
        self.request_duration.labels(outcome=outcome).observe(duration_seconds)

    def record_attempt(
        self,
        provider: str,
        success: bool,
        latency_seconds: float,
        error_kind: Optional[str] = None,
    ):
        """Record one upstream attempt."""
        self.upstream_attempts.labels(
            provider=provider,
            outcome="success" if success else "failure",
            error_kind=error_kind or "none",
        ).inc()
        self.upstream_latency.labels(provider=provider).observe(latency_seconds)

    def record_fallback(self, from_provider: str, reason: str):
        """Record a fallback away from a provider."""
        self.fallbacks.labels(from_provider=from_provider, reason=reason).inc()

    def record_rate_limit_hit(self):
        # Not labelled by caller: identities are unbounded
        self.rate_limit_rejections.inc()

    def set_circuit_breaker_state(self, provider: str, state):
        """Update circuit breaker gauge from a CircuitState (or its value)."""
        value = getattr(state, "value", state)
        self.circuit_breaker_state.labels(provider=provider).set(
            CIRCUIT_STATE_VALUES.get(value, 0)
        )

    def remove_provider(self, provider: str):
        """Drop per-provider gauge series after deregistration."""
        for gauge in (self.circuit_breaker_state, self.in_flight):
            try:
                gauge.remove(provider)
            except KeyError:
                pass

    def record_routing_decision(self, strategy: str, selected_provider: str):
        self.routing_decisions.labels(
            strategy=strategy,
            selected_provider=selected_provider,
        ).inc()

    def track_in_flight(self, provider: str) -> "ActiveRequestTracker":
        """Context manager to track in-progress upstream calls."""
        return ActiveRequestTracker(self, provider)


class ActiveRequestTracker:
    """Context manager for tracking in-flight upstream calls."""

    def __init__(self, collector: MetricsCollector, provider: str):
        self.collector = collector
        self.provider = provider

    def __enter__(self):
        self.collector.in_flight.labels(provider=self.provider).inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.in_flight.labels(provider=self.provider).dec()


_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times with the same registry.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    return _metrics_instance


def metrics_endpoint(collector: Optional[MetricsCollector] = None) -> Response:
    """Prometheus scrape response for the collector's registry."""
    registry = collector.registry if collector is not None else REGISTRY
    return Response(
        content=generate_latest(registry),
        media_type=CONTENT_TYPE_LATEST,
    )
