"""
AI Gateway - Observability Module

- Prometheus metrics (Counter, Histogram, Gauge)
- OpenTelemetry tracing
- Structured JSON logging with context injection
"""

from .metrics import (
    MetricsCollector,
    setup_metrics,
    metrics_endpoint,
)
from .tracing import (
    TracingManager,
    setup_tracing,
)
from .logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    log_context,
    setup_logging,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "setup_metrics",
    "metrics_endpoint",
    # Tracing
    "TracingManager",
    "setup_tracing",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "log_context",
    "setup_logging",
]
