"""
llmgw - Observability Module

- Prometheus metrics (Counter, Histogram, Gauge)
- OpenTelemetry spans
- Structured JSON logging with stream context injection

Usage:
    from llmgw.observability import get_logger, get_metrics, get_tracer

    logger = get_logger(__name__)
    tracer = get_tracer()
    metrics = get_metrics()
"""

from .metrics import (
    EventOutcome,
    MetricsCollector,
    get_metrics,
    setup_metrics,
    metrics_payload,
)
from .tracing import (
    TracingManager,
    get_tracer,
    setup_tracing,
    setup_tracing_from_settings,
)
from .logging import (
    LogContext,
    StructuredLogger,
    TimedOperation,
    get_logger,
    setup_logging,
)

__all__ = [
    # Metrics
    "EventOutcome",
    "MetricsCollector",
    "get_metrics",
    "setup_metrics",
    "metrics_payload",
    # Tracing
    "TracingManager",
    "get_tracer",
    "setup_tracing",
    "setup_tracing_from_settings",
    # Logging
    "LogContext",
    "StructuredLogger",
    "TimedOperation",
    "get_logger",
    "setup_logging",
]
