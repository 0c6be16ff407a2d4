"""
Observability Package

This package provides observability infrastructure including:
- Structured JSON logging with correlation ids (structlog)
- Prometheus metrics
- OpenTelemetry tracing
"""

from experience_discovery.observability.logging import (
    clear_correlation_id,
    configure_logging,
    correlation_id_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from experience_discovery.observability.metrics import (
    MetricsMiddleware,
    generate_metrics,
    record_orchestration_pass,
    record_partial_failure,
    record_tool_invocation,
)
from experience_discovery.observability.tracing import (
    TracingMiddleware,
    create_span,
    extract_trace_context,
    get_current_trace_id,
    get_tracer,
    setup_tracing,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    # Metrics
    "MetricsMiddleware",
    "generate_metrics",
    "record_tool_invocation",
    "record_partial_failure",
    "record_orchestration_pass",
    # Tracing
    "TracingMiddleware",
    "setup_tracing",
    "get_tracer",
    "get_current_trace_id",
    "extract_trace_context",
    "create_span",
]
