"""
Prometheus Metrics Module

HTTP request metrics plus domain metrics for tool invocations, partial
failures and orchestration passes.

Pattern: Metrics collection for observability
"""

import re
import time
from typing import Any, Callable, Optional

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


# =============================================================================
# Path Normalization (High Cardinality Prevention)
# =============================================================================

# Order matters: more specific patterns first
_PATH_PATTERNS = [
    (re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"), "/{id}"),
    (re.compile(r"/[0-9a-fA-F]{8,}(?=/|$)"), "/{id}"),
    (re.compile(r"/\d+(?=/|$)"), "/{id}"),
]


def normalize_path(path: str) -> str:
    """
    Replace dynamic path segments with placeholders.

    Tool names are a closed set and are kept as-is.

    Examples:
        >>> normalize_path("/v1/tools/advancedSearch/execute")
        '/v1/tools/advancedSearch/execute'
        >>> normalize_path("/v1/records/123e4567-e89b-12d3-a456-426614174000")
        '/v1/records/{id}'
    """
    if path == "/":
        return path
    normalized = path
    for pattern, replacement in _PATH_PATTERNS:
        normalized = pattern.sub(replacement, normalized)
    return normalized


# =============================================================================
# HTTP Metrics
# =============================================================================

REQUESTS_TOTAL = Counter(
    name="experience_discovery_requests_total",
    documentation="Total number of HTTP requests",
    labelnames=["method", "path", "status"],
)

REQUEST_DURATION_SECONDS = Histogram(
    name="experience_discovery_request_duration_seconds",
    documentation="HTTP request duration in seconds",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

REQUESTS_IN_PROGRESS = Gauge(
    name="experience_discovery_requests_in_progress",
    documentation="Number of HTTP requests currently being processed",
    labelnames=["method"],
)


# =============================================================================
# Domain Metrics
# =============================================================================

TOOL_INVOCATIONS_TOTAL = Counter(
    name="experience_discovery_tool_invocations_total",
    documentation="Tool invocations by tool and outcome",
    labelnames=["tool", "status"],
)

TOOL_DURATION_SECONDS = Histogram(
    name="experience_discovery_tool_duration_seconds",
    documentation="Tool execution duration in seconds",
    labelnames=["tool"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

PARTIAL_FAILURES_TOTAL = Counter(
    name="experience_discovery_partial_failures_total",
    documentation="Partial failures recorded in orchestration results",
    labelnames=["kind"],
)

ORCHESTRATION_PASSES_TOTAL = Counter(
    name="experience_discovery_orchestration_passes_total",
    documentation="Orchestration passes by mode and outcome",
    labelnames=["mode", "outcome"],
)


def record_tool_invocation(tool: str, status: str, duration_seconds: float) -> None:
    """Record one tool invocation."""
    TOOL_INVOCATIONS_TOTAL.labels(tool=tool, status=status).inc()
    TOOL_DURATION_SECONDS.labels(tool=tool).observe(duration_seconds)


def record_partial_failure(kind: str) -> None:
    PARTIAL_FAILURES_TOTAL.labels(kind=kind).inc()


def record_orchestration_pass(mode: str, outcome: str) -> None:
    """
    Args:
        mode: "single", "specialist" or "network"
        outcome: "completed", "partial", "terminated", "no_tool", "no_specialist" or "error"
    """
    ORCHESTRATION_PASSES_TOTAL.labels(mode=mode, outcome=outcome).inc()


# =============================================================================
# Metrics Middleware
# =============================================================================


class MetricsMiddleware:
    """
    ASGI middleware recording request count, latency and in-flight requests.

    The /metrics path itself is excluded.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        exclude_paths: Optional[list[str]] = None,
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths or ["/metrics"]

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        raw_path = scope.get("path", "/")
        if raw_path in self.exclude_paths:
            await self.app(scope, receive, send)
            return
        path = normalize_path(raw_path)

        REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start_time = time.perf_counter()
        status_code = "500"

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = str(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            REQUESTS_TOTAL.labels(method=method, path=path, status=status_code).inc()
            REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(duration)
            REQUESTS_IN_PROGRESS.labels(method=method).dec()


def generate_metrics() -> str:
    """Prometheus metrics in text format."""
    return generate_latest(REGISTRY).decode("utf-8")
