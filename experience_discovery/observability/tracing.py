"""
OpenTelemetry Tracing Module

Spans are opened for every HTTP request, orchestration pass and tool call.
Without setup_tracing() the OpenTelemetry API hands out no-op tracers, so
library code can always open spans.

Pattern: Distributed tracing for observability
"""

from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagate import extract
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

from experience_discovery.observability.logging import clear_correlation_id, set_correlation_id


TRACER_NAME = "experience_discovery"


def setup_tracing(
    service_name: str = "experience-discovery",
    exporter: Optional[SpanExporter] = None,
) -> TracerProvider:
    """
    Configure the global TracerProvider.

    Args:
        service_name: Name of the service for resource identification
        exporter: Span exporter (default: console)

    Returns:
        Configured TracerProvider
    """
    resource = Resource.create({SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter or ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str = TRACER_NAME) -> Tracer:
    return trace.get_tracer(name)


def get_current_trace_id() -> Optional[str]:
    """32-character hex trace id of the active span, or None."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.trace_id == 0:
        return None
    return format(span_context.trace_id, "032x")


def extract_trace_context(headers: dict[str, Any]) -> Context:
    return extract(headers)


def _headers_to_dict(headers: list[tuple[bytes, bytes]]) -> dict[str, str]:
    """Convert ASGI headers to dict for propagation."""
    return {key.decode("utf-8").lower(): value.decode("utf-8") for key, value in headers}


class TracingMiddleware:
    """
    ASGI middleware opening a server span per HTTP request.

    The span's trace id becomes the logging correlation id for the request.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        exclude_paths: Optional[list[str]] = None,
        tracer_name: str = "experience_discovery.http",
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths or []
        self.tracer = get_tracer(tracer_name)

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
        path = scope.get("path", "/")
        if path in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        parent_context = extract_trace_context(_headers_to_dict(scope.get("headers", [])))
        status_code = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
            await send(message)

        with self.tracer.start_as_current_span(
            f"{method} {path}",
            context=parent_context,
            kind=SpanKind.SERVER,
        ) as span:
            trace_id = get_current_trace_id()
            if trace_id:
                set_correlation_id(trace_id)
            span.set_attribute("http.method", method)
            span.set_attribute("http.route", path)
            try:
                await self.app(scope, receive, send_wrapper)
                span.set_attribute("http.status_code", status_code)
                span.set_status(Status(StatusCode.ERROR if status_code >= 400 else StatusCode.OK))
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise
            finally:
                clear_correlation_id()


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict[str, Any]] = None,
) -> Generator[Span, None, None]:
    """
    Context manager for creating an internal span.

    Example:
        >>> with create_span("tool.advancedSearch", {"tool.call_id": "call_1"}) as span:
        ...     span.set_attribute("tool.status", "succeeded")
    """
    with get_tracer().start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span
