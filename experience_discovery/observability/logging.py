"""
Structured Logging Module

structlog renders every event as one JSON object on stdout. A correlation
id held in a contextvar is stamped onto each event; the orchestrator sets
it to the request's trace id for the whole pass, so the events of one
request group together even when its tool calls run concurrently.

Pattern: Structured logging for observability
Pattern: Singleton configuration (configure once at startup)
"""

import contextvars
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor


_configured: bool = False


# =============================================================================
# Correlation ID
# =============================================================================

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "experience_discovery_correlation_id", default=None
)


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """The correlation id of the running request, or None outside one."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


@contextmanager
def correlation_id_context(correlation_id: Optional[str]) -> Generator[None, None, None]:
    """
    Use ``correlation_id`` inside the block and restore the previous id after.

    Passing None keeps whatever id is already set (the HTTP middleware's,
    typically).

    Example:
        >>> with correlation_id_context(context.trace_id):
        ...     logger.info("orchestration_started")
    """
    if correlation_id is None:
        yield
        return
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


@contextmanager
def bound_fields(**fields: Any) -> Generator[None, None, None]:
    """Attach key/value fields to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield


# =============================================================================
# Processors
# =============================================================================


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    current = get_correlation_id()
    if current is not None:
        event_dict["correlation_id"] = current
    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """UTC timestamp in ISO 8601."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def rename_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Emit ``level`` instead of structlog's ``log_level`` key."""
    level = event_dict.pop("log_level", None)
    if level is not None:
        event_dict["level"] = level
    return event_dict


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """
    Install the JSON processor chain.

    Only the first call takes effect; ``force=True`` reconfigures (tests
    use it to redirect output into a buffer).

    Args:
        level: Minimum level name; unknown names fall back to INFO.
        stream: Where rendered events are written (default: sys.stdout).
        force: Reconfigure even if already configured.
    """
    global _configured

    if _configured and not force:
        return

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_timestamp,
        add_correlation_id,
        rename_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(default=str),
    ]

    minimum = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(minimum),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=False,
    )

    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger with ``logger=<name>`` bound.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("tool_invocation", tool="advancedSearch", duration_ms=12.5)
    """
    configure_logging()
    return structlog.get_logger().bind(logger=name)
