"""
Tool Executor - validate, run and record one tool call.

The executor validates raw arguments against the tool's input model, runs
the tool under a per-call timeout with the request context attached, and
turns the outcome into an immutable ToolInvocation. Tool failures become a
typed error on the invocation; they are never raised to the caller.

Context errors are the exception: they mean the request itself is broken,
so they propagate untouched.

Pattern: Command Executor (executes tool calls as commands)
Pattern: Fail-fast validation with graceful error wrapping
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import (
    ContextError,
    DiscoveryError,
    InvalidToolArguments,
    StoreUnavailable,
    ToolExecutionFailed,
    ToolTimeout,
)
from experience_discovery.models.domain import ToolError, ToolInvocation, ToolName
from experience_discovery.observability.logging import get_logger
from experience_discovery.observability.metrics import record_tool_invocation
from experience_discovery.observability.tracing import create_span
from experience_discovery.tools.base import Tool, ToolInput
from experience_discovery.tools.registry import ToolRegistry


logger = get_logger(__name__)

# Default per-call timeout in seconds
DEFAULT_TIMEOUT = 10.0


def validate_arguments(tool: Tool, arguments: dict[str, Any]) -> ToolInput:
    """
    Validate raw arguments against the tool's input model.

    Raises:
        InvalidToolArguments: Naming the first offending field.
    """
    try:
        return tool.input_model.model_validate(arguments)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        location = f" '{field}'" if field else ""
        raise InvalidToolArguments(
            f"Invalid argument{location} for {tool.name.value}: {first['msg']}",
            tool_name=tool.name.value,
            field=field,
        ) from e


def to_typed_error(error: Exception, tool_name: str, timeout: float) -> DiscoveryError:
    """Map an exception escaping a tool onto the typed taxonomy."""
    if isinstance(error, DiscoveryError):
        return error
    if isinstance(error, TimeoutError):
        return ToolTimeout(tool_name, timeout)
    if isinstance(error, (httpx.HTTPError, OSError)):
        return StoreUnavailable(f"store request failed: {error}")
    return ToolExecutionFailed(f"{tool_name} failed: {type(error).__name__}: {error}")


# =============================================================================
# ToolExecutor Class
# =============================================================================


class ToolExecutor:
    """
    Executor for running registered tools.

    Attributes:
        registry: The ToolRegistry to look up tools from.
        timeout: Per-call timeout in seconds.

    Example:
        >>> executor = ToolExecutor(registry=build_tool_registry())
        >>> invocation = await executor.execute(
        ...     ToolName.ADVANCED_SEARCH, "call_1", {"categories": ["dreams"]}, context
        ... )
    """

    def __init__(self, registry: ToolRegistry, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.registry = registry
        self.timeout = timeout

    async def execute(
        self,
        tool_name: ToolName,
        call_id: str,
        arguments: dict[str, Any],
        context: RequestContext,
        step: int = 0,
        attempt: int = 1,
        specialist: Optional[str] = None,
    ) -> ToolInvocation:
        """
        Validate and run one tool call.

        Args:
            tool_name: Registered tool to run.
            call_id: Id of the call, echoed on the invocation.
            arguments: Raw arguments, references already resolved.
            context: Request context handed to the tool.
            step: Reasoning step that requested the call.
            attempt: 1 for the first try, 2 for a retry.
            specialist: Router specialist running the pass, if any.

        Returns:
            ToolInvocation carrying either the output or a typed error.

        Raises:
            ContextError: The context is unusable; nothing is recorded.
        """
        tool = self.registry.get(tool_name)
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()

        validated: Optional[ToolInput] = None
        output: Optional[dict[str, Any]] = None
        headline: Optional[str] = None
        error: Optional[DiscoveryError] = None

        with create_span(
            f"tool.{tool.name.value}",
            {"tool.call_id": call_id, "tool.attempt": attempt, "tool.step": step},
        ) as span:
            try:
                validated = validate_arguments(tool, arguments)
                result = await asyncio.wait_for(tool.execute(context, validated), timeout=self.timeout)
                if not isinstance(result, tool.output_model):
                    raise TypeError(f"expected {tool.output_model.__name__}, got {type(result).__name__}")
                output = result.model_dump(mode="json")
                headline = result.headline() or None
            except ContextError:
                raise
            except Exception as e:
                error = to_typed_error(e, tool.name.value, self.timeout)

            duration = time.perf_counter() - start
            status = "failed" if error else "succeeded"
            span.set_attribute("tool.status", status)
            if error:
                span.set_attribute("tool.error_kind", error.kind)

        record_tool_invocation(tool.name.value, status, duration)
        log = logger.warning if error else logger.info
        log(
            "tool_invocation",
            tool=tool.name.value,
            call_id=call_id,
            status=status,
            attempt=attempt,
            step=step,
            duration_ms=round(duration * 1000, 2),
            error_kind=error.kind if error else None,
            error=error.message if error else None,
        )

        return ToolInvocation(
            call_id=call_id,
            tool=tool.name,
            raw_arguments=arguments,
            validated_arguments=validated.model_dump(mode="json") if validated is not None else None,
            output=output,
            headline=headline,
            error=ToolError.from_exception(error) if error else None,
            started_at=started_at,
            duration_ms=round(duration * 1000, 3),
            attempt=attempt,
            step=step,
            specialist=specialist,
        )
