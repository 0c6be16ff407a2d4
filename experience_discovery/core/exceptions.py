"""
Custom exceptions for Experience Discovery.

This module provides the typed error taxonomy shared by tools, the
orchestrator and the HTTP layer. Every exception inherits from
DiscoveryError and carries an ErrorCode plus an ErrorCategory so callers
(and the reasoning engine, on a retry) can branch on the kind of failure
instead of parsing messages.

Categories:
- context: fatal to the request, never contained
- tool_input: local to one tool call, rejected before execute runs
- tool_domain: expected conditions reported by a tool
- execution: transient runtime conditions, retried once when budget allows
- orchestration: terminate the current pass, partial results are kept
"""

from enum import Enum
from typing import Any


# =============================================================================
# Error Codes / Categories
# =============================================================================


class ErrorCategory(str, Enum):
    """Where in the request lifecycle an error originates."""

    CONTEXT = "context"
    TOOL_INPUT = "tool_input"
    TOOL_DOMAIN = "tool_domain"
    EXECUTION = "execution"
    ORCHESTRATION = "orchestration"


class ErrorCode(str, Enum):
    """
    Error codes for Experience Discovery exceptions.

    The values double as the error kind reported in partial failures.
    """

    DISCOVERY_ERROR = "DiscoveryError"
    INVALID_CONTEXT = "InvalidContext"
    MISSING_CONTEXT_FIELD = "MissingContextField"
    INVALID_TOOL_ARGUMENTS = "InvalidToolArguments"
    UNKNOWN_TOOL = "UnknownTool"
    UNRESOLVED_REFERENCE = "UnresolvedReference"
    INSUFFICIENT_DATA = "InsufficientData"
    SEED_NOT_FOUND = "SeedNotFound"
    INVALID_GEOMETRY = "InvalidGeometry"
    EMBEDDING_UNAVAILABLE = "EmbeddingUnavailable"
    COMPARISON_INCOMPLETE = "ComparisonIncomplete"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    TOOL_TIMEOUT = "ToolTimeout"
    STORE_UNAVAILABLE = "StoreUnavailable"
    TOOL_EXECUTION_FAILED = "ToolExecutionFailed"
    TOOL_BUDGET_EXCEEDED = "ToolBudgetExceeded"
    NO_SPECIALIST_MATCHED = "NoSpecialistMatched"
    NO_TOOL_SELECTED = "NoToolSelected"
    REQUEST_TIMEOUT = "RequestTimeout"
    REASONING_UNAVAILABLE = "ReasoningUnavailable"


# =============================================================================
# Base Exception
# =============================================================================


class DiscoveryError(Exception):
    """
    Base exception for all Experience Discovery errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
        category: ErrorCategory of the concrete subclass.
        transient: Whether retrying the same call may succeed.
    """

    category: ErrorCategory = ErrorCategory.TOOL_DOMAIN
    default_code: ErrorCode = ErrorCode.DISCOVERY_ERROR
    transient: bool = False

    def __init__(
        self,
        message: str,
        error_code: ErrorCode | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code (defaults per subclass).
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code

        for key, value in kwargs.items():
            setattr(self, key, value)

    @property
    def kind(self) -> str:
        """The error kind as reported to callers."""
        return self.error_code.value


# =============================================================================
# Context Errors
# =============================================================================


class ContextError(DiscoveryError):
    """Request context could not be built or read; no tool can run safely."""

    category = ErrorCategory.CONTEXT


class InvalidContext(ContextError):
    """Raised by create_context for an empty identity or missing store handle."""

    default_code = ErrorCode.INVALID_CONTEXT


class MissingContextField(ContextError):
    """
    A required context field was never set.

    This is a programming error: a tool was invoked outside a properly
    constructed request.

    Attributes:
        field: Name of the missing field.
    """

    default_code = ErrorCode.MISSING_CONTEXT_FIELD

    def __init__(self, field: str, **kwargs: Any) -> None:
        super().__init__(f"Request context field '{field}' is not set", **kwargs)
        self.field = field


# =============================================================================
# Tool Input Errors
# =============================================================================


class ToolInputError(DiscoveryError):
    """A tool call was rejected before execute ran."""

    category = ErrorCategory.TOOL_INPUT


class InvalidToolArguments(ToolInputError):
    """
    Arguments failed the tool's input schema.

    Attributes:
        tool_name: Tool whose schema rejected the arguments.
        field: Dotted path of the first offending field.
    """

    default_code = ErrorCode.INVALID_TOOL_ARGUMENTS

    def __init__(self, message: str, tool_name: str, field: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.field = field


class UnknownTool(ToolInputError):
    """The requested tool does not exist or is not exposed to this pass."""

    default_code = ErrorCode.UNKNOWN_TOOL

    def __init__(self, message: str, tool_name: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tool_name = tool_name


class UnresolvedReference(ToolInputError):
    """An argument references output that no successful call produced."""

    default_code = ErrorCode.UNRESOLVED_REFERENCE

    def __init__(self, message: str, reference: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.reference = reference


# =============================================================================
# Tool Domain Errors
# =============================================================================


class ToolDomainError(DiscoveryError):
    """Expected, recoverable-by-caller condition reported by a tool."""

    category = ErrorCategory.TOOL_DOMAIN


class InsufficientData(ToolDomainError):
    """Not enough data points to compute the requested statistic."""

    default_code = ErrorCode.INSUFFICIENT_DATA


class SeedNotFound(ToolDomainError):
    """
    The seed record does not resolve within the caller's tenant.

    Attributes:
        record_id: The record id that was requested.
    """

    default_code = ErrorCode.SEED_NOT_FOUND

    def __init__(self, record_id: str, **kwargs: Any) -> None:
        super().__init__(f"Record '{record_id}' was not found", **kwargs)
        self.record_id = record_id


class InvalidGeometry(ToolDomainError):
    """Radius or coordinates outside the valid range."""

    default_code = ErrorCode.INVALID_GEOMETRY


class EmbeddingUnavailable(ToolDomainError):
    """The query text could not be embedded."""

    default_code = ErrorCode.EMBEDDING_UNAVAILABLE


class ComparisonIncomplete(ToolDomainError):
    """
    One side of a comparison has no records, so ratios are undefined.

    Attributes:
        empty_categories: Categories with zero records.
    """

    default_code = ErrorCode.COMPARISON_INCOMPLETE

    def __init__(self, empty_categories: list[str], **kwargs: Any) -> None:
        names = ", ".join(empty_categories)
        super().__init__(f"No records for: {names}", **kwargs)
        self.empty_categories = empty_categories


class UnsupportedFormat(ToolDomainError):
    """Export format other than csv or json."""

    default_code = ErrorCode.UNSUPPORTED_FORMAT

    def __init__(self, export_format: str, **kwargs: Any) -> None:
        super().__init__(f"Unsupported export format: '{export_format}'", **kwargs)
        self.export_format = export_format


# =============================================================================
# Execution Errors
# =============================================================================


class ToolExecutionError(DiscoveryError):
    """Runtime failure while executing a tool."""

    category = ErrorCategory.EXECUTION
    transient = True


class ToolTimeout(ToolExecutionError):
    """
    A tool call exceeded the per-call timeout.

    Attributes:
        timeout_seconds: The timeout that was exceeded.
    """

    default_code = ErrorCode.TOOL_TIMEOUT

    def __init__(self, tool_name: str, timeout_seconds: float, **kwargs: Any) -> None:
        super().__init__(f"Tool '{tool_name}' timed out after {timeout_seconds}s", **kwargs)
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds


class StoreUnavailable(ToolExecutionError):
    """The tenant-scoped store could not be reached."""

    default_code = ErrorCode.STORE_UNAVAILABLE


class ToolExecutionFailed(ToolExecutionError):
    """An untyped exception escaped a tool; not retried."""

    default_code = ErrorCode.TOOL_EXECUTION_FAILED
    transient = False


# =============================================================================
# Orchestration Errors
# =============================================================================


class OrchestrationError(DiscoveryError):
    """Terminates the current pass; assembled results are kept."""

    category = ErrorCategory.ORCHESTRATION


class ToolBudgetExceeded(OrchestrationError):
    """
    The per-request tool-call budget is spent.

    Attributes:
        budget: The configured budget.
        skipped: Names of the calls that were not executed.
    """

    default_code = ErrorCode.TOOL_BUDGET_EXCEEDED

    def __init__(self, budget: int, skipped: list[str], **kwargs: Any) -> None:
        super().__init__(
            f"Tool budget of {budget} calls exhausted; skipped: {', '.join(skipped)}",
            **kwargs,
        )
        self.budget = budget
        self.skipped = skipped


class NoSpecialistMatched(OrchestrationError):
    """The coordinating decision mapped the request to no specialist."""

    default_code = ErrorCode.NO_SPECIALIST_MATCHED


class NoToolSelected(OrchestrationError):
    """
    The reasoning engine selected no tool at all.

    Attributes:
        narrative: Whatever text the engine returned instead.
    """

    default_code = ErrorCode.NO_TOOL_SELECTED

    def __init__(self, message: str, narrative: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.narrative = narrative


class RequestTimeout(OrchestrationError):
    """The whole pass exceeded its deadline; in-flight calls were abandoned."""

    default_code = ErrorCode.REQUEST_TIMEOUT


class ReasoningUnavailable(OrchestrationError):
    """
    The reasoning engine could not produce a decision.

    Attributes:
        engine: Name of the failing engine.
    """

    default_code = ErrorCode.REASONING_UNAVAILABLE

    def __init__(self, message: str, engine: str = "engine", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.engine = engine
