"""
Domain Models - tool names, tool calls, invocations and orchestration results.

These are internal value objects shared by the executor, the orchestrator,
the capability router and the response assembler.

Pattern: Domain models as value objects
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from experience_discovery.core.exceptions import DiscoveryError, ErrorCategory


# =============================================================================
# Tool Names - the closed tool set
# =============================================================================


class ToolName(str, Enum):
    """Every tool the registry knows. Adding a tool starts here."""

    # Search
    ADVANCED_SEARCH = "advancedSearch"
    ATTRIBUTE_SEARCH = "attributeSearch"
    SEMANTIC_SEARCH = "semanticSearch"
    FULL_TEXT_SEARCH = "fullTextSearch"
    GEO_SEARCH = "geoSearch"
    # Insights
    GENERATE_INSIGHTS = "generateInsights"
    PREDICT_TRENDS = "predictTrends"
    SUGGEST_FOLLOWUPS = "suggestFollowups"
    EXPORT_RESULTS = "exportResults"
    # Visualization data
    TEMPORAL_ANALYSIS = "temporalAnalysis"
    GENERATE_MAP = "generateMap"
    GENERATE_TIMELINE = "generateTimeline"
    GENERATE_NETWORK = "generateNetwork"
    GENERATE_DASHBOARD = "generateDashboard"
    # Analytics
    RANK_IDENTITIES = "rankIdentities"
    ANALYZE_CATEGORY = "analyzeCategory"
    COMPARE_CATEGORIES = "compareCategories"
    ATTRIBUTE_CORRELATION = "attributeCorrelation"
    # Relationships
    FIND_CONNECTIONS = "findConnections"
    DETECT_PATTERNS = "detectPatterns"

    @classmethod
    def parse(cls, name: str) -> Optional["ToolName"]:
        """The member with this value, or None."""
        try:
            return cls(name)
        except ValueError:
            return None


# =============================================================================
# Conversation / Tool Requests
# =============================================================================


class ConversationTurn(BaseModel):
    """A prior turn of the conversation handed to the reasoning engine."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = "user"
    content: str


class ToolRequest(BaseModel):
    """
    A reasoning engine's request to run one tool.

    Argument values of the form ``{"$ref": "<call_id>[.<path>]"}`` are
    replaced with (part of) an earlier call's output before validation.

    Attributes:
        id: Unique identifier for this call within the pass.
        name: Tool name as requested; may not be a known tool.
        arguments: Raw arguments.
        depends_on: Extra call ids that must complete first.
    """

    id: str = Field(..., description="Unique tool call identifier")
    name: str = Field(..., description="Name of tool to execute")
    arguments: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)

    @classmethod
    def from_openai_format(cls, tool_call: dict[str, Any]) -> "ToolRequest":
        """
        Parse from OpenAI's tool_calls format, where arguments is a JSON string.

        Malformed JSON yields empty arguments so schema validation reports
        the missing fields.
        """
        function = tool_call.get("function", {})
        arguments_str = function.get("arguments", "{}")
        try:
            arguments = json.loads(arguments_str) if arguments_str else {}
        except json.JSONDecodeError:
            arguments = {}
        return cls(
            id=tool_call.get("id", ""),
            name=function.get("name", ""),
            arguments=arguments if isinstance(arguments, dict) else {},
        )

    @classmethod
    def from_anthropic_block(cls, block: dict[str, Any]) -> "ToolRequest":
        """Parse from an Anthropic ``tool_use`` content block."""
        arguments = block.get("input") or {}
        return cls(
            id=block.get("id", ""),
            name=block.get("name", ""),
            arguments=arguments if isinstance(arguments, dict) else {},
        )


# =============================================================================
# Invocation Records
# =============================================================================


class ToolError(BaseModel):
    """Typed error attached to a failed invocation."""

    model_config = ConfigDict(frozen=True)

    kind: str
    category: ErrorCategory
    message: str
    field: Optional[str] = None

    @classmethod
    def from_exception(cls, error: DiscoveryError) -> "ToolError":
        return cls(
            kind=error.kind,
            category=error.category,
            message=error.message,
            field=getattr(error, "field", None),
        )


class InvocationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ToolInvocation(BaseModel):
    """
    One executed tool call, immutable once complete.

    Attributes:
        call_id: Id from the tool request.
        tool: Tool that ran.
        raw_arguments: Arguments after reference resolution.
        validated_arguments: Arguments after schema validation, if they passed.
        output: JSON-ready tool output on success.
        headline: One-sentence description of the output.
        error: Typed error on failure.
        started_at: Wall-clock start.
        duration_ms: Execution time.
        attempt: 1, or 2 for the retry of a transient failure.
        step: Reasoning step that requested the call.
        specialist: Router specialist that ran the pass, if any.
    """

    model_config = ConfigDict(frozen=True)

    call_id: str
    tool: ToolName
    raw_arguments: dict[str, Any] = Field(default_factory=dict)
    validated_arguments: Optional[dict[str, Any]] = None
    output: Optional[dict[str, Any]] = None
    headline: Optional[str] = None
    error: Optional[ToolError] = None
    started_at: datetime
    duration_ms: float
    attempt: int = 1
    step: int = 0
    specialist: Optional[str] = None

    @property
    def status(self) -> InvocationStatus:
        return InvocationStatus.FAILED if self.error else InvocationStatus.SUCCEEDED

    @property
    def succeeded(self) -> bool:
        return self.error is None


class PartialFailure(BaseModel):
    """A recorded, typed error that did not abort the pass."""

    model_config = ConfigDict(frozen=True)

    tool_name: Optional[str] = None
    call_id: Optional[str] = None
    error_kind: str
    category: ErrorCategory
    message: str
    specialist: Optional[str] = None

    @classmethod
    def from_error(
        cls,
        error: DiscoveryError,
        tool_name: Optional[str] = None,
        call_id: Optional[str] = None,
    ) -> "PartialFailure":
        return cls(
            tool_name=tool_name,
            call_id=call_id,
            error_kind=error.kind,
            category=error.category,
            message=error.message,
        )

    @classmethod
    def from_invocation(cls, invocation: ToolInvocation) -> "PartialFailure":
        assert invocation.error is not None
        return cls(
            tool_name=invocation.tool.value,
            call_id=invocation.call_id,
            error_kind=invocation.error.kind,
            category=invocation.error.category,
            message=invocation.error.message,
            specialist=invocation.specialist,
        )


class OrchestrationResult(BaseModel):
    """
    Outcome of one orchestration pass.

    Attributes:
        narrative: Plain-language answer; never empty.
        invocations: Every executed call in completion order.
        final_data: Outputs of successful calls no later call consumed, by call id.
        partial_failures: Every typed error of the pass.
        tool_group: Group exposed to the reasoning engine.
        trace_id: Request trace id.
        terminated_by: Error kind that ended the pass early, if any.
    """

    narrative: str
    invocations: list[ToolInvocation] = Field(default_factory=list)
    final_data: dict[str, Any] = Field(default_factory=dict)
    partial_failures: list[PartialFailure] = Field(default_factory=list)
    tool_group: str = "unified"
    trace_id: Optional[str] = None
    terminated_by: Optional[str] = None

    @property
    def succeeded_invocations(self) -> list[ToolInvocation]:
        return [inv for inv in self.invocations if inv.succeeded]
