"""
Response Assembler - the caller-facing envelope.

Wraps one OrchestrationResult, or merges several, into a DiscoveryResponse:
narrative, provenance trail, final data and partial failures. Every partial
failure is surfaced, and the narrative acknowledges each one in plain
language rather than by error code.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from experience_discovery.core.exceptions import ErrorCode
from experience_discovery.models.domain import OrchestrationResult, PartialFailure, ToolInvocation
from experience_discovery.services.router import merge_results


# Plain-language phrase per error kind; "{tool}" is the tool's readable name
FAILURE_PHRASES: dict[str, str] = {
    ErrorCode.INVALID_TOOL_ARGUMENTS.value: "could not run {tool}: the request was missing or had invalid details",
    ErrorCode.UNKNOWN_TOOL.value: "could not use {tool}: it is not available for this request",
    ErrorCode.UNRESOLVED_REFERENCE.value: "could not run {tool}: the data it needed was not produced",
    ErrorCode.INSUFFICIENT_DATA.value: "could not compute {tool}: not enough data points",
    ErrorCode.SEED_NOT_FOUND.value: "could not find connections: the starting record does not exist",
    ErrorCode.INVALID_GEOMETRY.value: "could not search that area: the coordinates or radius are invalid",
    ErrorCode.EMBEDDING_UNAVAILABLE.value: "could not search by meaning: the text could not be interpreted",
    ErrorCode.COMPARISON_INCOMPLETE.value: "could not compare: one of the categories has no records",
    ErrorCode.UNSUPPORTED_FORMAT.value: "could not export: only CSV and JSON are supported",
    ErrorCode.TOOL_TIMEOUT.value: "{tool} took too long and was stopped",
    ErrorCode.STORE_UNAVAILABLE.value: "could not reach the data store for {tool}",
    ErrorCode.TOOL_EXECUTION_FAILED.value: "{tool} failed unexpectedly",
    ErrorCode.TOOL_BUDGET_EXCEEDED.value: "stopped early: the limit on tool calls for one request was reached",
    ErrorCode.NO_SPECIALIST_MATCHED.value: "could not match the request to any capability",
    ErrorCode.NO_TOOL_SELECTED.value: "could not find a suitable tool for the request",
    ErrorCode.REQUEST_TIMEOUT.value: "stopped early: the request took too long",
}
DEFAULT_PHRASE = "{tool} did not complete"

TOOL_LABELS: dict[str, str] = {
    "advancedSearch": "the search",
    "attributeSearch": "the attribute search",
    "semanticSearch": "the similarity search",
    "fullTextSearch": "the keyword search",
    "geoSearch": "the area search",
    "generateInsights": "the insights",
    "predictTrends": "the trend",
    "suggestFollowups": "the suggestions",
    "exportResults": "the export",
    "temporalAnalysis": "the time breakdown",
    "generateMap": "the map",
    "generateTimeline": "the timeline",
    "generateNetwork": "the network",
    "generateDashboard": "the dashboard",
    "rankIdentities": "the contributor ranking",
    "analyzeCategory": "the category analysis",
    "compareCategories": "the comparison",
    "attributeCorrelation": "the correlation analysis",
    "findConnections": "the connection search",
    "detectPatterns": "the pattern detection",
}


def describe_failure(failure: PartialFailure) -> str:
    """One plain-language clause for a partial failure."""
    tool = TOOL_LABELS.get(failure.tool_name or "", "a step")
    phrase = FAILURE_PHRASES.get(failure.error_kind, DEFAULT_PHRASE).format(tool=tool)
    return phrase[0].upper() + phrase[1:]


# =============================================================================
# Envelope Models
# =============================================================================


class ProvenanceEntry(BaseModel):
    """One executed call as shown to the caller."""

    call_id: str
    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    duration_ms: float
    status: str
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    attempt: int = 1
    specialist: Optional[str] = None

    @classmethod
    def from_invocation(cls, invocation: ToolInvocation) -> "ProvenanceEntry":
        return cls(
            call_id=invocation.call_id,
            tool=invocation.tool.value,
            arguments=invocation.raw_arguments,
            duration_ms=invocation.duration_ms,
            status=invocation.status.value,
            error_kind=invocation.error.kind if invocation.error else None,
            error_message=invocation.error.message if invocation.error else None,
            attempt=invocation.attempt,
            specialist=invocation.specialist,
        )


class DiscoveryResponse(BaseModel):
    """Caller-facing result of a discovery request."""

    narrative: str
    provenance: list[ProvenanceEntry] = Field(default_factory=list)
    final_data: dict[str, Any] = Field(default_factory=dict)
    partial_failures: list[PartialFailure] = Field(default_factory=list)
    trace_id: Optional[str] = None
    tool_group: str = "unified"


# =============================================================================
# Assembler
# =============================================================================


class ResponseAssembler:
    """
    Builds DiscoveryResponse envelopes.

    Example:
        >>> response = ResponseAssembler().wrap(result)
        >>> response.provenance[0].tool
        'advancedSearch'
    """

    def wrap(self, result: OrchestrationResult) -> DiscoveryResponse:
        return DiscoveryResponse(
            narrative=self.narrative(result.narrative, result.partial_failures),
            provenance=[ProvenanceEntry.from_invocation(inv) for inv in result.invocations],
            final_data=result.final_data,
            partial_failures=list(result.partial_failures),
            trace_id=result.trace_id,
            tool_group=result.tool_group,
        )

    def merge(self, results: list[OrchestrationResult]) -> DiscoveryResponse:
        """Merge several results, e.g. specialist passes, into one envelope."""
        if not results:
            raise ValueError("merge needs at least one result")
        return self.wrap(merge_results(results))

    @staticmethod
    def narrative(text: str, failures: list[PartialFailure]) -> str:
        """The answer text followed by one sentence per distinct failure."""
        text = text.strip()
        notes: list[str] = []
        for failure in failures:
            note = describe_failure(failure)
            if note not in notes:
                notes.append(note)
        parts = [text] if text else []
        parts.extend(f"{note}." for note in notes)
        return " ".join(parts) or "No results could be produced for this request."
