"""Models Package - records, tool calls, invocations and orchestration results."""

from experience_discovery.models.domain import (
    ConversationTurn,
    InvocationStatus,
    OrchestrationResult,
    PartialFailure,
    ToolError,
    ToolInvocation,
    ToolName,
    ToolRequest,
)
from experience_discovery.models.records import (
    AttributeFilter,
    BoundingBox,
    ExperienceRecord,
    GeoRadius,
    RecordConnection,
    RecordPage,
    RecordQuery,
    RecordSummary,
    ScoredRecord,
)

__all__ = [
    "AttributeFilter",
    "BoundingBox",
    "ConversationTurn",
    "ExperienceRecord",
    "GeoRadius",
    "InvocationStatus",
    "OrchestrationResult",
    "PartialFailure",
    "RecordConnection",
    "RecordPage",
    "RecordQuery",
    "RecordSummary",
    "ScoredRecord",
    "ToolError",
    "ToolInvocation",
    "ToolName",
    "ToolRequest",
]
