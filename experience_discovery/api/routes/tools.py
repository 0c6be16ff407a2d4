"""
Tools Router - tool catalogue and direct tool execution.

- GET /v1/tools: every registered tool with its groups and input schema
- GET /v1/tools/groups: group name -> member tool names
- POST /v1/tools/{tool_name}/execute: run one tool through the executor

A direct execution never goes through a reasoning engine or the budget;
it is the same validate -> execute -> typed-error path the orchestrator
uses for each call.

Pattern: Command pattern for tool invocation
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from experience_discovery.api.deps import get_registry, get_request_context, get_tool_executor
from experience_discovery.core.context import RequestContext
from experience_discovery.models.domain import ToolError
from experience_discovery.tools.executor import ToolExecutor
from experience_discovery.tools.groups import GROUP_MEMBERS, groups_for_tool
from experience_discovery.tools.registry import ToolRegistry


router = APIRouter(prefix="/v1/tools", tags=["Tools"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ToolDescription(BaseModel):
    name: str
    description: str
    groups: list[str]
    input_schema: dict[str, Any]


class ToolExecuteRequest(BaseModel):
    """Arguments for a single tool run."""

    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: str = "call_1"


class ToolExecuteResponse(BaseModel):
    """
    Outcome of a single tool run.

    A failed tool still answers 200; ``success`` is false and ``error``
    carries the typed failure.
    """

    call_id: str
    tool: str
    success: bool
    output: Optional[dict[str, Any]] = None
    headline: Optional[str] = None
    error: Optional[ToolError] = None
    duration_ms: float


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=list[ToolDescription])
async def list_tools(registry: ToolRegistry = Depends(get_registry)) -> list[ToolDescription]:
    return [
        ToolDescription(
            name=tool.name.value,
            description=tool.description,
            groups=[group.value for group in groups_for_tool(tool.name)],
            input_schema=tool.schema.parameters,
        )
        for tool in registry
    ]


@router.get("/groups", response_model=dict[str, list[str]])
async def list_groups() -> dict[str, list[str]]:
    return {group.value: [name.value for name in members] for group, members in GROUP_MEMBERS.items()}


@router.post("/{tool_name}/execute", response_model=ToolExecuteResponse)
async def execute_tool(
    tool_name: str,
    body: ToolExecuteRequest,
    context: RequestContext = Depends(get_request_context),
    registry: ToolRegistry = Depends(get_registry),
    executor: ToolExecutor = Depends(get_tool_executor),
) -> ToolExecuteResponse:
    """
    Run one tool.

    Raises:
        UnknownTool: No such tool (mapped to 404).
    """
    tool = registry.get(tool_name)
    invocation = await executor.execute(tool.name, body.call_id, body.arguments, context)
    return ToolExecuteResponse(
        call_id=invocation.call_id,
        tool=invocation.tool.value,
        success=invocation.succeeded,
        output=invocation.output,
        headline=invocation.headline,
        error=invocation.error,
        duration_ms=invocation.duration_ms,
    )
