"""
Discover Router - natural-language discovery over the experience corpus.

- POST /v1/discover: one orchestration pass, optionally scoped to a tool group
- POST /v1/discover/network: capability router delegating to specialists

Both answer with a DiscoveryResponse. Tool failures never turn into HTTP
errors; they are listed in ``partial_failures`` and mentioned in the
narrative.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from experience_discovery.api.deps import (
    get_assembler,
    get_capability_router,
    get_orchestrator,
    get_request_context,
)
from experience_discovery.core.context import RequestContext
from experience_discovery.models.domain import ConversationTurn
from experience_discovery.services.assembler import DiscoveryResponse, ResponseAssembler
from experience_discovery.services.orchestrator import Orchestrator
from experience_discovery.services.router import CapabilityRouter
from experience_discovery.tools.groups import ToolGroup


router = APIRouter(prefix="/v1/discover", tags=["Discover"])


class DiscoverRequest(BaseModel):
    """
    A discovery request.

    Attributes:
        query: Natural-language request.
        tool_group: Restrict the pass to one group (single-pass endpoint only).
        history: Prior conversation turns, oldest first.
        timeout_seconds: Deadline for the whole pass.
    """

    query: str = Field(..., min_length=1, max_length=4000)
    tool_group: Optional[ToolGroup] = None
    history: list[ConversationTurn] = Field(default_factory=list)
    timeout_seconds: Optional[float] = Field(default=None, gt=0, le=300)


@router.post("", response_model=DiscoveryResponse)
async def discover(
    body: DiscoverRequest,
    context: RequestContext = Depends(get_request_context),
    orchestrator: Orchestrator = Depends(get_orchestrator),
    assembler: ResponseAssembler = Depends(get_assembler),
) -> DiscoveryResponse:
    result = await orchestrator.orchestrate(
        body.query,
        context,
        tool_group=body.tool_group,
        history=body.history,
        timeout=body.timeout_seconds,
    )
    return assembler.wrap(result)


@router.post("/network", response_model=DiscoveryResponse)
async def discover_network(
    body: DiscoverRequest,
    context: RequestContext = Depends(get_request_context),
    capability_router: CapabilityRouter = Depends(get_capability_router),
    assembler: ResponseAssembler = Depends(get_assembler),
) -> DiscoveryResponse:
    """Specialists pick their own groups, so ``tool_group`` is ignored here."""
    result = await capability_router.route(body.query, context, history=body.history)
    return assembler.wrap(result)
