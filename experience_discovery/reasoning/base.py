"""
Reasoning Engine Port - the replaceable decision-maker.

The orchestrator treats tool selection as a black box behind this port.
Given the request, the exposed tool schemas, prior turns and what has run
so far, an engine returns the next tool calls and, when it is done, a
narrative. Engines never see the store or the request context.

Design Pattern:
- Ports and Adapters (Hexagonal Architecture)
- ReasoningEngine / CoordinatorEngine are the ports
- keyword.py (deterministic) and llm.py (Anthropic, OpenAI) are adapters
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

from experience_discovery.models.domain import ConversationTurn, ToolInvocation, ToolRequest
from experience_discovery.tools.base import ToolSchema


# =============================================================================
# Engine Request / Decision
# =============================================================================


class ToolObservation(BaseModel):
    """What an engine learns about one completed call."""

    call_id: str
    tool: str
    status: str
    headline: Optional[str] = None
    output: Optional[dict[str, Any]] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_invocation(cls, invocation: ToolInvocation) -> "ToolObservation":
        return cls(
            call_id=invocation.call_id,
            tool=invocation.tool.value,
            status=invocation.status.value,
            headline=invocation.headline,
            output=invocation.output,
            error_kind=invocation.error.kind if invocation.error else None,
            error_message=invocation.error.message if invocation.error else None,
        )


class EngineRequest(BaseModel):
    """
    Input to one reasoning step.

    Attributes:
        request_text: The user's natural-language request.
        tools: Schemas of the tools exposed to this pass, and only those.
        history: Prior conversation turns.
        observations: Calls completed so far in this pass.
        upstream: Outputs handed over from earlier router specialists, by id;
            referencable with ``{"$ref": "<id>..."}`` like any call output.
        step: 0 for the first decision of the pass.
        locale: Caller's locale.
        tier: Caller's tier, if known.
    """

    request_text: str
    tools: list[ToolSchema] = Field(default_factory=list)
    history: list[ConversationTurn] = Field(default_factory=list)
    observations: list[ToolObservation] = Field(default_factory=list)
    upstream: dict[str, Any] = Field(default_factory=dict)
    step: int = 0
    locale: str = "en"
    tier: Optional[str] = None

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]


class EngineDecision(BaseModel):
    """
    Output of one reasoning step.

    An empty ``tool_calls`` ends the pass; ``narrative`` is the answer text.
    """

    tool_calls: list[ToolRequest] = Field(default_factory=list)
    narrative: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class ReasoningEngine(ABC):
    """
    Abstract decision-maker for one orchestration pass.

    Implementations must only request tools listed in ``request.tools``;
    the orchestrator rejects anything else with UnknownTool.
    """

    name: str = "engine"

    @abstractmethod
    async def decide(self, request: EngineRequest) -> EngineDecision:
        """
        Choose the next tool calls, or finish with a narrative.

        Args:
            request: Request text, exposed tools, history and observations.

        Returns:
            EngineDecision
        """
        ...


# =============================================================================
# Coordinator (Capability Router)
# =============================================================================


class SpecialistInfo(BaseModel):
    """What a coordinator knows about one specialist."""

    name: str
    description: str
    tools: list[str] = Field(default_factory=list)


class Delegation(BaseModel):
    """One sub-request handed to a specialist."""

    specialist: str
    task: str


class CoordinatorEngine(ABC):
    """Decides which specialists handle a request, and in what order."""

    name: str = "coordinator"

    @abstractmethod
    async def delegate(
        self,
        request_text: str,
        specialists: list[SpecialistInfo],
        history: Optional[list[ConversationTurn]] = None,
    ) -> list[Delegation]:
        """
        Map a request to specialists.

        Returns:
            Delegations in execution order; empty when nothing matches.
        """
        ...
