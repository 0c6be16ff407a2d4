"""
Scripted Reasoning Engine - Test Double Implementation

Implements the ReasoningEngine and CoordinatorEngine ports with a fixed
script of decisions, without any model provider. This is NOT mocking: the
engines have real behavior (they replay decisions step by step and record
every request they receive) and are usable for demos and local development.

Pattern: FakeRepository (duck-typed test double with real behavior)
"""

from typing import Any, Optional

from experience_discovery.core.exceptions import ReasoningUnavailable
from experience_discovery.models.domain import ConversationTurn, ToolRequest
from experience_discovery.reasoning.base import (
    CoordinatorEngine,
    Delegation,
    EngineDecision,
    EngineRequest,
    ReasoningEngine,
    SpecialistInfo,
)


def call(call_id: str, name: str, **arguments: Any) -> ToolRequest:
    """Shorthand for building a ToolRequest in scripts."""
    return ToolRequest(id=call_id, name=name, arguments=arguments)


class ScriptedReasoningEngine(ReasoningEngine):
    """
    Replays a list of decisions, one per step.

    Once the script is exhausted the engine finishes with ``final_narrative``.

    Attributes:
        script: Decisions, or lists of ToolRequests, by step.
        final_narrative: Narrative returned after the script.
        error_on_step: Optional step at which decide() raises ReasoningUnavailable.
        requests: Every EngineRequest received, for test assertions.

    Example:
        >>> engine = ScriptedReasoningEngine([[call("a", "advancedSearch", categories=["dreams"])]])
        >>> decision = await engine.decide(EngineRequest(request_text="dreams"))
        >>> decision.tool_calls[0].name
        'advancedSearch'
    """

    name = "scripted"

    def __init__(
        self,
        script: Optional[list[EngineDecision | list[ToolRequest]]] = None,
        final_narrative: str = "Scripted answer.",
        error_on_step: Optional[int] = None,
    ) -> None:
        self.script = [
            step if isinstance(step, EngineDecision) else EngineDecision(tool_calls=step)
            for step in (script or [])
        ]
        self.final_narrative = final_narrative
        self.error_on_step = error_on_step
        self.requests: list[EngineRequest] = []

    async def decide(self, request: EngineRequest) -> EngineDecision:
        self.requests.append(request)
        if self.error_on_step is not None and request.step == self.error_on_step:
            raise ReasoningUnavailable("scripted engine failure", engine=self.name)
        if request.step < len(self.script):
            return self.script[request.step]
        return EngineDecision(narrative=self.final_narrative)


class ScriptedCoordinator(CoordinatorEngine):
    """Returns fixed delegations and records what it was asked."""

    name = "scripted"

    def __init__(self, specialists: Optional[list[str]] = None, task: Optional[str] = None) -> None:
        self.specialists = specialists or []
        self.task = task
        self.calls: list[tuple[str, list[SpecialistInfo]]] = []

    async def delegate(
        self,
        request_text: str,
        specialists: list[SpecialistInfo],
        history: Optional[list[ConversationTurn]] = None,
    ) -> list[Delegation]:
        self.calls.append((request_text, specialists))
        return [Delegation(specialist=name, task=self.task or request_text) for name in self.specialists]
