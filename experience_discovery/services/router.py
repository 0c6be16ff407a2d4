"""
Capability Router - network-style orchestration over specialists.

A coordinating decision maps the request to one or more specialists; each
specialist is a pass of the same Orchestrator scoped to its own ToolGroup.
Specialists run in the coordinator's order, and every later specialist sees
the final data of the earlier ones as ``upstream`` so it can chain onto
them (search results feeding a map, for example).

Upstream and merged final-data keys are ``<specialist>:<call_id>``, so call
ids of different specialists never collide.

Pattern: Router over one Orchestrator core (no duplicated tool logic)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import (
    ContextError,
    DiscoveryError,
    NoSpecialistMatched,
    NoToolSelected,
)
from experience_discovery.models.domain import ConversationTurn, OrchestrationResult, PartialFailure
from experience_discovery.observability.logging import correlation_id_context, get_logger
from experience_discovery.observability.metrics import record_orchestration_pass, record_partial_failure
from experience_discovery.observability.tracing import create_span
from experience_discovery.reasoning.base import CoordinatorEngine, SpecialistInfo
from experience_discovery.services.orchestrator import Orchestrator
from experience_discovery.tools.groups import ToolGroup, tools_for_group


logger = get_logger(__name__)


class Specialist(str, Enum):
    QUERY = "query"
    VISUALIZATION = "visualization"
    INSIGHT = "insight"
    RELATIONSHIP = "relationship"


@dataclass(frozen=True)
class SpecialistProfile:
    specialist: Specialist
    group: ToolGroup
    description: str

    def info(self) -> SpecialistInfo:
        return SpecialistInfo(
            name=self.specialist.value,
            description=self.description,
            tools=[name.value for name in tools_for_group(self.group)],
        )


SPECIALISTS: dict[Specialist, SpecialistProfile] = {
    Specialist.QUERY: SpecialistProfile(
        Specialist.QUERY,
        ToolGroup.SEARCH,
        "Finds experience records: filtered, attribute, semantic, full-text and geographic search.",
    ),
    Specialist.VISUALIZATION: SpecialistProfile(
        Specialist.VISUALIZATION,
        ToolGroup.VISUALIZATION,
        "Prepares chart data: temporal buckets, maps, timelines, networks and dashboards.",
    ),
    Specialist.INSIGHT: SpecialistProfile(
        Specialist.INSIGHT,
        ToolGroup.INSIGHTS,
        "Explains data: insights, trends, comparisons, rankings, correlations, patterns, exports.",
    ),
    Specialist.RELATIONSHIP: SpecialistProfile(
        Specialist.RELATIONSHIP,
        ToolGroup.RELATIONSHIPS,
        "Relates records: connections from a seed record and patterns in a data set.",
    ),
}


def upstream_key(specialist: str, call_id: str) -> str:
    return f"{specialist}:{call_id}"


class CapabilityRouter:
    """
    Delegates a request to specialists and merges their results.

    Example:
        >>> router = CapabilityRouter(orchestrator, KeywordCoordinator())
        >>> result = await router.route("map UFO sightings in Texas", context)
        >>> [inv.specialist for inv in result.invocations]
        ['query', 'visualization']
    """

    def __init__(self, orchestrator: Orchestrator, coordinator: CoordinatorEngine) -> None:
        self.orchestrator = orchestrator
        self.coordinator = coordinator

    async def route(
        self,
        request_text: str,
        context: RequestContext,
        history: Optional[list[ConversationTurn]] = None,
    ) -> OrchestrationResult:
        """
        Run every delegated specialist in order and merge their results.

        Returns:
            The merged OrchestrationResult. When no specialist matches, a
            result carrying NoSpecialistMatched.

        Raises:
            ContextError: The context is unusable.
        """
        results: list[OrchestrationResult] = []
        upstream: dict[str, Any] = {}

        with correlation_id_context(context.trace_id), create_span("orchestration.route") as span:
            delegations = await self.coordinator.delegate(
                request_text,
                [profile.info() for profile in SPECIALISTS.values()],
                history=history,
            )
            known = [d for d in delegations if d.specialist in {s.value for s in Specialist}]
            span.set_attribute("router.specialists", ",".join(d.specialist for d in known))
            logger.info("router_delegated", specialists=[d.specialist for d in known])

            if not known:
                error = NoSpecialistMatched(f"No specialist can handle: {request_text}")
                record_partial_failure(error.kind)
                record_orchestration_pass("network", "no_specialist")
                logger.warning("router_no_specialist", request=request_text)
                return OrchestrationResult(
                    narrative="I could not match this request to any of my capabilities.",
                    partial_failures=[PartialFailure.from_error(error)],
                    tool_group="network",
                    trace_id=context.trace_id,
                    terminated_by=error.kind,
                )

            for delegation in known:
                profile = SPECIALISTS[Specialist(delegation.specialist)]
                result = await self._run_specialist(profile, delegation.task, context, history, upstream)
                results.append(result)
                for call_id, output in result.final_data.items():
                    upstream[upstream_key(profile.specialist.value, call_id)] = output

        merged = merge_results(results)
        record_orchestration_pass("network", "partial" if merged.partial_failures else "completed")
        return merged

    async def _run_specialist(
        self,
        profile: SpecialistProfile,
        task: str,
        context: RequestContext,
        history: Optional[list[ConversationTurn]],
        upstream: dict[str, Any],
    ) -> OrchestrationResult:
        """One specialist pass; its own failure is contained in the result."""
        name = profile.specialist.value
        try:
            return await self.orchestrator.orchestrate(
                task,
                context,
                tool_group=profile.group,
                history=history,
                upstream=upstream,
                specialist=name,
            )
        except ContextError:
            raise
        except NoToolSelected as e:
            return self._failed_specialist(profile, e, context, e.narrative)
        except DiscoveryError as e:
            return self._failed_specialist(profile, e, context, None)

    @staticmethod
    def _failed_specialist(
        profile: SpecialistProfile,
        error: DiscoveryError,
        context: RequestContext,
        narrative: Optional[str],
    ) -> OrchestrationResult:
        name = profile.specialist.value
        record_partial_failure(error.kind)
        logger.warning("specialist_failed", specialist=name, error_kind=error.kind, error=error.message)
        failure = PartialFailure.from_error(error).model_copy(update={"specialist": name})
        return OrchestrationResult(
            narrative=narrative or f"The {name} specialist could not handle this request.",
            partial_failures=[failure],
            tool_group=profile.group.value,
            trace_id=context.trace_id,
            terminated_by=error.kind,
        )


def merge_results(results: list[OrchestrationResult]) -> OrchestrationResult:
    """
    Combine specialist results into one.

    Invocations and partial failures are concatenated in run order; final
    data keys are namespaced by specialist.
    """
    narratives: list[str] = []
    final_data: dict[str, Any] = {}
    for result in results:
        if result.narrative and result.narrative not in narratives:
            narratives.append(result.narrative)
        specialist = next((inv.specialist for inv in result.invocations if inv.specialist), None)
        if specialist is None and result.partial_failures:
            specialist = result.partial_failures[0].specialist
        for call_id, output in result.final_data.items():
            final_data[upstream_key(specialist or result.tool_group, call_id)] = output

    terminated = [result.terminated_by for result in results if result.terminated_by]
    return OrchestrationResult(
        narrative=" ".join(narratives) or "No results could be produced for this request.",
        invocations=[inv for result in results for inv in result.invocations],
        final_data=final_data,
        partial_failures=[failure for result in results for failure in result.partial_failures],
        tool_group="network",
        trace_id=next((result.trace_id for result in results if result.trace_id), None),
        terminated_by=terminated[0] if results and len(terminated) == len(results) else None,
    )
