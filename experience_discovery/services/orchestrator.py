"""
Orchestrator - one reasoning/tool-execution pass over a tool group.

The orchestrator exposes exactly one ToolGroup to the reasoning engine and
loops: ask the engine for the next calls, execute them with the request
context attached, feed the outcomes back, until the engine answers with a
narrative or the step limit is reached.

Per pass it provides:
- context injection (the engine never sees the store handle)
- per-call error containment (failures become partial failures)
- chaining through ``$ref`` arguments, dependent calls after their sources
- a hard budget on executed invocations, retries included
- one retry for transient failures while budget remains
- an optional deadline for the whole pass

Pattern: Service Layer (orchestrates domain operations)
Pattern: Dependency Injection (registry, engine)
Pattern: Command Executor (tool calls as commands)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from experience_discovery.core.config import Settings
from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import (
    DiscoveryError,
    ErrorCode,
    NoToolSelected,
    ReasoningUnavailable,
    RequestTimeout,
    ToolBudgetExceeded,
    UnknownTool,
    UnresolvedReference,
)
from experience_discovery.models.domain import (
    ConversationTurn,
    OrchestrationResult,
    PartialFailure,
    ToolInvocation,
    ToolName,
    ToolRequest,
)
from experience_discovery.observability.logging import bound_fields, correlation_id_context, get_logger
from experience_discovery.observability.metrics import record_orchestration_pass, record_partial_failure
from experience_discovery.observability.tracing import create_span
from experience_discovery.reasoning.base import EngineRequest, ReasoningEngine, ToolObservation
from experience_discovery.services.chaining import referenced_calls, resolve_references
from experience_discovery.tools.executor import DEFAULT_TIMEOUT, ToolExecutor
from experience_discovery.tools.groups import ToolGroup, tools_for_group
from experience_discovery.tools.registry import ToolRegistry


logger = get_logger(__name__)

DEFAULT_TOOL_BUDGET = 12
DEFAULT_MAX_STEPS = 4

TRANSIENT_KINDS = frozenset({ErrorCode.TOOL_TIMEOUT.value, ErrorCode.STORE_UNAVAILABLE.value})


# =============================================================================
# Pass State
# =============================================================================


@dataclass
class _PassState:
    """Mutable bookkeeping for one pass; discarded once the result is built."""

    group: ToolGroup
    exposed: tuple[ToolName, ...]
    upstream: Mapping[str, Any]
    specialist: Optional[str]
    invocations: list[ToolInvocation] = field(default_factory=list)
    failures: list[PartialFailure] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    consumed: set[str] = field(default_factory=set)
    used_ids: set[str] = field(default_factory=set)
    executed: int = 0
    narrative: Optional[str] = None
    terminated_by: Optional[str] = None

    def available_outputs(self) -> dict[str, Any]:
        return {**self.upstream, **self.outputs}

    def record(self, invocation: ToolInvocation, final: bool, sources: Iterable[str] = ()) -> None:
        """Keep the invocation; a success consumes the outputs it referenced."""
        self.invocations.append(invocation)
        if invocation.succeeded:
            self.outputs[invocation.call_id] = invocation.output
            self.consumed.update(sources)
        elif final:
            self.add_failure(PartialFailure.from_invocation(invocation))

    def fail(self, error: DiscoveryError, tool_name: Optional[str] = None, call_id: Optional[str] = None) -> None:
        failure = PartialFailure.from_error(error, tool_name=tool_name, call_id=call_id)
        self.add_failure(failure.model_copy(update={"specialist": self.specialist}))

    def add_failure(self, failure: PartialFailure) -> None:
        self.failures.append(failure)
        record_partial_failure(failure.error_kind)
        logger.warning(
            "partial_failure",
            error_kind=failure.error_kind,
            tool=failure.tool_name,
            call_id=failure.call_id,
            error=failure.message,
        )

    def final_data(self) -> dict[str, Any]:
        """Leaf outputs: successful calls no later call consumed."""
        return {call_id: output for call_id, output in self.outputs.items() if call_id not in self.consumed}


# =============================================================================
# Orchestrator
# =============================================================================


class Orchestrator:
    """
    Runs orchestration passes for one registry and reasoning engine.

    Attributes:
        registry: Tools available to passes.
        engine: Decision-maker choosing tool calls.
        budget: Maximum executed invocations per pass, retries included.
        max_steps: Maximum engine decisions per pass.
        request_timeout: Default deadline for a pass, in seconds.
        retry_transient: Whether ToolTimeout/StoreUnavailable calls are retried once.

    Example:
        >>> orchestrator = Orchestrator(build_tool_registry(), KeywordReasoningEngine())
        >>> result = await orchestrator.orchestrate("UFO sightings in California", context)
        >>> result.invocations[0].tool
        <ToolName.ADVANCED_SEARCH: 'advancedSearch'>
    """

    def __init__(
        self,
        registry: ToolRegistry,
        engine: ReasoningEngine,
        budget: int = DEFAULT_TOOL_BUDGET,
        tool_timeout: float = DEFAULT_TIMEOUT,
        max_steps: int = DEFAULT_MAX_STEPS,
        request_timeout: Optional[float] = None,
        retry_transient: bool = True,
    ) -> None:
        if budget < 1:
            raise ValueError("budget must be at least 1")
        self.registry = registry
        self.engine = engine
        self.budget = budget
        self.max_steps = max_steps
        self.request_timeout = request_timeout
        self.retry_transient = retry_transient
        self._executor = ToolExecutor(registry, timeout=tool_timeout)

    @classmethod
    def from_settings(cls, settings: Settings, registry: ToolRegistry, engine: ReasoningEngine) -> "Orchestrator":
        return cls(
            registry,
            engine,
            budget=settings.tool_budget,
            tool_timeout=settings.tool_timeout_seconds,
            max_steps=settings.max_steps,
            request_timeout=settings.request_timeout_seconds,
            retry_transient=settings.retry_transient,
        )

    @property
    def executor(self) -> ToolExecutor:
        return self._executor

    async def orchestrate(
        self,
        request_text: str,
        context: RequestContext,
        tool_group: Optional[ToolGroup | str] = None,
        history: Optional[list[ConversationTurn]] = None,
        upstream: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        specialist: Optional[str] = None,
    ) -> OrchestrationResult:
        """
        Run one pass and return everything it produced.

        Args:
            request_text: Natural-language request.
            context: Request context attached to every tool call.
            tool_group: Group exposed to the engine (default unified).
            history: Prior conversation turns.
            upstream: Outputs from earlier passes, referencable by id.
            timeout: Deadline for the pass; overrides the configured default.
            specialist: Router specialist running this pass, if any.

        Returns:
            OrchestrationResult; tool and orchestration failures are inside it.

        Raises:
            ContextError: The context is unusable.
            NoToolSelected: The engine chose no tool on its first step.
            ReasoningUnavailable: The engine failed before any tool ran.
            ValueError: Unknown tool group name.
        """
        context.get("store")
        context.get("identity_id")
        group = ToolGroup(tool_group) if tool_group is not None else ToolGroup.UNIFIED
        state = _PassState(
            group=group,
            exposed=tools_for_group(group),
            upstream=dict(upstream or {}),
            specialist=specialist,
        )
        deadline = timeout if timeout is not None else self.request_timeout
        mode = "specialist" if specialist else "single"

        with correlation_id_context(context.trace_id), bound_fields(tool_group=group.value, specialist=specialist):
            with create_span(
                "orchestration.pass",
                {"orchestration.tool_group": group.value, "orchestration.specialist": specialist},
            ) as span:
                logger.info("orchestration_started", request=request_text, budget=self.budget)
                try:
                    if deadline is not None:
                        await asyncio.wait_for(self._run(request_text, context, history or [], state), deadline)
                    else:
                        await self._run(request_text, context, history or [], state)
                except TimeoutError:
                    state.fail(RequestTimeout(f"Request exceeded its {deadline}s deadline"))
                    state.terminated_by = ErrorCode.REQUEST_TIMEOUT.value
                except NoToolSelected:
                    record_orchestration_pass(mode, "no_tool")
                    logger.warning("orchestration_no_tool", request=request_text)
                    raise
                except ReasoningUnavailable as e:
                    record_orchestration_pass(mode, "error")
                    logger.error("orchestration_engine_failed", engine=e.engine, error=e.message)
                    raise

                outcome = "terminated" if state.terminated_by else ("partial" if state.failures else "completed")
                span.set_attribute("orchestration.outcome", outcome)
                span.set_attribute("orchestration.invocations", len(state.invocations))

            record_orchestration_pass(mode, outcome)
            logger.info(
                "orchestration_completed",
                outcome=outcome,
                invocations=len(state.invocations),
                partial_failures=len(state.failures),
                terminated_by=state.terminated_by,
            )

        return OrchestrationResult(
            narrative=state.narrative or _fallback_narrative(state),
            invocations=state.invocations,
            final_data=state.final_data(),
            partial_failures=state.failures,
            tool_group=group.value,
            trace_id=context.trace_id,
            terminated_by=state.terminated_by,
        )

    async def _run(
        self,
        request_text: str,
        context: RequestContext,
        history: list[ConversationTurn],
        state: _PassState,
    ) -> None:
        schemas = self.registry.schemas(list(state.exposed))
        for step in range(self.max_steps):
            request = EngineRequest(
                request_text=request_text,
                tools=schemas,
                history=history,
                observations=[ToolObservation.from_invocation(inv) for inv in state.invocations],
                upstream=dict(state.upstream),
                step=step,
                locale=context.locale,
                tier=context.tier.value if context.tier else None,
            )
            try:
                decision = await self.engine.decide(request)
            except ReasoningUnavailable as e:
                # Nothing has run yet, so there is no partial result to return
                if step == 0:
                    raise
                state.fail(e)
                state.terminated_by = e.kind
                return
            if decision.is_final:
                if step == 0:
                    raise NoToolSelected(
                        f"No tool was selected for: {request_text}",
                        narrative=decision.narrative,
                    )
                state.narrative = decision.narrative
                return

            await self._run_calls(decision.tool_calls, context, state, step)
            if state.terminated_by:
                return

        logger.info("orchestration_max_steps", max_steps=self.max_steps)

    # =========================================================================
    # Call Scheduling
    # =========================================================================

    def _admit(self, calls: list[ToolRequest], state: _PassState, step: int) -> list[ToolRequest]:
        """Give every call a unique id and reject tools outside the group."""
        admitted: list[ToolRequest] = []
        for index, call in enumerate(calls, start=1):
            if not call.id or call.id in state.used_ids:
                call = call.model_copy(update={"id": f"step{step}_call{index}"})
            state.used_ids.add(call.id)

            name = ToolName.parse(call.name)
            if name is None or name not in state.exposed:
                state.fail(
                    UnknownTool(
                        f"Tool '{call.name}' is not available in the {state.group.value} group",
                        tool_name=call.name,
                    ),
                    tool_name=call.name,
                    call_id=call.id,
                )
                continue
            admitted.append(call)
        return admitted

    async def _run_calls(
        self,
        calls: list[ToolRequest],
        context: RequestContext,
        state: _PassState,
        step: int,
    ) -> None:
        """Execute one decision's calls in dependency waves."""
        pending = self._admit(calls, state, step)
        batch_ids = {call.id for call in pending}
        settled: set[str] = set()

        while pending:
            ready = [
                call
                for call in pending
                if all(dep in settled or dep not in batch_ids for dep in _dependencies(call))
            ]
            if not ready:
                for call in pending:
                    state.fail(
                        UnresolvedReference(f"Call '{call.id}' is part of a reference cycle", reference=call.id),
                        tool_name=call.name,
                        call_id=call.id,
                    )
                return
            pending = [call for call in pending if call not in ready]

            launch: list[tuple[ToolRequest, dict[str, Any]]] = []
            skipped: list[ToolRequest] = []
            for call in ready:
                settled.add(call.id)
                try:
                    arguments = resolve_references(call.arguments, state.available_outputs())
                except UnresolvedReference as e:
                    state.fail(e, tool_name=call.name, call_id=call.id)
                    continue
                if state.executed >= self.budget:
                    skipped.append(call)
                    continue
                state.executed += 1
                launch.append((call, arguments))

            await self._gather(
                [self._invoke(call, arguments, context, state, step) for call, arguments in launch]
            )

            if skipped:
                skipped_names = [call.name for call in skipped + pending]
                logger.warning("tool_budget_exceeded", budget=self.budget, skipped=skipped_names)
                state.fail(ToolBudgetExceeded(self.budget, skipped_names))
                state.terminated_by = ErrorCode.TOOL_BUDGET_EXCEEDED.value
                return

    @staticmethod
    async def _gather(coroutines: list[Any]) -> None:
        tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def _invoke(
        self,
        call: ToolRequest,
        arguments: dict[str, Any],
        context: RequestContext,
        state: _PassState,
        step: int,
    ) -> None:
        name = ToolName(call.name)
        sources = referenced_calls(call.arguments)
        invocation = await self._executor.execute(
            name, call.id, arguments, context, step=step, attempt=1, specialist=state.specialist
        )
        retry = (
            invocation.error is not None
            and invocation.error.kind in TRANSIENT_KINDS
            and self.retry_transient
            and state.executed < self.budget
        )
        state.record(invocation, final=not retry, sources=sources)
        if not retry:
            return

        state.executed += 1
        logger.info("tool_retry", tool=call.name, call_id=call.id, error_kind=invocation.error.kind)
        retried = await self._executor.execute(
            name, call.id, arguments, context, step=step, attempt=2, specialist=state.specialist
        )
        state.record(retried, final=True, sources=sources)


def _dependencies(call: ToolRequest) -> list[str]:
    return [*referenced_calls(call.arguments), *call.depends_on]


def _fallback_narrative(state: _PassState) -> str:
    headlines = [inv.headline for inv in state.invocations if inv.succeeded and inv.headline]
    if headlines:
        return " ".join(headlines)
    return "No results could be produced for this request."
