"""
Unit tests for experience_discovery/services/orchestrator.py.

The orchestrator is driven by ScriptedReasoningEngine so every step's
decision is fixed; the tools run for real against the seeded in-memory
database.
"""

import pytest

from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import MissingContextField, NoToolSelected, ReasoningUnavailable
from experience_discovery.models.domain import ToolName, ToolRequest
from experience_discovery.reasoning.base import EngineDecision
from experience_discovery.reasoning.fake import ScriptedReasoningEngine, call
from experience_discovery.services.orchestrator import Orchestrator
from experience_discovery.tools.groups import ToolGroup, tools_for_group


def make_orchestrator(registry, script, **kwargs):
    engine = ScriptedReasoningEngine(script)
    return Orchestrator(registry, engine, **kwargs), engine


class TestSinglePass:

    @pytest.mark.asyncio
    async def test_engine_sees_only_the_group_tools(self, registry, context):
        orchestrator, engine = make_orchestrator(
            registry, [[call("call_1", "fullTextSearch", query="triangle")]]
        )

        result = await orchestrator.orchestrate("triangles", context, tool_group="search")

        assert set(engine.requests[0].tool_names) == {name.value for name in tools_for_group(ToolGroup.SEARCH)}
        assert result.tool_group == "search"
        assert result.trace_id == "trace-alice"
        assert result.narrative == "Scripted answer."
        assert result.terminated_by is None

    @pytest.mark.asyncio
    async def test_observations_are_fed_back(self, registry, context):
        orchestrator, engine = make_orchestrator(
            registry, [[call("call_1", "advancedSearch", categories=["dreams"])]]
        )

        await orchestrator.orchestrate("dreams", context)

        observation = engine.requests[1].observations[0]
        assert engine.requests[1].step == 1
        assert observation.call_id == "call_1"
        assert observation.status == "succeeded"
        assert observation.headline == "Found 2 experiences for dreams."

    @pytest.mark.asyncio
    async def test_unified_group_is_the_default(self, registry, context):
        orchestrator, engine = make_orchestrator(registry, [[call("a", "rankIdentities")]])

        result = await orchestrator.orchestrate("who contributed most", context)

        assert result.tool_group == "unified"
        assert len(engine.requests[0].tools) == len(registry)

    @pytest.mark.asyncio
    async def test_max_steps_stops_the_loop(self, registry, context):
        script = [[call(f"c{step}", "fullTextSearch", query="orb")] for step in range(5)]
        orchestrator, engine = make_orchestrator(registry, script, max_steps=2)

        result = await orchestrator.orchestrate("orbs", context)

        assert len(engine.requests) == 2
        assert [inv.call_id for inv in result.invocations] == ["c0", "c1"]
        assert result.narrative.startswith("Found 1 experiences")

    @pytest.mark.asyncio
    async def test_from_settings(self, registry, test_settings):
        orchestrator = Orchestrator.from_settings(test_settings, registry, ScriptedReasoningEngine())

        assert orchestrator.budget == 12
        assert orchestrator.executor.timeout == 5.0

    def test_budget_must_be_positive(self, registry):
        with pytest.raises(ValueError):
            Orchestrator(registry, ScriptedReasoningEngine(), budget=0)


class TestChaining:

    @pytest.mark.asyncio
    async def test_reference_feeds_dependent_call(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[
                call("call_2", "generateMap", data={"$ref": "call_1.results"}),
                call("call_1", "advancedSearch", categories=["ufo-uap"], location={"text": "California"}),
            ]],
        )

        result = await orchestrator.orchestrate("map UFOs in California", context)

        assert [inv.call_id for inv in result.invocations] == ["call_1", "call_2"]
        map_call = result.invocations[1]
        assert map_call.succeeded
        assert len(map_call.raw_arguments["data"]) == 2
        assert map_call.output["total_located"] == 2
        # The search output was consumed by the map
        assert list(result.final_data) == ["call_2"]

    @pytest.mark.asyncio
    async def test_source_stays_in_final_data_when_its_consumer_fails(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[
                call("s", "advancedSearch", categories=["dreams"]),
                call("t", "predictTrends", data={"$ref": "s.results"}),
            ]],
        )

        result = await orchestrator.orchestrate("dream trends", context)

        search, trends = result.invocations
        assert search.succeeded
        assert trends.error.kind == "InsufficientData"
        assert list(result.final_data) == ["s"]
        assert result.final_data["s"]["total"] == 2

    @pytest.mark.asyncio
    async def test_failed_source_leaves_reference_unresolved(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[
                call("call_1", "advancedSearch", limit=0),
                call("call_2", "generateMap", data={"$ref": "call_1.results"}),
            ]],
        )

        result = await orchestrator.orchestrate("map", context)

        kinds = [(f.call_id, f.error_kind) for f in result.partial_failures]
        assert kinds == [("call_1", "InvalidToolArguments"), ("call_2", "UnresolvedReference")]
        assert len(result.invocations) == 1

    @pytest.mark.asyncio
    async def test_reference_to_unknown_call(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry, [[call("call_1", "generateMap", data={"$ref": "call_9.results"})]]
        )

        result = await orchestrator.orchestrate("map", context)

        assert result.invocations == []
        assert result.partial_failures[0].error_kind == "UnresolvedReference"
        assert result.partial_failures[0].tool_name == "generateMap"

    @pytest.mark.asyncio
    async def test_reference_cycle(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[
                ToolRequest(id="a", name="fullTextSearch", arguments={"query": "orb"}, depends_on=["b"]),
                ToolRequest(id="b", name="fullTextSearch", arguments={"query": "disc"}, depends_on=["a"]),
                call("c", "fullTextSearch", query="triangle"),
            ]],
        )

        result = await orchestrator.orchestrate("cycle", context)

        assert [inv.call_id for inv in result.invocations] == ["c"]
        cycle = [f for f in result.partial_failures if f.error_kind == "UnresolvedReference"]
        assert {f.call_id for f in cycle} == {"a", "b"}
        assert "reference cycle" in cycle[0].message

    @pytest.mark.asyncio
    async def test_upstream_outputs_can_be_referenced(self, registry, context):
        search = await registry.get("advancedSearch").execute(
            context, registry.get("advancedSearch").input_model(categories=["dreams"])
        )
        orchestrator, _ = make_orchestrator(
            registry, [[call("call_1", "generateTimeline", data={"$ref": "query:call_1.results"})]]
        )

        result = await orchestrator.orchestrate(
            "timeline", context, upstream={"query:call_1": search.model_dump(mode="json")}
        )

        assert result.invocations[0].output["summary"]["total_events"] == 2
        assert list(result.final_data) == ["call_1"]

    @pytest.mark.asyncio
    async def test_duplicate_and_missing_ids_are_renamed(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[
                call("x", "fullTextSearch", query="orb"),
                call("x", "fullTextSearch", query="triangle"),
                call("", "fullTextSearch", query="flying"),
            ]],
        )

        result = await orchestrator.orchestrate("search", context)

        assert sorted(inv.call_id for inv in result.invocations) == ["step0_call2", "step0_call3", "x"]


class TestBudget:

    @pytest.mark.asyncio
    async def test_calls_beyond_budget_are_skipped(self, registry, context):
        orchestrator, engine = make_orchestrator(
            registry,
            [[
                call("call_1", "advancedSearch", categories=["dreams"]),
                call("call_2", "rankIdentities"),
                call("call_3", "fullTextSearch", query="orb"),
            ]],
            budget=2,
        )

        result = await orchestrator.orchestrate("everything", context)

        assert len(result.invocations) == 2
        assert result.terminated_by == "ToolBudgetExceeded"
        failure = result.partial_failures[-1]
        assert failure.error_kind == "ToolBudgetExceeded"
        assert failure.message == "Tool budget of 2 calls exhausted; skipped: fullTextSearch"
        assert set(result.final_data) == {"call_1", "call_2"}
        # Terminated passes do not ask the engine again
        assert len(engine.requests) == 1

    @pytest.mark.asyncio
    async def test_budget_spans_steps(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [
                [call("a", "fullTextSearch", query="orb")],
                [call("b", "fullTextSearch", query="disc"), call("c", "fullTextSearch", query="lights")],
            ],
            budget=2,
        )

        result = await orchestrator.orchestrate("search twice", context)

        assert [inv.call_id for inv in result.invocations] == ["a", "b"]
        assert result.terminated_by == "ToolBudgetExceeded"

    @pytest.mark.asyncio
    async def test_narrative_falls_back_to_headlines(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[call("a", "advancedSearch", categories=["dreams"]), call("b", "fullTextSearch", query="orb")]],
            budget=1,
        )

        result = await orchestrator.orchestrate("dreams", context)

        assert result.narrative == "Found 2 experiences for dreams."


class TestTransientFailures:

    @pytest.mark.asyncio
    async def test_store_unavailable_is_retried_once(self, registry, context, database):
        database.unavailable = True
        orchestrator, _ = make_orchestrator(registry, [[call("call_1", "advancedSearch")]])

        result = await orchestrator.orchestrate("anything", context)

        assert [inv.attempt for inv in result.invocations] == [1, 2]
        assert [f.error_kind for f in result.partial_failures] == ["StoreUnavailable"]
        assert result.final_data == {}
        assert result.narrative == "Scripted answer."

    @pytest.mark.asyncio
    async def test_retry_counts_against_budget(self, registry, context, database):
        database.unavailable = True
        orchestrator, _ = make_orchestrator(registry, [[call("call_1", "advancedSearch")]], budget=1)

        result = await orchestrator.orchestrate("anything", context)

        assert len(result.invocations) == 1
        assert [f.error_kind for f in result.partial_failures] == ["StoreUnavailable"]

    @pytest.mark.asyncio
    async def test_retry_can_be_disabled(self, registry, context, database):
        database.unavailable = True
        orchestrator, _ = make_orchestrator(registry, [[call("call_1", "advancedSearch")]], retry_transient=False)

        result = await orchestrator.orchestrate("anything", context)

        assert len(result.invocations) == 1

    @pytest.mark.asyncio
    async def test_tool_timeout_is_retried(self, registry, context, database):
        database.latency_seconds = 0.2
        orchestrator, _ = make_orchestrator(
            registry, [[call("call_1", "fullTextSearch", query="orb")]], tool_timeout=0.02
        )

        result = await orchestrator.orchestrate("orbs", context)

        assert [inv.error.kind for inv in result.invocations] == ["ToolTimeout", "ToolTimeout"]
        assert len(result.partial_failures) == 1

    @pytest.mark.asyncio
    async def test_domain_errors_are_not_retried(self, registry, context):
        orchestrator, _ = make_orchestrator(registry, [[call("call_1", "findConnections", record_id="nope")]])

        result = await orchestrator.orchestrate("connections", context)

        assert len(result.invocations) == 1
        assert result.partial_failures[0].error_kind == "SeedNotFound"


class TestOrchestrationErrors:

    @pytest.mark.asyncio
    async def test_tool_outside_group(self, registry, context):
        orchestrator, _ = make_orchestrator(
            registry,
            [[call("call_1", "generateMap"), call("call_2", "dropTables"), call("call_3", "fullTextSearch", query="orb")]],
        )

        result = await orchestrator.orchestrate("map", context, tool_group=ToolGroup.SEARCH)

        unknown = [f for f in result.partial_failures if f.error_kind == "UnknownTool"]
        assert [(f.tool_name, f.call_id) for f in unknown] == [("generateMap", "call_1"), ("dropTables", "call_2")]
        assert [inv.call_id for inv in result.invocations] == ["call_3"]

    @pytest.mark.asyncio
    async def test_no_tool_selected(self, registry, context):
        orchestrator, _ = make_orchestrator(registry, [EngineDecision(narrative="I can only chat.")])

        with pytest.raises(NoToolSelected) as exc_info:
            await orchestrator.orchestrate("hello", context)

        assert exc_info.value.narrative == "I can only chat."

    @pytest.mark.asyncio
    async def test_engine_failure_before_any_tool_is_raised(self, registry, context):
        engine = ScriptedReasoningEngine([], error_on_step=0)
        orchestrator = Orchestrator(registry, engine)

        with pytest.raises(ReasoningUnavailable):
            await orchestrator.orchestrate("dreams", context)

    @pytest.mark.asyncio
    async def test_engine_failure_after_tools_keeps_results(self, registry, context):
        engine = ScriptedReasoningEngine([[call("call_1", "advancedSearch", categories=["dreams"])]], error_on_step=1)
        orchestrator = Orchestrator(registry, engine)

        result = await orchestrator.orchestrate("dreams", context)

        assert result.terminated_by == "ReasoningUnavailable"
        assert [f.error_kind for f in result.partial_failures] == ["ReasoningUnavailable"]
        assert result.narrative == "Found 2 experiences for dreams."
        assert "call_1" in result.final_data

    @pytest.mark.asyncio
    async def test_request_deadline(self, registry, context, database):
        database.latency_seconds = 0.5
        orchestrator, _ = make_orchestrator(registry, [[call("call_1", "fullTextSearch", query="orb")]])

        result = await orchestrator.orchestrate("orbs", context, timeout=0.05)

        assert result.terminated_by == "RequestTimeout"
        assert result.partial_failures[-1].error_kind == "RequestTimeout"
        assert result.invocations == []

    @pytest.mark.asyncio
    async def test_context_without_store_is_rejected(self, registry):
        orchestrator, engine = make_orchestrator(registry, [[call("call_1", "rankIdentities")]])

        with pytest.raises(MissingContextField):
            await orchestrator.orchestrate("rank", RequestContext(identity_id="alice"))

        assert engine.requests == []


class TestKeywordEngine:

    @pytest.mark.asyncio
    async def test_search_request_end_to_end(self, registry, context):
        from experience_discovery.reasoning.keyword import KeywordReasoningEngine

        orchestrator = Orchestrator(registry, KeywordReasoningEngine())

        result = await orchestrator.orchestrate("UFO sightings in California", context)

        assert result.invocations[0].tool == ToolName.ADVANCED_SEARCH
        assert {r["id"] for r in result.final_data["call_1"]["results"]} == {"r1", "r2"}
        assert result.narrative == "Found 2 experiences for ufo-uap in California."
