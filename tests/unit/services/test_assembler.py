"""
Unit tests for experience_discovery/services/assembler.py.
"""

from datetime import datetime, timezone

import pytest

from experience_discovery.core.exceptions import ComparisonIncomplete, ToolBudgetExceeded
from experience_discovery.models.domain import (
    OrchestrationResult,
    PartialFailure,
    ToolError,
    ToolInvocation,
    ToolName,
)
from experience_discovery.services.assembler import ResponseAssembler, describe_failure


@pytest.fixture
def assembler():
    return ResponseAssembler()


def _succeeded(call_id="call_1"):
    return ToolInvocation(
        call_id=call_id,
        tool=ToolName.ADVANCED_SEARCH,
        raw_arguments={"categories": ["dreams"]},
        output={"total": 2},
        headline="Found 2 experiences for dreams.",
        started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        duration_ms=3.5,
    )


def _failed(call_id="call_2"):
    error = ComparisonIncomplete(["ghosts"])
    return ToolInvocation(
        call_id=call_id,
        tool=ToolName.COMPARE_CATEGORIES,
        raw_arguments={"category_a": "dreams", "category_b": "ghosts"},
        error=ToolError.from_exception(error),
        started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        duration_ms=1.0,
        attempt=1,
        specialist="insight",
    )


class TestWrap:

    def test_provenance_follows_invocations(self, assembler):
        failed = _failed()
        result = OrchestrationResult(
            narrative="Found 2 experiences for dreams.",
            invocations=[_succeeded(), failed],
            final_data={"call_1": {"total": 2}},
            partial_failures=[PartialFailure.from_invocation(failed)],
            tool_group="insights",
            trace_id="trace-1",
        )

        response = assembler.wrap(result)

        first, second = response.provenance
        assert (first.call_id, first.tool, first.status) == ("call_1", "advancedSearch", "succeeded")
        assert first.arguments == {"categories": ["dreams"]}
        assert first.duration_ms == 3.5
        assert second.status == "failed"
        assert second.error_kind == "ComparisonIncomplete"
        assert second.specialist == "insight"
        assert response.final_data == {"call_1": {"total": 2}}
        assert response.trace_id == "trace-1"
        assert response.tool_group == "insights"
        assert response.narrative == (
            "Found 2 experiences for dreams. Could not compare: one of the categories has no records."
        )

    def test_no_failures_keeps_narrative(self, assembler):
        response = assembler.wrap(OrchestrationResult(narrative="  All good.  ", invocations=[_succeeded()]))

        assert response.narrative == "All good."
        assert response.partial_failures == []

    def test_empty_result_still_has_a_narrative(self, assembler):
        response = assembler.wrap(OrchestrationResult(narrative=""))

        assert response.narrative == "No results could be produced for this request."


class TestNarrative:

    def test_each_distinct_failure_is_mentioned_once(self):
        budget = PartialFailure.from_error(ToolBudgetExceeded(2, ["geoSearch"]))

        text = ResponseAssembler.narrative("Done.", [budget, budget])

        assert text == "Done. Stopped early: the limit on tool calls for one request was reached."

    def test_tool_label_is_used(self):
        failure = PartialFailure(
            tool_name="generateMap",
            call_id="call_2",
            error_kind="ToolTimeout",
            category="execution",
            message="generateMap timed out after 10s",
        )

        assert describe_failure(failure) == "The map took too long and was stopped"

    def test_unknown_kind_and_tool(self):
        failure = PartialFailure(error_kind="Mystery", category="execution", message="?")

        assert describe_failure(failure) == "A step did not complete"


class TestMerge:

    def test_merges_specialist_results(self, assembler):
        first = OrchestrationResult(
            narrative="Found 2 experiences for dreams.",
            invocations=[_succeeded().model_copy(update={"specialist": "query"})],
            final_data={"call_1": {"total": 2}},
            tool_group="search",
        )
        second = OrchestrationResult(narrative="Nothing to compare.", tool_group="insights")

        response = assembler.merge([first, second])

        assert response.narrative == "Found 2 experiences for dreams. Nothing to compare."
        assert response.final_data == {"query:call_1": {"total": 2}}
        assert response.tool_group == "network"

    def test_merge_needs_results(self, assembler):
        with pytest.raises(ValueError):
            assembler.merge([])
