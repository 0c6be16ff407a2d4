"""
End-to-end discovery flows.

Each flow runs a natural-language request through the keyword engine,
the orchestrator and the real tools, once in-process and once over HTTP.
Tool failures must come back inside the result, never as exceptions.
"""

import pytest

from experience_discovery.models.domain import ToolName
from experience_discovery.services.assembler import ResponseAssembler


pytestmark = pytest.mark.integration


SEARCH_TOOLS = {
    ToolName.ADVANCED_SEARCH,
    ToolName.ATTRIBUTE_SEARCH,
    ToolName.SEMANTIC_SEARCH,
    ToolName.FULL_TEXT_SEARCH,
    ToolName.GEO_SEARCH,
}


class TestSearchFlow:

    @pytest.mark.asyncio
    async def test_ufo_sightings_in_california(self, orchestrator, context):
        result = await orchestrator.orchestrate("UFO sightings in California", context)

        invocation, = result.invocations
        assert invocation.tool in SEARCH_TOOLS
        assert invocation.error is None
        assert invocation.validated_arguments["categories"] == ["ufo-uap"]
        assert invocation.validated_arguments["location"]["text"] == "California"
        assert result.partial_failures == []
        assert {r["id"] for r in result.final_data["call_1"]["results"]} == {"r1", "r2"}

    @pytest.mark.asyncio
    async def test_other_tenants_records_stay_hidden(self, orchestrator, globex_context):
        result = await orchestrator.orchestrate("UFO sightings in California", globex_context)

        assert [r["id"] for r in result.final_data["call_1"]["results"]] == ["g1"]

    def test_over_http(self, client):
        response = client.post(
            "/v1/discover", json={"query": "UFO sightings in California"}, headers={"X-Identity-Id": "alice"}
        )

        body = response.json()
        assert response.status_code == 200
        assert len(body["provenance"]) == 1
        assert body["provenance"][0]["status"] == "succeeded"


class TestComparisonFlow:

    @pytest.mark.asyncio
    async def test_empty_side_is_a_partial_failure(self, orchestrator, dave_context):
        result = await orchestrator.orchestrate("compare dreams vs psychedelics", dave_context)

        assert result.narrative
        failure, = result.partial_failures
        assert failure.error_kind == "ComparisonIncomplete"
        assert failure.tool_name == "compareCategories"
        assert failure.message == "No records for: psychedelics"
        assert result.invocations[0].raw_arguments == {"category_a": "dreams", "category_b": "psychedelics"}

    @pytest.mark.asyncio
    async def test_assembled_narrative_mentions_the_failure(self, orchestrator, dave_context):
        result = await orchestrator.orchestrate("compare dreams vs psychedelics", dave_context)

        response = ResponseAssembler().wrap(result)

        assert response.narrative.endswith("Could not compare: one of the categories has no records.")

    @pytest.mark.asyncio
    async def test_both_sides_present(self, orchestrator, context):
        result = await orchestrator.orchestrate("compare dreams vs psychedelics", context)

        assert result.partial_failures == []
        assert result.final_data["call_1"]["volume"]["ratio"] == 2.0

    def test_over_http(self, client):
        response = client.post(
            "/v1/discover", json={"query": "compare dreams vs psychedelics"}, headers={"X-Identity-Id": "dave"}
        )

        body = response.json()
        assert response.status_code == 200
        assert [f["error_kind"] for f in body["partial_failures"]] == ["ComparisonIncomplete"]


class TestConnectionsFlow:

    @pytest.mark.asyncio
    async def test_seed_from_another_tenant_is_not_found(self, orchestrator, context):
        result = await orchestrator.orchestrate("find connections to record g1", context)

        failure, = result.partial_failures
        assert failure.error_kind == "SeedNotFound"
        assert failure.call_id == "call_1"
        assert result.invocations[0].tool == ToolName.FIND_CONNECTIONS
        assert result.final_data == {}
        assert result.narrative

    @pytest.mark.asyncio
    async def test_existing_seed(self, orchestrator, context):
        result = await orchestrator.orchestrate("find connections to record r1", context)

        assert result.partial_failures == []
        assert result.final_data["call_1"]["seed"]["id"] == "r1"

    def test_over_http_through_the_router(self, client):
        response = client.post(
            "/v1/discover/network", json={"query": "find connections to record zz9"}, headers={"X-Identity-Id": "alice"}
        )

        body = response.json()
        assert response.status_code == 200
        assert [(p["specialist"], p["tool"]) for p in body["provenance"]] == [("relationship", "findConnections")]
        assert body["partial_failures"][0]["error_kind"] == "SeedNotFound"
