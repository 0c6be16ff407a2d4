"""
Unit tests for findConnections and detectPatterns
(experience_discovery/tools/builtin/relationships.py).
"""

import pytest

from experience_discovery.models.records import RecordSummary
from experience_discovery.tools.executor import validate_arguments


async def run(registry, context, name, **arguments):
    tool = registry.get(name)
    return await tool.execute(context, validate_arguments(tool, arguments))


class TestFindConnections:

    @pytest.mark.asyncio
    async def test_time_and_attribute_signals(self, registry, context):
        output = await run(
            registry, context, "findConnections",
            record_id="r1", signals=["temporal", "attributes"], min_score=0.0,
        )

        assert output.seed.id == "r1"
        assert output.weights == {"temporal": 0.2, "attributes": 0.1}
        assert output.candidates_considered == 5
        best = output.connections[0]
        assert best.record.id == "r2"
        assert best.signals["attributes"] == 1.0
        assert "shared attributes" in best.reasons
        assert [c.record.id for c in output.connections][1] == "r4"

    @pytest.mark.asyncio
    async def test_min_score_filters_candidates(self, registry, context):
        output = await run(
            registry, context, "findConnections",
            record_id="r1", signals=["temporal", "attributes"], min_score=0.9,
        )

        assert [c.record.id for c in output.connections] == ["r2"]

    @pytest.mark.asyncio
    async def test_category_restricts_candidates(self, registry, context):
        output = await run(
            registry, context, "findConnections",
            record_id="r1", category="dreams", min_score=0.0,
        )

        assert {c.record.id for c in output.connections} <= {"r4", "r5"}
        assert output.candidates_considered == 2

    @pytest.mark.asyncio
    async def test_seed_from_another_tenant_is_not_found(self, registry, context, globex_context):
        from experience_discovery.core.exceptions import SeedNotFound

        with pytest.raises(SeedNotFound):
            await run(registry, globex_context, "findConnections", record_id="r1")
        with pytest.raises(SeedNotFound, match="g1"):
            await run(registry, context, "findConnections", record_id="g1")

    def test_combine_normalizes_over_enabled_weights(self):
        from experience_discovery.tools.builtin.relationships import combine

        signals = {"semantic": 1.0, "geographic": 0.0, "temporal": 0.5, "attributes": 0.0}

        assert combine(signals, {"semantic": 0.4, "temporal": 0.2}) == pytest.approx(0.5 / 0.6)
        assert combine(signals, {}) == 0.0

    def test_zero_weight_signal_is_disabled(self):
        from experience_discovery.core.config import AnalysisSettings
        from experience_discovery.tools.builtin.relationships import signal_weights

        analysis = AnalysisSettings(semantic_weight=0.0)

        assert "semantic" not in signal_weights(analysis, ["semantic", "temporal"])


class TestDetectPatterns:

    @staticmethod
    def _rows():
        rows = [
            RecordSummary(id=f"s{i}", category="ufo-uap", location_text="Sacramento, California")
            for i in range(4)
        ]
        rows.append(RecordSummary(id="d1", category="dreams", location_text="Berlin, Germany"))
        return [row.model_dump(mode="json") for row in rows]

    @pytest.mark.asyncio
    async def test_never_touches_the_store(self, registry, context, database):
        output = await run(registry, context, "detectPatterns", data=self._rows())

        assert database.query_log == []
        assert output.analyzed == 5

    @pytest.mark.asyncio
    async def test_category_dominance(self, registry, context):
        output = await run(registry, context, "detectPatterns", data=self._rows(), pattern_type="category")

        assert [p.data["category"] for p in output.patterns] == ["ufo-uap"]
        assert output.patterns[0].data["share"] == 0.8

    @pytest.mark.asyncio
    async def test_geographic_hotspot(self, registry, context):
        output = await run(registry, context, "detectPatterns", data=self._rows(), pattern_type="geographic")

        assert [p.data["area"] for p in output.patterns] == ["Sacramento, California"]

    def test_temporal_spike(self):
        from datetime import datetime

        from experience_discovery.tools.builtin.relationships import temporal_spikes

        rows = [RecordSummary(id=f"m{m}", occurred_at=datetime(2024, m, 1)) for m in range(1, 6)]
        rows += [RecordSummary(id=f"x{i}", occurred_at=datetime(2024, 6, 1)) for i in range(6)]

        spikes = temporal_spikes(rows, sigma_threshold=1.5)

        assert [p.data["period"] for p in spikes] == ["2024-06"]

    def test_data_is_required(self, registry):
        from experience_discovery.core.exceptions import InvalidToolArguments

        with pytest.raises(InvalidToolArguments) as exc_info:
            validate_arguments(registry.get("detectPatterns"), {})

        assert exc_info.value.field == "data"
