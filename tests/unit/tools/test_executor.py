"""
Unit tests for experience_discovery/tools/executor.py.

The executor validates arguments, applies the per-call timeout and turns
every tool failure into a typed error on the returned invocation.
"""

import httpx
import pytest

from experience_discovery.models.domain import ToolName


@pytest.fixture
def executor(registry):
    from experience_discovery.tools.executor import ToolExecutor

    return ToolExecutor(registry, timeout=5.0)


class TestSuccessfulInvocation:

    @pytest.mark.asyncio
    async def test_records_output_and_metadata(self, executor, context):
        invocation = await executor.execute(
            ToolName.ADVANCED_SEARCH, "call_1", {"categories": ["dreams"]}, context, step=2, specialist="insight"
        )

        assert invocation.succeeded
        assert invocation.call_id == "call_1"
        assert invocation.tool == ToolName.ADVANCED_SEARCH
        assert invocation.output["total"] == 2
        assert invocation.validated_arguments["limit"] == 50
        assert invocation.raw_arguments == {"categories": ["dreams"]}
        assert invocation.headline == "Found 2 experiences for dreams."
        assert invocation.step == 2
        assert invocation.attempt == 1
        assert invocation.specialist == "insight"
        assert invocation.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_accepts_wire_names(self, executor, context):
        invocation = await executor.execute("fullTextSearch", "c", {"query": "orb"}, context)

        assert invocation.tool == ToolName.FULL_TEXT_SEARCH
        assert invocation.output["results"][0]["id"] == "r3"


class TestFailedInvocation:

    @pytest.mark.asyncio
    async def test_invalid_arguments_name_the_field(self, executor, context, database):
        invocation = await executor.execute(ToolName.ADVANCED_SEARCH, "c", {"limit": 0}, context)

        assert invocation.error.kind == "InvalidToolArguments"
        assert invocation.error.category.value == "tool_input"
        assert invocation.error.field == "limit"
        assert invocation.validated_arguments is None
        assert database.query_log == []

    @pytest.mark.asyncio
    async def test_unknown_arguments_are_rejected(self, executor, context):
        invocation = await executor.execute(ToolName.GEO_SEARCH, "c", {"everywhere": True}, context)

        assert invocation.error.kind == "InvalidToolArguments"

    @pytest.mark.asyncio
    async def test_domain_error_is_kept(self, executor, context):
        invocation = await executor.execute(ToolName.FIND_CONNECTIONS, "c", {"record_id": "nope"}, context)

        assert invocation.error.kind == "SeedNotFound"
        assert invocation.output is None

    @pytest.mark.asyncio
    async def test_slow_tool_times_out(self, registry, context, database):
        from experience_discovery.tools.executor import ToolExecutor

        database.latency_seconds = 0.5
        executor = ToolExecutor(registry, timeout=0.05)

        invocation = await executor.execute(ToolName.ADVANCED_SEARCH, "c", {}, context)

        assert invocation.error.kind == "ToolTimeout"
        assert invocation.error.category.value == "execution"

    @pytest.mark.asyncio
    async def test_store_outage(self, executor, context, database):
        database.unavailable = True

        invocation = await executor.execute(ToolName.ADVANCED_SEARCH, "c", {}, context)

        assert invocation.error.kind == "StoreUnavailable"

    @pytest.mark.asyncio
    async def test_broken_context_propagates(self, executor):
        from experience_discovery.core.context import RequestContext
        from experience_discovery.core.exceptions import MissingContextField

        context = RequestContext(identity_id="alice")

        with pytest.raises(MissingContextField):
            await executor.execute(ToolName.ADVANCED_SEARCH, "c", {}, context)

    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self, executor, context):
        from experience_discovery.core.exceptions import UnknownTool

        with pytest.raises(UnknownTool):
            await executor.execute("teleport", "c", {}, context)


class TestErrorMapping:

    @pytest.mark.parametrize(
        "error,kind",
        [
            (TimeoutError(), "ToolTimeout"),
            (ConnectionResetError("reset"), "StoreUnavailable"),
            (httpx.ReadTimeout("slow"), "StoreUnavailable"),
            (KeyError("missing"), "ToolExecutionFailed"),
        ],
    )
    def test_untyped_exceptions(self, error, kind):
        from experience_discovery.tools.executor import to_typed_error

        assert to_typed_error(error, "advancedSearch", 10.0).kind == kind

    def test_typed_errors_pass_through(self):
        from experience_discovery.core.exceptions import InsufficientData
        from experience_discovery.tools.executor import to_typed_error

        error = InsufficientData("two points")

        assert to_typed_error(error, "predictTrends", 10.0) is error
