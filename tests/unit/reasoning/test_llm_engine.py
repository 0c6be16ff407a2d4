"""
Unit tests for experience_discovery/reasoning/llm.py.

The provider SDK clients are replaced with AsyncMock objects, so these
tests check request building, response parsing, model selection and
error mapping without network access.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from experience_discovery.core.config import Settings
from experience_discovery.core.exceptions import ReasoningUnavailable
from experience_discovery.models.domain import ConversationTurn
from experience_discovery.reasoning.base import EngineRequest, SpecialistInfo, ToolObservation
from experience_discovery.reasoning.llm import (
    AnthropicReasoningEngine,
    LLMCoordinator,
    OpenAIReasoningEngine,
    analyze_complexity,
    history_messages,
    parse_delegations,
    render_step,
    select_model,
)
from experience_discovery.tools.groups import ToolGroup, tools_for_group


@pytest.fixture
def settings():
    return Settings(reasoning_model="base-model", reasoning_model_advanced="advanced-model")


@pytest.fixture
def search_request(registry):
    return EngineRequest(
        request_text="dream reports",
        tools=registry.schemas(list(tools_for_group(ToolGroup.SEARCH))),
        tier="free",
    )


class FakeBlock:
    """Anthropic content block stand-in."""

    def __init__(self, **data):
        self._data = data
        self.text = data.get("text", "")

    def model_dump(self):
        return dict(self._data)


def anthropic_client(*blocks):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=list(blocks)))
    return client


def openai_client(content=None, tool_calls=None):
    client = MagicMock()
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    return client


def _openai_tool_call(call_id, name, arguments):
    tool_call = MagicMock()
    tool_call.model_dump.return_value = {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": arguments},
    }
    return tool_call


def _request():
    return httpx.Request("POST", "https://api.example.test/v1/messages")


# =============================================================================
# Model Selection
# =============================================================================


class TestModelSelection:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("UFO sightings in California", "simple"),
            ("compare dreams vs psychedelics", "complex"),
            ("predict", "simple"),
            ("predict how the number of dream reports from people in Berlin will develop next year", "complex"),
        ],
    )
    def test_analyze_complexity(self, text, expected):
        assert analyze_complexity(text) == expected

    def test_paid_complex_requests_get_the_advanced_model(self, settings):
        assert select_model(settings, "pro", "complex") == "advanced-model"
        assert select_model(settings, "enterprise", "complex") == "advanced-model"

    @pytest.mark.parametrize("tier", ["free", None, "platinum"])
    def test_other_tiers_get_the_base_model(self, settings, tier):
        assert select_model(settings, tier, "complex") == "base-model"

    def test_simple_requests_get_the_base_model(self, settings):
        assert select_model(settings, "pro", "simple") == "base-model"


# =============================================================================
# Prompt Rendering
# =============================================================================


class TestRendering:

    def test_render_step(self):
        request = EngineRequest(
            request_text="map dreams",
            upstream={"query:call_1": {"results": [], "total": 0}},
            observations=[
                ToolObservation(call_id="call_1", tool="generateMap", status="failed",
                                error_kind="ToolTimeout", error_message="generateMap timed out"),
            ],
            locale="de",
        )

        text = render_step(request)

        assert text.startswith("Request: map dreams\nLocale: de")
        assert "- query:call_1: results, total" in text
        assert "- call_1 generateMap FAILED (ToolTimeout): generateMap timed out" in text

    def test_history_starts_with_a_user_turn(self):
        history = [
            ConversationTurn(role="assistant", content="Hello"),
            ConversationTurn(role="user", content="dreams"),
            ConversationTurn(role="assistant", content="Found 2."),
        ]

        assert [m["role"] for m in history_messages(history)] == ["user", "assistant"]

    def test_parse_delegations(self):
        reply = 'Sure: [{"specialist": "query", "task": "find dreams"}, {"task": "no name"}]'

        delegations = parse_delegations(reply)

        assert [(d.specialist, d.task) for d in delegations] == [("query", "find dreams")]

    @pytest.mark.parametrize("reply", ["no idea", "[not json]", '{"specialist": "query"}'])
    def test_malformed_delegations(self, reply):
        assert parse_delegations(reply) == []


# =============================================================================
# Anthropic
# =============================================================================


class TestAnthropicEngine:

    @pytest.mark.asyncio
    async def test_decide_parses_tool_use_blocks(self, search_request, settings):
        client = anthropic_client(
            FakeBlock(type="text", text="Searching."),
            FakeBlock(type="tool_use", id="toolu_1", name="advancedSearch", input={"categories": ["dreams"]}),
        )
        engine = AnthropicReasoningEngine(api_key="test", model="base-model", settings=settings, client=client)

        decision = await engine.decide(search_request)

        assert [(c.id, c.name, c.arguments) for c in decision.tool_calls] == [
            ("toolu_1", "advancedSearch", {"categories": ["dreams"]})
        ]
        assert decision.narrative == "Searching."
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "base-model"
        assert [t["name"] for t in kwargs["tools"]] == search_request.tool_names
        assert "input_schema" in kwargs["tools"][0]
        assert kwargs["messages"][-1]["role"] == "user"

    @pytest.mark.asyncio
    async def test_text_only_response_is_final(self, search_request):
        client = anthropic_client(FakeBlock(type="text", text="Two dream reports were found."))
        engine = AnthropicReasoningEngine(api_key="test", model="base-model", client=client)

        decision = await engine.decide(search_request)

        assert decision.is_final
        assert decision.narrative == "Two dream reports were found."

    @pytest.mark.asyncio
    async def test_advanced_model_without_settings(self, registry):
        client = anthropic_client(FakeBlock(type="text", text="Done."))
        engine = AnthropicReasoningEngine(
            api_key="test", model="base-model", advanced_model="advanced-model", client=client
        )
        request = EngineRequest(request_text="compare dreams vs psychedelics", tier="pro")

        await engine.decide(request)

        assert client.messages.create.call_args.kwargs["model"] == "advanced-model"

    @pytest.mark.asyncio
    async def test_retries_then_gives_up(self, search_request):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(request=_request()))
        engine = AnthropicReasoningEngine(api_key="test", model="m", client=client, max_retries=2, retry_delay=0)

        with pytest.raises(ReasoningUnavailable) as exc_info:
            await engine.decide(search_request)

        assert client.messages.create.await_count == 2
        assert exc_info.value.engine == "anthropic"

    @pytest.mark.asyncio
    async def test_authentication_errors_are_not_retried(self, search_request):
        response = httpx.Response(401, request=_request())
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.AuthenticationError("invalid x-api-key", response=response, body=None)
        )
        engine = AnthropicReasoningEngine(api_key="bad", model="m", client=client, retry_delay=0)

        with pytest.raises(ReasoningUnavailable, match="rejected"):
            await engine.decide(search_request)

        assert client.messages.create.await_count == 1

    @pytest.mark.asyncio
    async def test_recovers_after_a_transient_error(self, search_request):
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=[
                anthropic.APIConnectionError(request=_request()),
                SimpleNamespace(content=[FakeBlock(type="text", text="Done.")]),
            ]
        )
        engine = AnthropicReasoningEngine(api_key="test", model="m", client=client, retry_delay=0)

        decision = await engine.decide(search_request)

        assert decision.narrative == "Done."


# =============================================================================
# OpenAI
# =============================================================================


class TestOpenAIEngine:

    @pytest.mark.asyncio
    async def test_decide_parses_tool_calls(self, search_request):
        client = openai_client(tool_calls=[_openai_tool_call("call_a", "fullTextSearch", '{"query": "orb"}')])
        engine = OpenAIReasoningEngine(api_key="test", model="gpt-test", client=client)

        decision = await engine.decide(search_request)

        assert [(c.id, c.name, c.arguments) for c in decision.tool_calls] == [
            ("call_a", "fullTextSearch", {"query": "orb"})
        ]
        assert decision.narrative is None
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["tools"][0]["type"] == "function"
        assert kwargs["tools"][0]["function"]["name"] == search_request.tool_names[0]

    @pytest.mark.asyncio
    async def test_malformed_arguments_become_empty(self, search_request):
        client = openai_client(tool_calls=[_openai_tool_call("call_a", "fullTextSearch", "{not json")])
        engine = OpenAIReasoningEngine(api_key="test", model="gpt-test", client=client)

        decision = await engine.decide(search_request)

        assert decision.tool_calls[0].arguments == {}

    @pytest.mark.asyncio
    async def test_no_tools_are_sent_when_none_are_exposed(self):
        client = openai_client(content="Nothing to do.")
        engine = OpenAIReasoningEngine(api_key="test", model="gpt-test", client=client)

        decision = await engine.decide(EngineRequest(request_text="hello"))

        assert "tools" not in client.chat.completions.create.call_args.kwargs
        assert decision.narrative == "Nothing to do."

    @pytest.mark.asyncio
    async def test_bad_request_is_fatal(self, search_request):
        response = httpx.Response(400, request=_request())
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=openai.BadRequestError("bad tools", response=response, body=None)
        )
        engine = OpenAIReasoningEngine(api_key="test", model="gpt-test", client=client, retry_delay=0)

        with pytest.raises(ReasoningUnavailable) as exc_info:
            await engine.decide(search_request)

        assert exc_info.value.engine == "openai"
        assert client.chat.completions.create.await_count == 1


# =============================================================================
# Coordinator
# =============================================================================


class TestLLMCoordinator:

    @pytest.mark.asyncio
    async def test_keeps_known_specialists_and_fills_tasks(self):
        client = anthropic_client(
            FakeBlock(type="text", text='[{"specialist": "query", "task": ""}, {"specialist": "astrology", "task": "x"}]')
        )
        coordinator = LLMCoordinator(AnthropicReasoningEngine(api_key="test", model="m", client=client))

        delegations = await coordinator.delegate(
            "dream reports", [SpecialistInfo(name="query", description="Finds records")]
        )

        assert [(d.specialist, d.task) for d in delegations] == [("query", "dream reports")]
        prompt = client.messages.create.call_args.kwargs["messages"][-1]["content"]
        assert "- query: Finds records" in prompt
        assert "tools" not in client.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_openai_backed_coordinator(self):
        client = openai_client(content="[]")
        coordinator = LLMCoordinator(OpenAIReasoningEngine(api_key="test", model="gpt-test", client=client))

        assert await coordinator.delegate("tell me a joke", [SpecialistInfo(name="query", description="")]) == []
