"""
Unit tests for engine selection and the scripted test doubles.
"""

import pytest

from experience_discovery.core.config import Settings
from experience_discovery.core.exceptions import ReasoningUnavailable
from experience_discovery.reasoning.base import EngineDecision, EngineRequest
from experience_discovery.reasoning.factory import create_coordinator, create_reasoning_engine
from experience_discovery.reasoning.fake import ScriptedCoordinator, ScriptedReasoningEngine, call
from experience_discovery.reasoning.keyword import KeywordCoordinator, KeywordReasoningEngine
from experience_discovery.reasoning.llm import AnthropicReasoningEngine, LLMCoordinator, OpenAIReasoningEngine


class TestCreateReasoningEngine:

    def test_keyword_is_the_default(self, test_settings):
        engine = create_reasoning_engine(test_settings)

        assert isinstance(engine, KeywordReasoningEngine)
        assert isinstance(create_coordinator(test_settings, engine), KeywordCoordinator)

    def test_anthropic(self):
        settings = Settings(reasoning_engine="anthropic", anthropic_api_key="sk-ant-test")

        engine = create_reasoning_engine(settings)

        assert isinstance(engine, AnthropicReasoningEngine)
        assert isinstance(create_coordinator(settings, engine), LLMCoordinator)

    def test_openai(self):
        settings = Settings(reasoning_engine="openai", openai_api_key="sk-test")

        assert isinstance(create_reasoning_engine(settings), OpenAIReasoningEngine)

    @pytest.mark.parametrize("engine", ["anthropic", "openai"])
    def test_provider_engines_need_a_key(self, engine):
        settings = Settings(reasoning_engine=engine, anthropic_api_key="", openai_api_key="")

        with pytest.raises(ValueError, match="API_KEY"):
            create_reasoning_engine(settings)


class TestScriptedDoubles:

    @pytest.mark.asyncio
    async def test_engine_replays_script_then_finishes(self):
        engine = ScriptedReasoningEngine(
            [[call("a", "advancedSearch", categories=["dreams"])], EngineDecision(narrative="Early answer.")]
        )

        first = await engine.decide(EngineRequest(request_text="dreams", step=0))
        second = await engine.decide(EngineRequest(request_text="dreams", step=1))
        third = await engine.decide(EngineRequest(request_text="dreams", step=2))

        assert first.tool_calls[0].arguments == {"categories": ["dreams"]}
        assert second.narrative == "Early answer."
        assert third.narrative == "Scripted answer."
        assert len(engine.requests) == 3

    @pytest.mark.asyncio
    async def test_engine_failure_on_step(self):
        engine = ScriptedReasoningEngine(error_on_step=0)

        with pytest.raises(ReasoningUnavailable):
            await engine.decide(EngineRequest(request_text="dreams"))

    @pytest.mark.asyncio
    async def test_coordinator_uses_fixed_task(self):
        coordinator = ScriptedCoordinator(["query", "insight"], task="dreams")

        delegations = await coordinator.delegate("anything", [])

        assert [(d.specialist, d.task) for d in delegations] == [("query", "dreams"), ("insight", "dreams")]
        assert coordinator.calls == [("anything", [])]
