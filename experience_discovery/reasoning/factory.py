"""
Reasoning engine factory - picks the engine named in configuration.
"""

from experience_discovery.core.config import Settings
from experience_discovery.reasoning.base import CoordinatorEngine, ReasoningEngine
from experience_discovery.reasoning.keyword import KeywordCoordinator, KeywordReasoningEngine
from experience_discovery.reasoning.llm import AnthropicReasoningEngine, LLMCoordinator, OpenAIReasoningEngine


def create_reasoning_engine(settings: Settings) -> ReasoningEngine:
    """
    Build the configured ReasoningEngine.

    Raises:
        ValueError: A provider engine is configured without its API key.
    """
    match settings.reasoning_engine:
        case "anthropic":
            api_key = settings.anthropic_api_key.get_secret_value()
            if not api_key:
                raise ValueError("reasoning_engine=anthropic requires EXPERIENCE_DISCOVERY_ANTHROPIC_API_KEY")
            return AnthropicReasoningEngine(
                api_key=api_key,
                model=settings.reasoning_model,
                advanced_model=settings.reasoning_model_advanced,
                max_tokens=settings.reasoning_max_tokens,
                settings=settings,
            )
        case "openai":
            api_key = settings.openai_api_key.get_secret_value()
            if not api_key:
                raise ValueError("reasoning_engine=openai requires EXPERIENCE_DISCOVERY_OPENAI_API_KEY")
            return OpenAIReasoningEngine(
                api_key=api_key,
                model=settings.reasoning_model,
                advanced_model=settings.reasoning_model_advanced,
                max_tokens=settings.reasoning_max_tokens,
                settings=settings,
            )
        case _:
            return KeywordReasoningEngine()


def create_coordinator(settings: Settings, engine: ReasoningEngine) -> CoordinatorEngine:
    """The coordinator matching the engine: LLM-backed engines coordinate with the same client."""
    if isinstance(engine, (AnthropicReasoningEngine, OpenAIReasoningEngine)):
        return LLMCoordinator(engine)
    return KeywordCoordinator()
