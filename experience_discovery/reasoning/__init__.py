"""
Reasoning Package - the replaceable decision-makers behind the orchestrator.

Exports:
- ReasoningEngine / CoordinatorEngine: ports
- KeywordReasoningEngine / KeywordCoordinator: deterministic adapters
- AnthropicReasoningEngine / OpenAIReasoningEngine / LLMCoordinator: provider adapters
- ScriptedReasoningEngine / ScriptedCoordinator: test doubles
"""

from experience_discovery.reasoning.base import (
    CoordinatorEngine,
    Delegation,
    EngineDecision,
    EngineRequest,
    ReasoningEngine,
    SpecialistInfo,
    ToolObservation,
)
from experience_discovery.reasoning.fake import ScriptedCoordinator, ScriptedReasoningEngine
from experience_discovery.reasoning.keyword import KeywordCoordinator, KeywordReasoningEngine, parse_request
from experience_discovery.reasoning.llm import (
    AnthropicReasoningEngine,
    LLMCoordinator,
    OpenAIReasoningEngine,
    analyze_complexity,
    select_model,
)
from experience_discovery.reasoning.factory import create_coordinator, create_reasoning_engine

__all__ = [
    "AnthropicReasoningEngine",
    "CoordinatorEngine",
    "Delegation",
    "EngineDecision",
    "EngineRequest",
    "KeywordCoordinator",
    "KeywordReasoningEngine",
    "LLMCoordinator",
    "OpenAIReasoningEngine",
    "ReasoningEngine",
    "ScriptedCoordinator",
    "ScriptedReasoningEngine",
    "SpecialistInfo",
    "ToolObservation",
    "analyze_complexity",
    "create_coordinator",
    "create_reasoning_engine",
    "parse_request",
    "select_model",
]
