"""
LLM Reasoning Engines - Anthropic and OpenAI tool-calling adapters.

Both engines are stateless: every step sends the request, the prior turns
and a rendering of the calls completed so far, and reads tool calls (or a
final answer) from the response.

Format differences:
- Tool definition: Anthropic ``input_schema`` vs OpenAI ``function.parameters``
- Tool calls: Anthropic ``tool_use`` content blocks vs OpenAI ``tool_calls``
  with JSON-string arguments

Pattern: Ports and Adapters (one adapter per provider SDK)
Pattern: Exponential backoff for transient provider errors
"""

import asyncio
import json
import re
from abc import abstractmethod
from typing import Any, Callable, Literal, Optional

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from experience_discovery.core.config import Settings
from experience_discovery.core.context import Tier
from experience_discovery.core.exceptions import ReasoningUnavailable
from experience_discovery.models.domain import ConversationTurn, ToolRequest
from experience_discovery.observability.logging import get_logger
from experience_discovery.reasoning.base import (
    CoordinatorEngine,
    Delegation,
    EngineDecision,
    EngineRequest,
    ReasoningEngine,
    SpecialistInfo,
)
from experience_discovery.tools.base import ToolSchema


logger = get_logger(__name__)

Complexity = Literal["simple", "complex"]

# Rendered observation outputs are cut to this many characters
OBSERVATION_CHARS = 2000

SYSTEM_PROMPT = """You help people explore a corpus of reports about extraordinary experiences \
(UFO/UAP sightings, dreams, psychedelic experiences, near-death and out-of-body experiences, \
ghosts, psychic events and synchronicities).

Use the provided tools to answer. Category slugs are: ufo-uap, dreams, psychedelics, nde-obe, \
ghost-spirit, psychic, synchronicity. To pass the output of an earlier call to a later one, use \
{"$ref": "<call_id>.<field>"} as the argument value, for example {"$ref": "call_1.results"}. \
Calls in one response run concurrently unless one references another.

When the completed calls answer the request, reply with a short plain-language summary and no \
tool calls. Mention any step that failed."""

COORDINATOR_PROMPT = """You route requests about a corpus of extraordinary-experience reports to \
specialists. Reply with a JSON array only, e.g. [{"specialist": "query", "task": "..."}], listing \
the specialists to run in order. Put "query" first when later specialists need records to work \
on. Reply [] if no specialist fits."""

_COMPLEX_MARKERS = re.compile(
    r"\bcompare\b|\bvs\.?\b|\bcorrelat|\bpredict|\bforecast|\btrend|\bpatterns?\b|\bconnections?\b"
    r"|\bwhy\b|\bexplain\b|\bthen\b|\bvisuali[sz]|\bdashboard\b|\bnetwork\b",
    re.IGNORECASE,
)


# =============================================================================
# Model Selection
# =============================================================================


def analyze_complexity(text: str) -> Complexity:
    """Classify a request: several analytical asks, or one long one, is complex."""
    markers = len(_COMPLEX_MARKERS.findall(text))
    if markers >= 2 or (markers == 1 and len(text.split()) > 12):
        return "complex"
    return "simple"


def select_model(settings: Settings, tier: Optional[str], complexity: Complexity) -> str:
    """
    Pick the model for a request.

    Complex requests from paid tiers get the advanced model; everything
    else, including unknown tiers, gets the base model.
    """
    paid = tier in {Tier.PRO.value, Tier.ENTERPRISE.value}
    if complexity == "complex" and paid:
        return settings.reasoning_model_advanced
    return settings.reasoning_model


# =============================================================================
# Prompt Rendering
# =============================================================================


def render_step(request: EngineRequest) -> str:
    """The user message for one step: request, handed-over data and completed calls."""
    lines = [f"Request: {request.request_text}", f"Locale: {request.locale}"]
    if request.upstream:
        lines.append("")
        lines.append("Data from earlier steps (reference with {\"$ref\": \"<id>.<field>\"}):")
        for key, value in request.upstream.items():
            fields = ", ".join(value) if isinstance(value, dict) else type(value).__name__
            lines.append(f"- {key}: {fields}")
    if request.observations:
        lines.append("")
        lines.append("Completed calls:")
        for observation in request.observations:
            if observation.status == "succeeded":
                output = json.dumps(observation.output, default=str)[:OBSERVATION_CHARS]
                lines.append(f"- {observation.call_id} {observation.tool}: {observation.headline or ''} {output}")
            else:
                lines.append(
                    f"- {observation.call_id} {observation.tool} FAILED "
                    f"({observation.error_kind}): {observation.error_message}"
                )
    return "\n".join(lines)


def history_messages(history: list[ConversationTurn]) -> list[dict[str, str]]:
    """Prior turns as chat messages, starting with a user turn."""
    messages = [{"role": turn.role, "content": turn.content} for turn in history]
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages


def parse_delegations(text: str) -> list[Delegation]:
    """Parse a coordinator reply; anything malformed means no delegation."""
    match = re.search(r"\[.*\]", text, re.DOTALL)
    if not match:
        return []
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    delegations = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict) and isinstance(item.get("specialist"), str):
            delegations.append(Delegation(specialist=item["specialist"], task=str(item.get("task") or "")))
    return delegations


# =============================================================================
# Shared Retry Logic
# =============================================================================


class _ProviderEngine:
    """Retry and error mapping shared by the provider adapters."""

    provider: str = "llm"
    fatal_errors: tuple[type[Exception], ...] = ()
    retryable_errors: tuple[type[Exception], ...] = ()

    def __init__(self, max_retries: int = 3, retry_delay: float = 1.0) -> None:
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    async def _execute_with_retry(self, func: Callable[..., Any], **kwargs: Any) -> Any:
        """
        Call the SDK with exponential backoff.

        Raises:
            ReasoningUnavailable: Immediately on fatal errors (auth, bad
                request), or once retries are exhausted.
        """
        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                return await func(**kwargs)
            except self.fatal_errors as e:
                raise ReasoningUnavailable(f"{self.provider} rejected the request: {e}", engine=self.provider) from e
            except self.retryable_errors as e:
                last_error = e
                logger.warning("reasoning_retry", provider=self.provider, attempt=attempt + 1, error=str(e))
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (2**attempt))

        raise ReasoningUnavailable(
            f"{self.provider} failed after {self._max_retries} attempts: {last_error}",
            engine=self.provider,
        ) from last_error

    @abstractmethod
    async def complete_text(self, system: str, messages: list[dict[str, Any]]) -> str:
        """Plain completion without tools, used by the coordinators."""


class _ModelChoice:
    def __init__(self, model: str, advanced_model: Optional[str], settings: Optional[Settings]) -> None:
        self._model = model
        self._advanced_model = advanced_model or model
        self._settings = settings

    @property
    def base_model(self) -> str:
        return self._model

    def model_for(self, request: EngineRequest) -> str:
        complexity = analyze_complexity(request.request_text)
        if self._settings is not None:
            return select_model(self._settings, request.tier, complexity)
        paid = request.tier in {Tier.PRO.value, Tier.ENTERPRISE.value}
        return self._advanced_model if complexity == "complex" and paid else self._model


# =============================================================================
# Anthropic
# =============================================================================


def anthropic_tools(schemas: list[ToolSchema]) -> list[dict[str, Any]]:
    return [
        {"name": schema.name, "description": schema.description, "input_schema": schema.parameters}
        for schema in schemas
    ]


class AnthropicReasoningEngine(_ProviderEngine, ReasoningEngine):
    """
    ReasoningEngine over the Anthropic Messages API.

    Example:
        >>> engine = AnthropicReasoningEngine(api_key="sk-ant-...", model="claude-3-5-haiku-20241022")
        >>> decision = await engine.decide(request)
    """

    name = "anthropic"
    provider = "anthropic"
    fatal_errors = (anthropic.AuthenticationError, anthropic.PermissionDeniedError, anthropic.BadRequestError)
    retryable_errors = (anthropic.APIError,)

    def __init__(
        self,
        api_key: str,
        model: str,
        advanced_model: Optional[str] = None,
        max_tokens: int = 2048,
        settings: Optional[Settings] = None,
        client: Optional[AsyncAnthropic] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        super().__init__(max_retries=max_retries, retry_delay=retry_delay)
        self._choice = _ModelChoice(model, advanced_model, settings)
        self._max_tokens = max_tokens
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def decide(self, request: EngineRequest) -> EngineDecision:
        messages = history_messages(request.history)
        messages.append({"role": "user", "content": render_step(request)})
        model = self._choice.model_for(request)

        response = await self._execute_with_retry(
            self._client.messages.create,
            model=model,
            system=SYSTEM_PROMPT,
            max_tokens=self._max_tokens,
            messages=messages,
            tools=anthropic_tools(request.tools),
        )

        blocks = [block.model_dump() for block in response.content]
        calls = [ToolRequest.from_anthropic_block(block) for block in blocks if block.get("type") == "tool_use"]
        text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text").strip()
        logger.info("reasoning_step", provider=self.provider, model=model, step=request.step, tool_calls=len(calls))
        return EngineDecision(tool_calls=calls, narrative=text or None)

    async def complete_text(self, system: str, messages: list[dict[str, Any]]) -> str:
        response = await self._execute_with_retry(
            self._client.messages.create,
            model=self._choice.base_model,
            system=system,
            max_tokens=self._max_tokens,
            messages=messages,
        )
        return "".join(getattr(block, "text", "") for block in response.content)


# =============================================================================
# OpenAI
# =============================================================================


def openai_tools(schemas: list[ToolSchema]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": schema.name, "description": schema.description, "parameters": schema.parameters},
        }
        for schema in schemas
    ]


class OpenAIReasoningEngine(_ProviderEngine, ReasoningEngine):
    """ReasoningEngine over the OpenAI Chat Completions API."""

    name = "openai"
    provider = "openai"
    fatal_errors = (openai.AuthenticationError, openai.PermissionDeniedError, openai.BadRequestError)
    retryable_errors = (openai.APIError,)

    def __init__(
        self,
        api_key: str,
        model: str,
        advanced_model: Optional[str] = None,
        max_tokens: int = 2048,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        super().__init__(max_retries=max_retries, retry_delay=retry_delay)
        self._choice = _ModelChoice(model, advanced_model, settings)
        self._max_tokens = max_tokens
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def decide(self, request: EngineRequest) -> EngineDecision:
        messages: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(history_messages(request.history))
        messages.append({"role": "user", "content": render_step(request)})
        model = self._choice.model_for(request)

        kwargs: dict[str, Any] = {"model": model, "messages": messages, "max_tokens": self._max_tokens}
        if request.tools:
            kwargs["tools"] = openai_tools(request.tools)
        response = await self._execute_with_retry(self._client.chat.completions.create, **kwargs)

        message = response.choices[0].message
        calls = [ToolRequest.from_openai_format(tool_call.model_dump()) for tool_call in message.tool_calls or []]
        logger.info("reasoning_step", provider=self.provider, model=model, step=request.step, tool_calls=len(calls))
        return EngineDecision(tool_calls=calls, narrative=(message.content or "").strip() or None)

    async def complete_text(self, system: str, messages: list[dict[str, Any]]) -> str:
        response = await self._execute_with_retry(
            self._client.chat.completions.create,
            model=self._choice.base_model,
            messages=[{"role": "system", "content": system}, *messages],
            max_tokens=self._max_tokens,
        )
        return response.choices[0].message.content or ""


# =============================================================================
# Coordinator
# =============================================================================


class LLMCoordinator(CoordinatorEngine):
    """
    CoordinatorEngine that asks a provider engine which specialists to run.

    Unknown specialist names in the reply are dropped.
    """

    name = "llm"

    def __init__(self, engine: AnthropicReasoningEngine | OpenAIReasoningEngine) -> None:
        self._engine = engine

    async def delegate(
        self,
        request_text: str,
        specialists: list[SpecialistInfo],
        history: Optional[list[ConversationTurn]] = None,
    ) -> list[Delegation]:
        catalogue = "\n".join(f"- {s.name}: {s.description}" for s in specialists)
        messages = history_messages(history or [])
        messages.append({"role": "user", "content": f"Specialists:\n{catalogue}\n\nRequest: {request_text}"})

        reply = await self._engine.complete_text(COORDINATOR_PROMPT, messages)
        names = {s.name for s in specialists}
        delegations = [
            d.model_copy(update={"task": d.task or request_text})
            for d in parse_delegations(reply)
            if d.specialist in names
        ]
        logger.info("coordinator_delegated", specialists=[d.specialist for d in delegations])
        return delegations
