"""
Keyword Reasoning Engine - deterministic intent parsing.

A rule-based adapter for the ReasoningEngine and CoordinatorEngine ports.
It needs no model provider, so it is the default engine for local runs and
the engine the test-suite drives end to end.

Step 0 parses the request (categories, place, dates, record id, intent)
and plans every call at once, chaining dependent calls with ``$ref``.
Later steps narrate from the tool headlines and finish the pass.

Pattern: Ports and Adapters (deterministic adapter)
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from experience_discovery.models.domain import ConversationTurn, ToolName, ToolRequest
from experience_discovery.reasoning.base import (
    CoordinatorEngine,
    Delegation,
    EngineDecision,
    EngineRequest,
    ReasoningEngine,
    SpecialistInfo,
)
from experience_discovery.services.chaining import REF_KEY


# =============================================================================
# Vocabulary
# =============================================================================

CATEGORY_ALIASES: dict[str, tuple[str, ...]] = {
    "ufo-uap": ("ufo", "ufos", "uap", "uaps", "flying saucer", "flying saucers"),
    "dreams": ("dream", "dreams", "lucid dream", "lucid dreams", "nightmare", "nightmares"),
    "psychedelics": ("psychedelic", "psychedelics", "ayahuasca", "dmt", "psilocybin", "lsd"),
    "nde-obe": ("nde", "ndes", "near-death", "near death", "obe", "out-of-body", "out of body"),
    "ghost-spirit": ("ghost", "ghosts", "spirit", "spirits", "apparition", "apparitions", "haunting"),
    "psychic": ("psychic", "telepathy", "precognition", "clairvoyance"),
    "synchronicity": ("synchronicity", "synchronicities", "coincidence", "coincidences"),
}

_ALIAS_TO_CATEGORY = {alias: slug for slug, aliases in CATEGORY_ALIASES.items() for alias in aliases}
_CATEGORY_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(map(re.escape, _ALIAS_TO_CATEGORY), key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)
_LOCATION_PATTERN = re.compile(r"\b(?:in|near|around|from)\s+([A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*)")
_RECORD_PATTERN = re.compile(r"\b(?:record|experience|report)\s+(?:id\s+)?[\"'#]?([\w-]*\d[\w-]*|[A-Z][\w-]*)")
_COORDINATES_PATTERN = re.compile(r"(-?\d{1,2}(?:\.\d+)?)\s*,\s*(-?\d{1,3}(?:\.\d+)?)")
_RADIUS_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:km|kilomet)", re.IGNORECASE)
_YEAR_PATTERN = re.compile(r"\b(19\d{2}|20\d{2})\b")
_TIME_OF_DAY_PATTERN = re.compile(r"\b(morning|afternoon|evening|night)\b", re.IGNORECASE)

_COMPARE = re.compile(r"\bcompare\b|\bvs\.?\b|\bversus\b|\bdifference between\b", re.IGNORECASE)
_CONNECTIONS = re.compile(r"\bconnect(?:ion|ions|ed)?\b|\brelated to\b|\blinked to\b", re.IGNORECASE)
_CORRELATION = re.compile(r"\bcorrelat|\bco-?occur", re.IGNORECASE)
_RANKING = re.compile(r"\btop contributors?\b|\brank|\bmost active\b|\bwho (?:reported|contributed)", re.IGNORECASE)
_TRENDS = re.compile(r"\bpredict|\bforecast|\btrend|\bfuture\b", re.IGNORECASE)
_PATTERNS = re.compile(r"\bpatterns?\b|\banomal|\bhotspots?\b|\bspikes?\b", re.IGNORECASE)
_INSIGHTS = re.compile(r"\binsights?\b|\banaly[sz]|\boverview\b|\bstatistics\b|\bstats\b|\bsummar", re.IGNORECASE)
_MAP = re.compile(r"\bmap\b|\bheatmap\b|\bwhere\b", re.IGNORECASE)
_TIMELINE = re.compile(r"\btimeline\b|\bchronolog", re.IGNORECASE)
_TEMPORAL = re.compile(r"\bover time\b|\bper (?:month|week|day|year)\b|\b(?:monthly|weekly|daily|yearly)\b", re.IGNORECASE)
_DASHBOARD = re.compile(r"\bdashboard\b|\bcharts?\b", re.IGNORECASE)
_NETWORK = re.compile(r"\bnetwork\b|\bgraph\b", re.IGNORECASE)
_EXPORT = re.compile(r"\bexport\b|\bdownload\b|\bcsv\b", re.IGNORECASE)
_FOLLOWUPS = re.compile(r"\bwhat next\b|\bsuggest|\bfollow[- ]?up", re.IGNORECASE)
_SEMANTIC = re.compile(r"\bsimilar to\b|\bfeel(?:ing|s)? (?:of|like)\b|\bexperiences like\b", re.IGNORECASE)
_SEARCH_WORDS = re.compile(r"\b(?:search|find|show|list|sightings?|reports?|experiences?)\b", re.IGNORECASE)

_GRANULARITY_WORDS = (
    ("hour", re.compile(r"\bhour(?:ly)?\b", re.IGNORECASE)),
    ("day", re.compile(r"\bdaily\b|\bper day\b|\bby day\b", re.IGNORECASE)),
    ("week", re.compile(r"\bweekly\b|\bper week\b|\bby week\b", re.IGNORECASE)),
    ("year", re.compile(r"\byearly\b|\bper year\b|\bby year\b|\bannual", re.IGNORECASE)),
)

DEFAULT_RADIUS_KM = 50.0


# =============================================================================
# Request Parsing
# =============================================================================


@dataclass
class ParsedRequest:
    """Everything the rules extract from the request text."""

    text: str
    categories: list[str] = field(default_factory=list)
    location: Optional[str] = None
    record_id: Optional[str] = None
    coordinates: Optional[tuple[float, float]] = None
    radius_km: float = DEFAULT_RADIUS_KM
    year: Optional[int] = None
    time_of_day: Optional[str] = None
    granularity: str = "month"
    export_format: str = "json"

    @property
    def category(self) -> Optional[str]:
        return self.categories[0] if self.categories else None

    @property
    def date_range(self) -> Optional[dict[str, str]]:
        if self.year is None:
            return None
        return {
            "start": datetime(self.year, 1, 1).isoformat(),
            "end": datetime(self.year, 12, 31, 23, 59, 59).isoformat(),
        }

    @property
    def has_filters(self) -> bool:
        return bool(self.categories or self.location or self.year or self.time_of_day)


def parse_request(text: str) -> ParsedRequest:
    parsed = ParsedRequest(text=text)

    for match in _CATEGORY_PATTERN.finditer(text):
        slug = _ALIAS_TO_CATEGORY[match.group(1).lower()]
        if slug not in parsed.categories:
            parsed.categories.append(slug)

    for match in _LOCATION_PATTERN.finditer(text):
        place = match.group(1).strip()
        if place.lower() not in _ALIAS_TO_CATEGORY:
            parsed.location = place
            break

    record = _RECORD_PATTERN.search(text)
    if record:
        parsed.record_id = record.group(1)

    coordinates = _COORDINATES_PATTERN.search(text)
    if coordinates:
        lat, lng = float(coordinates.group(1)), float(coordinates.group(2))
        parsed.coordinates = (lat, lng)
        radius = _RADIUS_PATTERN.search(text)
        if radius:
            parsed.radius_km = float(radius.group(1))

    year = _YEAR_PATTERN.search(text)
    if year and not coordinates:
        parsed.year = int(year.group(1))

    time_of_day = _TIME_OF_DAY_PATTERN.search(text)
    if time_of_day:
        parsed.time_of_day = time_of_day.group(1).lower()

    for granularity, pattern in _GRANULARITY_WORDS:
        if pattern.search(text):
            parsed.granularity = granularity
            break

    if re.search(r"\bcsv\b", text, re.IGNORECASE):
        parsed.export_format = "csv"
    return parsed


# =============================================================================
# Planning
# =============================================================================


def _ref(call_id: str, path: str = "") -> dict[str, str]:
    return {REF_KEY: f"{call_id}.{path}" if path else call_id}


class _Plan:
    """Accumulates calls restricted to the exposed tools."""

    def __init__(self, request: EngineRequest) -> None:
        self.allowed = set(request.tool_names)
        self.upstream = request.upstream
        self.calls: list[ToolRequest] = []

    def can(self, *names: ToolName) -> bool:
        return all(name.value in self.allowed for name in names)

    def add(self, name: ToolName, arguments: dict[str, Any]) -> str:
        call_id = f"call_{len(self.calls) + 1}"
        self.calls.append(ToolRequest(id=call_id, name=name.value, arguments=arguments))
        return call_id

    def upstream_results(self) -> Optional[dict[str, str]]:
        """Reference to a result set handed over by an earlier specialist."""
        for key, value in self.upstream.items():
            if isinstance(value, dict) and isinstance(value.get("results"), list):
                return _ref(key, "results")
        return None


def _search(plan: _Plan, parsed: ParsedRequest) -> Optional[str]:
    """Add the best search call for the request; returns its id."""
    if parsed.coordinates and plan.can(ToolName.GEO_SEARCH):
        lat, lng = parsed.coordinates
        arguments: dict[str, Any] = {"radius": {"lat": lat, "lng": lng, "radius_km": parsed.radius_km}}
        if parsed.category:
            arguments["category"] = parsed.category
        return plan.add(ToolName.GEO_SEARCH, arguments)

    if _SEMANTIC.search(parsed.text) and plan.can(ToolName.SEMANTIC_SEARCH):
        arguments = {"query": parsed.text}
        if parsed.categories:
            arguments["categories"] = parsed.categories
        return plan.add(ToolName.SEMANTIC_SEARCH, arguments)

    if plan.can(ToolName.ADVANCED_SEARCH) and (parsed.has_filters or not plan.can(ToolName.FULL_TEXT_SEARCH)):
        arguments = {}
        if parsed.categories:
            arguments["categories"] = parsed.categories
        if parsed.location:
            arguments["location"] = {"text": parsed.location}
        if parsed.time_of_day:
            arguments["time_of_day"] = parsed.time_of_day
        if parsed.date_range:
            arguments["date_range"] = parsed.date_range
        return plan.add(ToolName.ADVANCED_SEARCH, arguments)

    if plan.can(ToolName.FULL_TEXT_SEARCH):
        return plan.add(ToolName.FULL_TEXT_SEARCH, {"query": parsed.text})
    return None


def _dataset_arguments(plan: _Plan, parsed: ParsedRequest, search_id: Optional[str]) -> dict[str, Any]:
    """``data`` from a search or upstream result set, else category filters."""
    if search_id:
        return {"data": _ref(search_id, "results")}
    upstream = plan.upstream_results()
    if upstream:
        return {"data": upstream}
    arguments: dict[str, Any] = {}
    if parsed.category:
        arguments["category"] = parsed.category
    if parsed.date_range:
        arguments["date_range"] = parsed.date_range
    return arguments


def _needs_search(plan: _Plan) -> bool:
    return plan.upstream_results() is None


def plan_calls(request: EngineRequest) -> list[ToolRequest]:
    """
    Turn the request into tool calls, most specific intent first.

    An intent whose tool is not exposed falls through to the next rule.
    """
    parsed = parse_request(request.request_text)
    plan = _Plan(request)
    text = parsed.text

    if _COMPARE.search(text) and len(parsed.categories) >= 2 and plan.can(ToolName.COMPARE_CATEGORIES):
        arguments: dict[str, Any] = {"category_a": parsed.categories[0], "category_b": parsed.categories[1]}
        if parsed.date_range:
            arguments["date_range"] = parsed.date_range
        plan.add(ToolName.COMPARE_CATEGORIES, arguments)
        return plan.calls

    if _CONNECTIONS.search(text) and parsed.record_id and plan.can(ToolName.FIND_CONNECTIONS):
        plan.add(ToolName.FIND_CONNECTIONS, {"record_id": parsed.record_id})
        return plan.calls

    if _CORRELATION.search(text) and plan.can(ToolName.ATTRIBUTE_CORRELATION):
        plan.add(ToolName.ATTRIBUTE_CORRELATION, _dataset_arguments(plan, parsed, None))
        return plan.calls

    if _RANKING.search(text) and plan.can(ToolName.RANK_IDENTITIES):
        plan.add(ToolName.RANK_IDENTITIES, _dataset_arguments(plan, parsed, None))
        return plan.calls

    if _TRENDS.search(text) and plan.can(ToolName.PREDICT_TRENDS):
        arguments = _dataset_arguments(plan, parsed, None)
        arguments["granularity"] = parsed.granularity if parsed.granularity != "hour" else "day"
        plan.add(ToolName.PREDICT_TRENDS, arguments)
        return plan.calls

    if _PATTERNS.search(text) and plan.can(ToolName.DETECT_PATTERNS):
        search_id = _search(plan, parsed) if _needs_search(plan) else None
        data = _dataset_arguments(plan, parsed, search_id).get("data")
        if data is not None:
            plan.add(ToolName.DETECT_PATTERNS, {"data": data})
            return plan.calls
        plan.calls.clear()

    if _INSIGHTS.search(text):
        if len(parsed.categories) == 1 and re.search(r"\banaly[sz]", text, re.I) and plan.can(ToolName.ANALYZE_CATEGORY):
            arguments = {"category": parsed.category}
            if parsed.date_range:
                arguments["date_range"] = parsed.date_range
            plan.add(ToolName.ANALYZE_CATEGORY, arguments)
            return plan.calls
        if plan.can(ToolName.GENERATE_INSIGHTS):
            plan.add(ToolName.GENERATE_INSIGHTS, _dataset_arguments(plan, parsed, None))
            return plan.calls

    visualizations = [
        (tool, pattern)
        for tool, pattern in (
            (ToolName.GENERATE_MAP, _MAP),
            (ToolName.GENERATE_TIMELINE, _TIMELINE),
            (ToolName.TEMPORAL_ANALYSIS, _TEMPORAL),
            (ToolName.GENERATE_DASHBOARD, _DASHBOARD),
            (ToolName.GENERATE_NETWORK, _NETWORK),
        )
        if pattern.search(text) and plan.can(tool)
    ]
    if visualizations:
        search_id = _search(plan, parsed) if _needs_search(plan) else None
        for tool, _ in visualizations:
            arguments = _dataset_arguments(plan, parsed, search_id)
            if tool is ToolName.TEMPORAL_ANALYSIS:
                arguments["granularity"] = parsed.granularity
            plan.add(tool, arguments)
        return plan.calls

    if _EXPORT.search(text) and plan.can(ToolName.EXPORT_RESULTS):
        search_id = _search(plan, parsed) if _needs_search(plan) else None
        data = _dataset_arguments(plan, parsed, search_id).get("data")
        if data is not None:
            plan.add(ToolName.EXPORT_RESULTS, {"data": data, "format": parsed.export_format})
            return plan.calls
        plan.calls.clear()

    if _FOLLOWUPS.search(text) and plan.can(ToolName.SUGGEST_FOLLOWUPS):
        search_id = _search(plan, parsed) if _needs_search(plan) else None
        arguments = {"query": text, "history": [turn.model_dump() for turn in request.history]}
        data = _dataset_arguments(plan, parsed, search_id).get("data")
        if data is not None:
            arguments["results"] = data
        plan.add(ToolName.SUGGEST_FOLLOWUPS, arguments)
        return plan.calls

    _search(plan, parsed)
    return plan.calls


def narrate(request: EngineRequest) -> str:
    """Answer text built from the headlines of successful calls."""
    headlines = [o.headline for o in request.observations if o.status == "succeeded" and o.headline]
    if not headlines:
        return f'I could not produce results for "{request.request_text}".'
    return " ".join(headlines)


# =============================================================================
# Engines
# =============================================================================


class KeywordReasoningEngine(ReasoningEngine):
    """
    Deterministic ReasoningEngine.

    Example:
        >>> engine = KeywordReasoningEngine()
        >>> decision = await engine.decide(EngineRequest(request_text="UFO sightings in California", tools=schemas))
        >>> decision.tool_calls[0].name
        'advancedSearch'
    """

    name = "keyword"

    async def decide(self, request: EngineRequest) -> EngineDecision:
        if request.step == 0:
            calls = plan_calls(request)
            if not calls:
                return EngineDecision(
                    narrative=f'None of the available tools can answer "{request.request_text}".'
                )
            return EngineDecision(tool_calls=calls)
        return EngineDecision(narrative=narrate(request))


def _any_of(*patterns: re.Pattern[str]) -> re.Pattern[str]:
    return re.compile("|".join(p.pattern for p in patterns), re.IGNORECASE)


SPECIALIST_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("insight", _any_of(_COMPARE, _CORRELATION, _RANKING, _TRENDS, _PATTERNS, _INSIGHTS, _EXPORT, _FOLLOWUPS)),
    ("visualization", _any_of(_MAP, _TIMELINE, _TEMPORAL, _DASHBOARD, _NETWORK)),
    ("relationship", _CONNECTIONS),
)


class KeywordCoordinator(CoordinatorEngine):
    """
    Deterministic CoordinatorEngine.

    The query specialist goes first whenever the request names something to
    search for, so later specialists can work on its results.
    """

    name = "keyword"

    async def delegate(
        self,
        request_text: str,
        specialists: list[SpecialistInfo],
        history: Optional[list[ConversationTurn]] = None,
    ) -> list[Delegation]:
        available = {specialist.name for specialist in specialists}
        parsed = parse_request(request_text)
        matched = [name for name, pattern in SPECIALIST_RULES if pattern.search(request_text)]

        seed_only = matched == ["relationship"] and parsed.record_id is not None
        wants_search = parsed.has_filters or parsed.coordinates or _SEARCH_WORDS.search(request_text)
        if wants_search and not seed_only:
            matched.insert(0, "query")

        return [Delegation(specialist=name, task=request_text) for name in matched if name in available]
