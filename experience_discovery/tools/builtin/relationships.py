"""
Relationship Tools - connection discovery and pattern detection.

findConnections scores every candidate record against a seed with four
weighted signals (meaning, place, time, shared attributes). detectPatterns
works only on the data it is handed and never touches the store.

Pattern: One ToolSpec per tool, registered by tools.registry
"""

from collections import Counter
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from experience_discovery.analysis.geo import grid_cell, haversine_km
from experience_discovery.analysis.periods import bucket_counts, to_utc_naive
from experience_discovery.analysis.statistics import cosine_similarity, jaccard, mean_and_stddev
from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import SeedNotFound
from experience_discovery.models.domain import ToolName
from experience_discovery.models.records import ExperienceRecord, RecordQuery, RecordSummary
from experience_discovery.observability.logging import get_logger
from experience_discovery.tools.base import ToolInput, ToolOutput, ToolSpec
from experience_discovery.tools.builtin.common import location_key


logger = get_logger(__name__)

Signal = Literal["semantic", "geographic", "temporal", "attributes"]
ALL_SIGNALS: tuple[Signal, ...] = ("semantic", "geographic", "temporal", "attributes")


# =============================================================================
# findConnections
# =============================================================================


class Connection(BaseModel):
    record: RecordSummary
    score: float
    signals: dict[str, float]
    reasons: list[str] = Field(default_factory=list)


class FindConnectionsInput(ToolInput):
    record_id: str = Field(..., min_length=1, description="Seed record id")
    signals: list[Signal] = Field(default_factory=lambda: list(ALL_SIGNALS), min_length=1)
    category: Optional[str] = Field(default=None, description="Only consider candidates in this category")
    min_score: float = Field(default=0.5, ge=0.0, le=1.0)
    max_results: int = Field(default=10, ge=1, le=50)


class FindConnectionsOutput(ToolOutput):
    seed: RecordSummary
    connections: list[Connection]
    weights: dict[str, float]
    candidates_considered: int

    def headline(self) -> str:
        if not self.connections:
            return f"No experiences are connected to '{self.seed.title}' above the score threshold."
        best = self.connections[0]
        return (
            f"Found {len(self.connections)} experiences connected to '{self.seed.title}'; "
            f"closest is '{best.record.title}' (score {best.score:.2f})."
        )


def _attribute_items(record: ExperienceRecord) -> set[str]:
    return {f"{key}={value}" for key, value in record.attributes.items()}


def score_signals(
    seed: ExperienceRecord,
    candidate: ExperienceRecord,
    analysis: AnalysisSettings,
) -> dict[str, float]:
    """
    Per-signal similarity in [0, 1].

    A signal whose inputs are missing on either record scores 0.
    """
    semantic = 0.0
    if seed.embedding and candidate.embedding:
        semantic = max(0.0, cosine_similarity(seed.embedding, candidate.embedding))

    geographic = 0.0
    if seed.has_coordinates and candidate.has_coordinates:
        distance = haversine_km(seed.latitude, seed.longitude, candidate.latitude, candidate.longitude)
        geographic = max(0.0, 1 - distance / analysis.geo_horizon_km)

    temporal = 0.0
    if seed.occurred_at and candidate.occurred_at:
        delta = abs(to_utc_naive(seed.occurred_at) - to_utc_naive(candidate.occurred_at))
        temporal = max(0.0, 1 - delta.total_seconds() / 86400 / analysis.temporal_horizon_days)

    return {
        "semantic": semantic,
        "geographic": geographic,
        "temporal": temporal,
        "attributes": jaccard(_attribute_items(seed), _attribute_items(candidate)),
    }


def signal_weights(analysis: AnalysisSettings, enabled: list[Signal]) -> dict[str, float]:
    configured = {
        "semantic": analysis.semantic_weight,
        "geographic": analysis.geographic_weight,
        "temporal": analysis.temporal_weight,
        "attributes": analysis.attribute_weight,
    }
    return {name: configured[name] for name in ALL_SIGNALS if name in enabled and configured[name] > 0}


def combine(signals: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean over the enabled signals."""
    total = sum(weights.values())
    if total == 0:
        return 0.0
    return sum(signals[name] * weight for name, weight in weights.items()) / total


def _reasons(signals: dict[str, float], weights: dict[str, float]) -> list[str]:
    labels = {
        "semantic": "similar description",
        "geographic": "nearby location",
        "temporal": "close in time",
        "attributes": "shared attributes",
    }
    return [labels[name] for name in weights if signals[name] >= 0.5]


async def find_connections(
    context: RequestContext,
    params: FindConnectionsInput,
    analysis: AnalysisSettings,
) -> FindConnectionsOutput:
    """
    Rank the tenant's records by combined similarity to a seed record.

    Raises:
        SeedNotFound: The seed id does not resolve within the caller's tenant.
    """
    store = context.tenant_store
    seed = await store.get(params.record_id)
    if seed is None:
        raise SeedNotFound(params.record_id)

    page = await store.search(
        RecordQuery(
            categories=[params.category] if params.category else [],
            exclude_ids=[seed.id],
            limit=analysis.max_scan_rows,
        )
    )
    weights = signal_weights(analysis, params.signals)

    connections = []
    for candidate in page.records:
        signals = score_signals(seed, candidate, analysis)
        score = combine(signals, weights)
        if score < params.min_score:
            continue
        connections.append(
            Connection(
                record=RecordSummary.from_record(candidate, score=round(score, 4)),
                score=round(score, 4),
                signals={name: round(signals[name], 4) for name in weights},
                reasons=_reasons(signals, weights),
            )
        )
    connections.sort(key=lambda c: (-c.score, c.record.id))

    logger.debug(
        "connections_scored",
        seed_id=seed.id,
        candidates=len(page.records),
        matched=len(connections),
    )
    return FindConnectionsOutput(
        seed=RecordSummary.from_record(seed),
        connections=connections[: params.max_results],
        weights=weights,
        candidates_considered=len(page.records),
    )


FIND_CONNECTIONS_SPEC = ToolSpec(
    name=ToolName.FIND_CONNECTIONS,
    description=(
        "Find experiences related to a seed record by combining similarity of description, "
        "geographic proximity, closeness in time and shared attributes."
    ),
    input_model=FindConnectionsInput,
    output_model=FindConnectionsOutput,
    handler=find_connections,
)


# =============================================================================
# detectPatterns
# =============================================================================


class Pattern(BaseModel):
    type: Literal["temporal", "geographic", "category"]
    description: str
    confidence: float
    data: dict[str, Any] = Field(default_factory=dict)


class DetectPatternsInput(ToolInput):
    data: list[RecordSummary] = Field(..., description="Result set already in hand")
    pattern_type: Literal["temporal", "geographic", "category", "all"] = "all"


class DetectPatternsOutput(ToolOutput):
    pattern_type: str
    analyzed: int
    patterns: list[Pattern]

    def headline(self) -> str:
        if not self.patterns:
            return f"No notable patterns in {self.analyzed} experiences."
        return f"Detected {len(self.patterns)} patterns in {self.analyzed} experiences: {self.patterns[0].description}"


# Minimum located records before a single area can count as a hotspot.
MIN_HOTSPOT_RECORDS = 3


def temporal_spikes(records: list[RecordSummary], sigma_threshold: float) -> list[Pattern]:
    buckets = bucket_counts((r.occurred_at for r in records), "month")
    mean, sigma = mean_and_stddev([count for _, count in buckets])
    if sigma == 0:
        return []
    cutoff = mean + sigma_threshold * sigma
    return [
        Pattern(
            type="temporal",
            description=f"Spike in {period}: {count} experiences against an average of {mean:.1f}.",
            confidence=0.8,
            data={"period": period, "count": count, "mean": round(mean, 4), "stddev": round(sigma, 4)},
        )
        for period, count in buckets
        if count > cutoff
    ]


def _area(record: RecordSummary, grid_degrees: float) -> Optional[str]:
    key = location_key(record)
    if key:
        return key
    if record.has_coordinates:
        lat, lng = grid_cell(record.latitude, record.longitude, grid_degrees)
        return f"{lat:g},{lng:g}"
    return None


def geographic_hotspots(records: list[RecordSummary], analysis: AnalysisSettings) -> list[Pattern]:
    areas = Counter(
        area for area in (_area(r, analysis.hotspot_grid_degrees) for r in records) if area
    )
    located = sum(areas.values())
    if located < MIN_HOTSPOT_RECORDS:
        return []
    return [
        Pattern(
            type="geographic",
            description=f"Hotspot: {area} holds {count / located:.0%} of located experiences.",
            confidence=0.85,
            data={"area": area, "count": count, "share": round(count / located, 4)},
        )
        for area, count in areas.most_common()
        if count / located > analysis.hotspot_share
    ]


def category_dominance(records: list[RecordSummary], dominance_share: float) -> list[Pattern]:
    categories = Counter(r.category for r in records if r.category)
    total = sum(categories.values())
    if len(categories) < 2:
        return []
    return [
        Pattern(
            type="category",
            description=f"{category} dominates with {count / total:.0%} of experiences.",
            confidence=0.75,
            data={"category": category, "count": count, "share": round(count / total, 4)},
        )
        for category, count in categories.most_common()
        if count / total > dominance_share
    ]


async def detect_patterns(
    context: RequestContext,
    params: DetectPatternsInput,
    analysis: AnalysisSettings,
) -> DetectPatternsOutput:
    """Temporal spikes, geographic hotspots and category dominance in the supplied data."""
    records = params.data
    wanted = params.pattern_type
    patterns: list[Pattern] = []
    if wanted in ("temporal", "all"):
        patterns.extend(temporal_spikes(records, analysis.pattern_spike_sigma))
    if wanted in ("geographic", "all"):
        patterns.extend(geographic_hotspots(records, analysis))
    if wanted in ("category", "all"):
        patterns.extend(category_dominance(records, analysis.dominance_share))
    return DetectPatternsOutput(pattern_type=wanted, analyzed=len(records), patterns=patterns)


DETECT_PATTERNS_SPEC = ToolSpec(
    name=ToolName.DETECT_PATTERNS,
    description=(
        "Detect temporal spikes, geographic hotspots and category dominance in a result set that "
        "was already retrieved (pass it as data). Does not search on its own."
    ),
    input_model=DetectPatternsInput,
    output_model=DetectPatternsOutput,
    handler=detect_patterns,
)
