"""
Analytics Tools - identity ranking, category analysis and comparison, attribute correlation.

Pattern: One ToolSpec per tool, registered by tools.registry
"""

import math
from collections import Counter
from itertools import combinations
from typing import Optional

from pydantic import BaseModel, Field

from experience_discovery.analysis.periods import bucket_counts
from experience_discovery.analysis.statistics import jaccard, pearson, share
from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import ComparisonIncomplete
from experience_discovery.models.domain import ToolName
from experience_discovery.models.records import RecordSummary
from experience_discovery.tools.base import ToolInput, ToolOutput, ToolSpec
from experience_discovery.tools.builtin.common import (
    CountEntry,
    DateRange,
    SeriesPoint,
    fetch_records,
    location_key,
    resolve_dataset,
    top_counts,
)


# =============================================================================
# rankIdentities
# =============================================================================


class IdentityRank(BaseModel):
    rank: int
    identity_id: str
    count: int
    distinct_categories: int
    categories: list[str]
    share: float


class RankIdentitiesInput(ToolInput):
    data: Optional[list[RecordSummary]] = None
    category: Optional[str] = None
    date_range: Optional[DateRange] = None
    top_n: int = Field(default=10, ge=1, le=100)


class RankIdentitiesOutput(ToolOutput):
    rankings: list[IdentityRank]
    total_identities: int
    total_records: int

    def headline(self) -> str:
        if not self.rankings:
            return "No contributors found."
        top = self.rankings[0]
        return (
            f"{self.total_identities} contributors; top is {top.identity_id} with "
            f"{top.count} experiences in {top.distinct_categories} categories."
        )


def rank_contributors(records: list[RecordSummary]) -> list[IdentityRank]:
    """
    Rank identities by count, then by distinct categories, both descending.

    Full ties keep the order in which identities first appear in ``records``.
    """
    counts: dict[str, int] = {}
    categories: dict[str, dict[str, None]] = {}
    for record in records:
        if not record.identity_id:
            continue
        counts[record.identity_id] = counts.get(record.identity_id, 0) + 1
        seen = categories.setdefault(record.identity_id, {})
        if record.category:
            seen[record.category] = None

    ordered = sorted(
        counts,
        key=lambda identity: (-counts[identity], -len(categories[identity])),
    )
    total = sum(counts.values())
    return [
        IdentityRank(
            rank=position,
            identity_id=identity,
            count=counts[identity],
            distinct_categories=len(categories[identity]),
            categories=list(categories[identity]),
            share=round(share(counts[identity], total), 4),
        )
        for position, identity in enumerate(ordered, start=1)
    ]


async def rank_identities(
    context: RequestContext,
    params: RankIdentitiesInput,
    analysis: AnalysisSettings,
) -> RankIdentitiesOutput:
    records = await resolve_dataset(context, analysis, params.data, params.category, params.date_range)
    rankings = rank_contributors(records)
    return RankIdentitiesOutput(
        rankings=rankings[: params.top_n],
        total_identities=len(rankings),
        total_records=len(records),
    )


RANK_IDENTITIES_SPEC = ToolSpec(
    name=ToolName.RANK_IDENTITIES,
    description=(
        "Rank contributors by number of experiences, breaking ties by how many categories "
        "they contributed to. Use for 'top contributors' questions."
    ),
    input_model=RankIdentitiesInput,
    output_model=RankIdentitiesOutput,
    handler=rank_identities,
)


# =============================================================================
# analyzeCategory
# =============================================================================


class AnalyzeCategoryInput(ToolInput):
    category: str = Field(..., min_length=1)
    date_range: Optional[DateRange] = None
    top_n: int = Field(default=10, ge=1, le=50)


class AnalyzeCategoryOutput(ToolOutput):
    category: str
    total: int
    located: int
    dated: int
    contributors: int
    top_locations: list[CountEntry]
    date_distribution: list[SeriesPoint]
    top_attributes: list[CountEntry]
    attribute_keys: list[CountEntry]
    top_tags: list[CountEntry]
    time_of_day: list[CountEntry]

    def headline(self) -> str:
        if not self.total:
            return f"No experiences recorded in {self.category}."
        where = f"; most often in {self.top_locations[0].label}" if self.top_locations else ""
        return f"{self.category}: {self.total} experiences from {self.contributors} contributors{where}."


async def analyze_category(
    context: RequestContext,
    params: AnalyzeCategoryInput,
    analysis: AnalysisSettings,
) -> AnalyzeCategoryOutput:
    """Deep statistics for one category; an empty category yields zero counts."""
    records = await fetch_records(context, analysis, category=params.category, date_range=params.date_range)
    top_n = params.top_n
    return AnalyzeCategoryOutput(
        category=params.category,
        total=len(records),
        located=sum(1 for r in records if r.has_coordinates),
        dated=sum(1 for r in records if r.occurred_at is not None),
        contributors=len({r.identity_id for r in records if r.identity_id}),
        top_locations=top_counts((location_key(r) for r in records), top_n),
        date_distribution=[
            SeriesPoint(period=period, count=count)
            for period, count in bucket_counts((r.occurred_at for r in records), "month")
        ],
        top_attributes=top_counts(
            (f"{key}={value}" for r in records for key, value in r.attributes.items()),
            top_n,
        ),
        attribute_keys=top_counts((key for r in records for key in r.attributes), top_n),
        top_tags=top_counts((tag.casefold() for r in records for tag in r.tags), top_n),
        time_of_day=top_counts((r.time_of_day for r in records), 4),
    )


ANALYZE_CATEGORY_SPEC = ToolSpec(
    name=ToolName.ANALYZE_CATEGORY,
    description=(
        "Deep analysis of a single category: counts, top locations, monthly distribution, "
        "most common attribute values, tags and times of day."
    ),
    input_model=AnalyzeCategoryInput,
    output_model=AnalyzeCategoryOutput,
    handler=analyze_category,
)


# =============================================================================
# compareCategories
# =============================================================================


class VolumeComparison(BaseModel):
    count_a: int
    count_b: int
    difference: int
    ratio: float


class GeographicComparison(BaseModel):
    top_locations_a: list[CountEntry]
    top_locations_b: list[CountEntry]
    shared_locations: list[str]
    overlap: float


class TemporalComparison(BaseModel):
    peak_a: Optional[str] = None
    peak_b: Optional[str] = None
    correlation: float


class AttributeComparison(BaseModel):
    unique_a: list[str]
    unique_b: list[str]
    shared: list[str]


class CompareCategoriesInput(ToolInput):
    category_a: str = Field(..., min_length=1)
    category_b: str = Field(..., min_length=1)
    date_range: Optional[DateRange] = None


class CompareCategoriesOutput(ToolOutput):
    category_a: str
    category_b: str
    volume: VolumeComparison
    geographic: GeographicComparison
    temporal: TemporalComparison
    attributes: AttributeComparison

    def headline(self) -> str:
        v = self.volume
        return (
            f"{self.category_a} has {v.count_a} experiences vs {v.count_b} for {self.category_b} "
            f"(ratio {v.ratio:g}); location overlap {self.geographic.overlap:.0%}."
        )


def _peak(series: dict[str, int]) -> Optional[str]:
    if not series:
        return None
    return max(series, key=lambda period: series[period])


async def compare_categories(
    context: RequestContext,
    params: CompareCategoriesInput,
    analysis: AnalysisSettings,
) -> CompareCategoriesOutput:
    """
    Compare volume, geography, timing and attributes of two categories.

    Raises:
        ComparisonIncomplete: Either category has no records.
    """
    records_a = await fetch_records(context, analysis, category=params.category_a, date_range=params.date_range)
    records_b = await fetch_records(context, analysis, category=params.category_b, date_range=params.date_range)

    empty = [name for name, rows in ((params.category_a, records_a), (params.category_b, records_b)) if not rows]
    if empty:
        raise ComparisonIncomplete(empty)

    count_a, count_b = len(records_a), len(records_b)
    locations_a = {key for key in map(location_key, records_a) if key}
    locations_b = {key for key in map(location_key, records_b) if key}

    months_a = dict(bucket_counts((r.occurred_at for r in records_a), "month"))
    months_b = dict(bucket_counts((r.occurred_at for r in records_b), "month"))
    months = sorted(set(months_a) | set(months_b))

    keys_a = {key for r in records_a for key in r.attributes}
    keys_b = {key for r in records_b for key in r.attributes}

    return CompareCategoriesOutput(
        category_a=params.category_a,
        category_b=params.category_b,
        volume=VolumeComparison(
            count_a=count_a,
            count_b=count_b,
            difference=count_a - count_b,
            ratio=round(count_a / count_b, 2),
        ),
        geographic=GeographicComparison(
            top_locations_a=top_counts(map(location_key, records_a), 5),
            top_locations_b=top_counts(map(location_key, records_b), 5),
            shared_locations=sorted(locations_a & locations_b),
            overlap=round(jaccard(locations_a, locations_b), 4),
        ),
        temporal=TemporalComparison(
            peak_a=_peak(months_a),
            peak_b=_peak(months_b),
            correlation=round(
                pearson([months_a.get(m, 0) for m in months], [months_b.get(m, 0) for m in months]),
                4,
            ),
        ),
        attributes=AttributeComparison(
            unique_a=sorted(keys_a - keys_b),
            unique_b=sorted(keys_b - keys_a),
            shared=sorted(keys_a & keys_b),
        ),
    )


COMPARE_CATEGORIES_SPEC = ToolSpec(
    name=ToolName.COMPARE_CATEGORIES,
    description=(
        "Compare two categories: volume difference and ratio, location overlap, monthly peaks "
        "and correlation, and which attributes they share."
    ),
    input_model=CompareCategoriesInput,
    output_model=CompareCategoriesOutput,
    handler=compare_categories,
)


# =============================================================================
# attributeCorrelation
# =============================================================================


class AttributePair(BaseModel):
    item_a: str
    item_b: str
    co_occurrences: int
    strength: float
    lift: float
    confidence: float


class AttributeCorrelationInput(ToolInput):
    data: Optional[list[RecordSummary]] = None
    category: Optional[str] = None
    attribute_key: Optional[str] = Field(default=None, description="Only pairs involving this key")
    min_cooccurrence: Optional[int] = Field(
        default=None,
        ge=1,
        description="Overrides the configured co-occurrence floor",
    )
    top_n: int = Field(default=10, ge=1, le=50)


class AttributeCorrelationOutput(ToolOutput):
    total_records: int
    total_items: int
    floor: int
    correlations: list[AttributePair]
    total_pairs: int

    def headline(self) -> str:
        if not self.correlations:
            return f"No attribute pairs occur together at least {self.floor} times."
        top = self.correlations[0]
        return (
            f"{self.total_pairs} attribute pairs co-occur at least {self.floor} times; strongest "
            f"{top.item_a} with {top.item_b} ({top.co_occurrences}x, strength {top.strength:.2f})."
        )


def correlate_attributes(
    records: list[RecordSummary],
    floor: int,
    attribute_key: Optional[str] = None,
) -> tuple[list[AttributePair], int]:
    """
    Co-occurrence statistics for ``key=value`` items.

    A pair is kept when it co-occurs at least ``floor`` times, whatever its
    strength. Strength is the cosine of the two items' occurrence vectors,
    pair / sqrt(count_a * count_b).

    Returns:
        (pairs ordered by strength, number of distinct items)
    """
    item_counts: Counter[str] = Counter()
    pair_counts: Counter[tuple[str, str]] = Counter()
    for record in records:
        items = sorted({f"{key}={value}" for key, value in record.attributes.items()})
        item_counts.update(items)
        pair_counts.update(combinations(items, 2))

    n = len(records)
    pairs = []
    for (a, b), together in pair_counts.items():
        if together < floor:
            continue
        if attribute_key and attribute_key not in (a.split("=", 1)[0], b.split("=", 1)[0]):
            continue
        count_a, count_b = item_counts[a], item_counts[b]
        pairs.append(
            AttributePair(
                item_a=a,
                item_b=b,
                co_occurrences=together,
                strength=round(together / math.sqrt(count_a * count_b), 4),
                lift=round(together * n / (count_a * count_b), 4),
                confidence=round(together / count_a, 4),
            )
        )
    pairs.sort(key=lambda p: (-p.strength, -p.co_occurrences, p.item_a, p.item_b))
    return pairs, len(item_counts)


async def attribute_correlation(
    context: RequestContext,
    params: AttributeCorrelationInput,
    analysis: AnalysisSettings,
) -> AttributeCorrelationOutput:
    records = await resolve_dataset(context, analysis, params.data, params.category)
    floor = params.min_cooccurrence or analysis.cooccurrence_floor
    pairs, items = correlate_attributes(records, floor, params.attribute_key)
    return AttributeCorrelationOutput(
        total_records=len(records),
        total_items=items,
        floor=floor,
        correlations=pairs[: params.top_n],
        total_pairs=len(pairs),
    )


ATTRIBUTE_CORRELATION_SPEC = ToolSpec(
    name=ToolName.ATTRIBUTE_CORRELATION,
    description=(
        "Find attribute values that tend to appear together (e.g. shape=triangle with light=red). "
        "Pairs seen fewer than the minimum number of times are ignored."
    ),
    input_model=AttributeCorrelationInput,
    output_model=AttributeCorrelationOutput,
    handler=attribute_correlation,
)
