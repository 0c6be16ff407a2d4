"""
Search Tools - filtered, attribute, meaning-based, keyword and geographic search.

Every search tool reads the caller's tenant through ``context.tenant_store``
and returns the same SearchOutput shape:

    {results: [RecordSummary], total, summary, filters}

so any of them can feed the ``data`` argument of the analysis tools.

Pattern: One ToolSpec per tool, registered by tools.registry
Pattern: Geometry validated before any store access
"""

from typing import Any, Literal, Optional

from pydantic import Field, model_validator

from experience_discovery.analysis.geo import haversine_km, validate_coordinates, validate_radius
from experience_discovery.analysis.text import resolve_language
from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import EmbeddingUnavailable, InvalidGeometry
from experience_discovery.models.domain import ToolName
from experience_discovery.models.records import (
    AttributeFilter,
    BoundingBox,
    GeoRadius,
    RecordQuery,
    RecordSummary,
    SortKey,
)
from experience_discovery.observability.logging import get_logger
from experience_discovery.tools.base import ToolInput, ToolOutput, ToolSpec
from experience_discovery.tools.builtin.common import DateRange


logger = get_logger(__name__)

Language = Literal["en", "de", "fr", "es"]


# =============================================================================
# Shared Output
# =============================================================================


class SearchOutput(ToolOutput):
    """
    Result of any search tool.

    Attributes:
        results: Matching records, best first.
        total: Number of matches before the limit was applied.
        summary: One-line description of what was searched.
        filters: The effective (non-default) filters.
    """

    results: list[RecordSummary] = Field(default_factory=list)
    total: int = 0
    summary: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)

    def headline(self) -> str:
        return self.summary


def _summarize(what: str, shown: int, total: int) -> str:
    if total == 0:
        return f"No experiences found for {what}."
    if shown < total:
        return f"Found {total} experiences for {what} (showing {shown})."
    return f"Found {total} experiences for {what}."


def _describe(query: RecordQuery) -> str:
    parts: list[str] = []
    if query.categories:
        parts.append("/".join(query.categories))
    if query.location_text:
        parts.append(f"in {query.location_text}")
    if query.radius:
        parts.append(f"within {query.radius.radius_km:g} km")
    if query.time_of_day:
        parts.append(f"at {query.time_of_day}")
    if query.date_from or query.date_to:
        start = query.date_from.date().isoformat() if query.date_from else "..."
        end = query.date_to.date().isoformat() if query.date_to else "..."
        parts.append(f"between {start} and {end}")
    if query.attribute_filters:
        parts.append(f"{len(query.attribute_filters)} attribute filter(s)")
    return " ".join(parts) or "all experiences"


# =============================================================================
# advancedSearch
# =============================================================================


class LocationFilter(ToolInput):
    """Free-form place text and/or a radius around a point."""

    text: Optional[str] = Field(default=None, description="Place name, case-insensitive partial match")
    lat: Optional[float] = Field(default=None, description="Latitude for radius search")
    lng: Optional[float] = Field(default=None, description="Longitude for radius search")
    radius_km: Optional[float] = Field(default=None, description="Radius in kilometres")

    @model_validator(mode="after")
    def validate_radius_fields(self) -> "LocationFilter":
        given = [v is not None for v in (self.lat, self.lng, self.radius_km)]
        if any(given) and not all(given):
            raise ValueError("lat, lng and radius_km must be given together")
        return self


class AdvancedSearchInput(ToolInput):
    categories: list[str] = Field(default_factory=list, description='Category slugs, e.g. ["ufo-uap"]')
    location: Optional[LocationFilter] = None
    time_of_day: Optional[Literal["morning", "afternoon", "evening", "night"]] = None
    date_range: Optional[DateRange] = None
    attributes: list[AttributeFilter] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    sort: SortKey = "newest"
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_operators(self) -> "AdvancedSearchInput":
        for flt in self.attributes:
            if flt.operator == "exists":
                raise ValueError("advancedSearch does not support the 'exists' operator")
        return self


async def advanced_search(
    context: RequestContext,
    params: AdvancedSearchInput,
    analysis: AnalysisSettings,
) -> SearchOutput:
    """Multi-dimensional filtered search."""
    radius = None
    location = params.location
    if location and location.radius_km is not None:
        validate_coordinates(location.lat, location.lng)
        validate_radius(location.radius_km)
        radius = GeoRadius(lat=location.lat, lng=location.lng, radius_km=location.radius_km)

    query = RecordQuery(
        categories=params.categories,
        location_text=location.text if location else None,
        radius=radius,
        time_of_day=params.time_of_day,
        date_from=params.date_range.start if params.date_range else None,
        date_to=params.date_range.end if params.date_range else None,
        attribute_filters=params.attributes,
        tags=params.tags,
        emotions=params.emotions,
        sort=params.sort,
        limit=params.limit,
        offset=params.offset,
    )
    page = await context.tenant_store.search(query)
    results = [RecordSummary.from_record(record) for record in page.records]
    return SearchOutput(
        results=results,
        total=page.total,
        summary=_summarize(_describe(query), len(results), page.total),
        filters=query.describe(),
    )


ADVANCED_SEARCH_SPEC = ToolSpec(
    name=ToolName.ADVANCED_SEARCH,
    description=(
        "Search experiences with multi-dimensional filters: categories, location text or radius, "
        "time of day, date range, tags, emotions and attribute comparisons. Use this for queries "
        'combining several criteria, e.g. "UFOs in California at night".'
    ),
    input_model=AdvancedSearchInput,
    output_model=SearchOutput,
    handler=advanced_search,
)


# =============================================================================
# attributeSearch
# =============================================================================


class AttributeSearchFilter(AttributeFilter):
    operator: Literal["equals", "contains", "exists"] = "equals"


class AttributeSearchInput(ToolInput):
    category: Optional[str] = Field(default=None, description="Category to search within")
    filters: list[AttributeSearchFilter] = Field(..., min_length=1, max_length=10)
    logic: Literal["AND", "OR"] = "AND"
    limit: int = Field(default=50, ge=1, le=100)


async def attribute_search(
    context: RequestContext,
    params: AttributeSearchInput,
    analysis: AnalysisSettings,
) -> SearchOutput:
    """Search by specific attribute values such as ``shape=triangle``."""
    query = RecordQuery(
        categories=[params.category] if params.category else [],
        attribute_filters=list(params.filters),
        attribute_logic=params.logic,
        limit=params.limit,
    )
    page = await context.tenant_store.search(query)
    results = [RecordSummary.from_record(record) for record in page.records]
    terms = f" {params.logic} ".join(
        f.key if f.operator == "exists" else f"{f.key}={f.value}" for f in params.filters
    )
    return SearchOutput(
        results=results,
        total=page.total,
        summary=_summarize(terms, len(results), page.total),
        filters=query.describe(),
    )


ATTRIBUTE_SEARCH_SPEC = ToolSpec(
    name=ToolName.ATTRIBUTE_SEARCH,
    description=(
        "Find experiences by specific attribute values (e.g. shape=triangle, dream_symbol=water). "
        "Supports equals, contains and exists, combined with AND or OR."
    ),
    input_model=AttributeSearchInput,
    output_model=SearchOutput,
    handler=attribute_search,
)


# =============================================================================
# semanticSearch
# =============================================================================


class SemanticSearchInput(ToolInput):
    query: str = Field(..., description="Natural-language description of what to find")
    categories: list[str] = Field(default_factory=list)
    min_similarity: float = Field(default=0.7, ge=0.0, le=1.0)
    limit: int = Field(default=20, ge=1, le=100)


async def semantic_search(
    context: RequestContext,
    params: SemanticSearchInput,
    analysis: AnalysisSettings,
) -> SearchOutput:
    """
    Meaning-based search over the tenant's embedding index.

    Raises:
        EmbeddingUnavailable: Blank query or text the index cannot embed.
    """
    if not params.query.strip():
        raise EmbeddingUnavailable("cannot embed an empty query")

    store = context.tenant_store
    vector = await store.embed(params.query)
    if vector is None:
        raise EmbeddingUnavailable(f"no embedding could be computed for {params.query!r}")

    scored = await store.nearest(
        vector,
        categories=params.categories or None,
        min_similarity=params.min_similarity,
        limit=params.limit,
    )
    results = [RecordSummary.from_record(s.record, score=s.score) for s in scored]
    return SearchOutput(
        results=results,
        total=len(results),
        summary=_summarize(f'"{params.query}"', len(results), len(results)),
        filters={"query": params.query, "min_similarity": params.min_similarity},
    )


SEMANTIC_SEARCH_SPEC = ToolSpec(
    name=ToolName.SEMANTIC_SEARCH,
    description=(
        "Find experiences similar in meaning to a description, even when they use different words. "
        "Use for conceptual queries such as 'feeling of being watched'."
    ),
    input_model=SemanticSearchInput,
    output_model=SearchOutput,
    handler=semantic_search,
)


# =============================================================================
# fullTextSearch
# =============================================================================


class FullTextSearchInput(ToolInput):
    query: str = Field(..., min_length=1, description="Keywords to match")
    language: Optional[Language] = Field(
        default=None,
        description="Stemming/stop-word language; defaults to the caller's locale",
    )
    categories: list[str] = Field(default_factory=list)
    min_rank: float = Field(default=0.0, ge=0.0, le=1.0)
    limit: int = Field(default=20, ge=1, le=100)


async def full_text_search(
    context: RequestContext,
    params: FullTextSearchInput,
    analysis: AnalysisSettings,
) -> SearchOutput:
    """Keyword search ranked by term coverage."""
    language = params.language or resolve_language(context.locale)
    scored = await context.tenant_store.full_text(
        params.query,
        language,
        categories=params.categories or None,
        min_rank=params.min_rank,
        limit=params.limit,
    )
    results = [RecordSummary.from_record(s.record, score=s.score) for s in scored]
    return SearchOutput(
        results=results,
        total=len(results),
        summary=_summarize(f'"{params.query}" ({language})', len(results), len(results)),
        filters={"query": params.query, "language": language, "min_rank": params.min_rank},
    )


FULL_TEXT_SEARCH_SPEC = ToolSpec(
    name=ToolName.FULL_TEXT_SEARCH,
    description=(
        "Keyword search across titles, stories and tags in English, German, French or Spanish. "
        "Use for exact words or phrases."
    ),
    input_model=FullTextSearchInput,
    output_model=SearchOutput,
    handler=full_text_search,
)


# =============================================================================
# geoSearch
# =============================================================================


class GeoSearchInput(ToolInput):
    radius: Optional[GeoRadius] = Field(default=None, description="Centre point and radius in km")
    bbox: Optional[BoundingBox] = Field(default=None, description="South-west / north-east corners")
    category: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=100)

    @model_validator(mode="after")
    def validate_shape(self) -> "GeoSearchInput":
        if (self.radius is None) == (self.bbox is None):
            raise ValueError("exactly one of radius or bbox is required")
        return self


def _validate_geometry(params: GeoSearchInput) -> None:
    if params.radius is not None:
        validate_coordinates(params.radius.lat, params.radius.lng)
        validate_radius(params.radius.radius_km)
        return
    box = params.bbox
    validate_coordinates(box.min_lat, box.min_lng)
    validate_coordinates(box.max_lat, box.max_lng)
    if box.min_lat > box.max_lat or box.min_lng > box.max_lng:
        raise InvalidGeometry("bounding box minimum must not exceed its maximum")


async def geo_search(
    context: RequestContext,
    params: GeoSearchInput,
    analysis: AnalysisSettings,
) -> SearchOutput:
    """
    Records within a radius or bounding box; radius results are nearest first.

    Raises:
        InvalidGeometry: Coordinates or radius out of range. Raised before
            the store is queried.
    """
    _validate_geometry(params)

    query = RecordQuery(
        categories=[params.category] if params.category else [],
        radius=params.radius,
        bbox=params.bbox,
        require_coordinates=True,
        limit=analysis.max_scan_rows if params.radius else params.limit,
    )
    page = await context.tenant_store.search(query)

    if params.radius is not None:
        centre = params.radius
        ranked = sorted(
            page.records,
            key=lambda r: haversine_km(centre.lat, centre.lng, r.latitude, r.longitude),
        )
        records = ranked[: params.limit]
        what = f"{centre.radius_km:g} km around ({centre.lat:g}, {centre.lng:g})"
    else:
        records = page.records
        what = "the bounding box"

    results = [RecordSummary.from_record(record) for record in records]
    logger.debug("geo_search", shape="radius" if params.radius else "bbox", total=page.total)
    return SearchOutput(
        results=results,
        total=page.total,
        summary=_summarize(what, len(results), page.total),
        filters=query.describe(),
    )


GEO_SEARCH_SPEC = ToolSpec(
    name=ToolName.GEO_SEARCH,
    description=(
        "Find experiences within a radius of a coordinate or inside a bounding box. "
        "Use when the request names coordinates or a map area."
    ),
    input_model=GeoSearchInput,
    output_model=SearchOutput,
    handler=geo_search,
)
