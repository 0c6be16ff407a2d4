"""
Visualization Data Tools - chart-, map- and graph-ready structures.

These tools only shape data; rendering belongs to the UI. Each accepts a
result set through ``data`` or fetches one by category and date range.

Pattern: One ToolSpec per tool, registered by tools.registry
"""

from collections import Counter
from datetime import datetime
from itertools import combinations
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from experience_discovery.analysis.geo import grid_cell
from experience_discovery.analysis.periods import Granularity, bucket_counts, to_utc_naive
from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.models.domain import ToolName
from experience_discovery.models.records import EXCERPT_LENGTH, RecordSummary
from experience_discovery.tools.base import ToolInput, ToolOutput, ToolSpec
from experience_discovery.tools.builtin.common import (
    DateRange,
    SeriesPoint,
    location_key,
    resolve_dataset,
    top_counts,
)


class DatasetInput(ToolInput):
    """Result set, or the category/date range to fetch one for."""

    data: Optional[list[RecordSummary]] = Field(
        default=None,
        description="Result set to visualize; fetched by category when omitted",
    )
    category: Optional[str] = None
    date_range: Optional[DateRange] = None


async def _dataset(context: RequestContext, params: DatasetInput, analysis: AnalysisSettings) -> list[RecordSummary]:
    return await resolve_dataset(context, analysis, params.data, params.category, params.date_range)


# =============================================================================
# temporalAnalysis
# =============================================================================


class TemporalSummary(BaseModel):
    total_periods: int
    total_records: int
    average_per_period: float
    peak_period: Optional[str] = None
    peak_count: int = 0


class TemporalAnalysisInput(DatasetInput):
    granularity: Granularity = "month"


class TemporalAnalysisOutput(ToolOutput):
    granularity: Granularity
    series: list[SeriesPoint]
    summary: TemporalSummary
    excluded: int = Field(default=0, description="Records without a date")

    def headline(self) -> str:
        s = self.summary
        if not s.total_periods:
            return "No dated experiences to chart over time."
        return (
            f"{s.total_records} experiences across {s.total_periods} {self.granularity} periods; "
            f"peak {s.peak_period} with {s.peak_count}."
        )


async def temporal_analysis(
    context: RequestContext,
    params: TemporalAnalysisInput,
    analysis: AnalysisSettings,
) -> TemporalAnalysisOutput:
    """Bucket a result set by calendar period, in chronological order."""
    records = await _dataset(context, params, analysis)
    buckets = bucket_counts((r.occurred_at for r in records), params.granularity)
    total = sum(count for _, count in buckets)

    peak_period, peak_count = None, 0
    for period, count in buckets:
        if count > peak_count:
            peak_period, peak_count = period, count

    return TemporalAnalysisOutput(
        granularity=params.granularity,
        series=[SeriesPoint(period=period, count=count) for period, count in buckets],
        summary=TemporalSummary(
            total_periods=len(buckets),
            total_records=total,
            average_per_period=round(total / len(buckets), 2) if buckets else 0.0,
            peak_period=peak_period,
            peak_count=peak_count,
        ),
        excluded=len(records) - total,
    )


TEMPORAL_ANALYSIS_SPEC = ToolSpec(
    name=ToolName.TEMPORAL_ANALYSIS,
    description=(
        "Group experiences by hour, day, week, month or year and return chronological "
        "period counts with the peak period. Use for 'over time' questions."
    ),
    input_model=TemporalAnalysisInput,
    output_model=TemporalAnalysisOutput,
    handler=temporal_analysis,
)


# =============================================================================
# generateMap
# =============================================================================


class HeatCell(BaseModel):
    lat: float
    lng: float
    count: int
    intensity: float


class MapBounds(BaseModel):
    north: float
    south: float
    east: float
    west: float


class GenerateMapInput(DatasetInput):
    limit: int = Field(default=500, ge=1, le=1000, description="Maximum markers")
    grid_degrees: Optional[float] = Field(default=None, gt=0.0, le=90.0, description="Heatmap cell size")


class GenerateMapOutput(ToolOutput):
    geojson: dict[str, Any]
    heatmap: list[HeatCell]
    bounds: Optional[MapBounds] = None
    categories: dict[str, int] = Field(default_factory=dict)
    total_located: int = 0
    excluded: int = Field(default=0, description="Records without coordinates")

    def headline(self) -> str:
        if not self.total_located:
            return "None of the experiences have coordinates to map."
        return f"Mapped {self.total_located} located experiences in {len(self.heatmap)} heatmap cells."


async def generate_map(
    context: RequestContext,
    params: GenerateMapInput,
    analysis: AnalysisSettings,
) -> GenerateMapOutput:
    """
    GeoJSON markers plus a density grid.

    Records without coordinates are excluded and counted, never placed at 0,0.
    """
    records = await _dataset(context, params, analysis)
    located = [r for r in records if r.has_coordinates]
    markers = located[: params.limit]

    features = [
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [r.longitude, r.latitude]},
            "properties": {
                "id": r.id,
                "title": r.title,
                "category": r.category,
                "location": r.location_text,
                "date": r.occurred_at.isoformat() if r.occurred_at else None,
            },
        }
        for r in markers
    ]

    size = params.grid_degrees or analysis.hotspot_grid_degrees
    cells = Counter(grid_cell(r.latitude, r.longitude, size) for r in located)
    densest = max(cells.values(), default=0)
    heatmap = [
        HeatCell(
            lat=lat + size / 2,
            lng=lng + size / 2,
            count=count,
            intensity=round(count / densest, 4),
        )
        for (lat, lng), count in sorted(cells.items())
    ]

    bounds = None
    if located:
        bounds = MapBounds(
            north=max(r.latitude for r in located),
            south=min(r.latitude for r in located),
            east=max(r.longitude for r in located),
            west=min(r.longitude for r in located),
        )

    return GenerateMapOutput(
        geojson={"type": "FeatureCollection", "features": features},
        heatmap=heatmap,
        bounds=bounds,
        categories=dict(Counter(r.category for r in located if r.category)),
        total_located=len(located),
        excluded=len(records) - len(located),
    )


GENERATE_MAP_SPEC = ToolSpec(
    name=ToolName.GENERATE_MAP,
    description=(
        "Build map data: GeoJSON markers for geo-tagged experiences, a density grid for a heatmap, "
        "bounds and per-category counts. Use for 'where' and 'show on a map' requests."
    ),
    input_model=GenerateMapInput,
    output_model=GenerateMapOutput,
    handler=generate_map,
)


# =============================================================================
# generateTimeline
# =============================================================================


class TimelineEvent(BaseModel):
    id: str
    date: datetime
    title: str
    category: Optional[str] = None
    description: str = ""
    location_text: Optional[str] = None
    time_of_day: Optional[str] = None


class TimelineSummary(BaseModel):
    total_events: int
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    categories: dict[str, int] = Field(default_factory=dict)


class GenerateTimelineInput(DatasetInput):
    limit: int = Field(default=100, ge=1, le=500)


class GenerateTimelineOutput(ToolOutput):
    events: list[TimelineEvent]
    summary: TimelineSummary
    excluded: int = 0

    def headline(self) -> str:
        s = self.summary
        if not s.total_events:
            return "No dated experiences for a timeline."
        return f"Timeline of {s.total_events} events from {s.start.date()} to {s.end.date()}."


async def generate_timeline(
    context: RequestContext,
    params: GenerateTimelineInput,
    analysis: AnalysisSettings,
) -> GenerateTimelineOutput:
    """Chronological events, ordered by date then record id."""
    records = await _dataset(context, params, analysis)
    dated = [r for r in records if r.occurred_at is not None]
    dated.sort(key=lambda r: (to_utc_naive(r.occurred_at), r.id))

    events = [
        TimelineEvent(
            id=r.id,
            date=r.occurred_at,
            title=r.title,
            category=r.category,
            description=r.excerpt[:EXCERPT_LENGTH],
            location_text=r.location_text,
            time_of_day=r.time_of_day,
        )
        for r in dated[: params.limit]
    ]
    return GenerateTimelineOutput(
        events=events,
        summary=TimelineSummary(
            total_events=len(events),
            start=events[0].date if events else None,
            end=events[-1].date if events else None,
            categories=dict(Counter(e.category for e in events if e.category)),
        ),
        excluded=len(records) - len(dated),
    )


GENERATE_TIMELINE_SPEC = ToolSpec(
    name=ToolName.GENERATE_TIMELINE,
    description="Build a chronological list of events with category and location for a timeline view.",
    input_model=GenerateTimelineInput,
    output_model=GenerateTimelineOutput,
    handler=generate_timeline,
)


# =============================================================================
# generateNetwork
# =============================================================================


class NetworkNode(BaseModel):
    id: str
    label: str
    category: Optional[str] = None
    degree: int = 0


class NetworkEdge(BaseModel):
    source: str
    target: str
    weight: float
    kind: str


class NetworkStats(BaseModel):
    total_nodes: int
    total_edges: int
    avg_connections: float
    clusters: int


class GenerateNetworkInput(DatasetInput):
    mode: Literal["connections", "category", "tags"] = Field(
        default="connections",
        description="Declared connections, shared category, or shared tags",
    )
    min_weight: float = Field(default=0.0, ge=0.0)
    limit: int = Field(default=50, ge=1, le=200, description="Maximum nodes")


class GenerateNetworkOutput(ToolOutput):
    mode: str
    nodes: list[NetworkNode]
    edges: list[NetworkEdge]
    stats: NetworkStats

    def headline(self) -> str:
        s = self.stats
        return f"Network of {s.total_nodes} experiences with {s.total_edges} links in {s.clusters} clusters."


def _count_clusters(node_ids: list[str], edges: list[NetworkEdge]) -> int:
    parent = {node_id: node_id for node_id in node_ids}

    def find(node_id: str) -> str:
        while parent[node_id] != node_id:
            parent[node_id] = parent[parent[node_id]]
            node_id = parent[node_id]
        return node_id

    for edge in edges:
        parent[find(edge.source)] = find(edge.target)
    return len({find(node_id) for node_id in node_ids})


async def generate_network(
    context: RequestContext,
    params: GenerateNetworkInput,
    analysis: AnalysisSettings,
) -> GenerateNetworkOutput:
    """Nodes are records; edges come from the chosen mode and are kept at ``min_weight`` or above."""
    records = (await _dataset(context, params, analysis))[: params.limit]
    ids = {r.id for r in records}

    edges: list[NetworkEdge] = []
    if params.mode == "connections":
        declared = await context.tenant_store.connections(sorted(ids)) if ids else []
        edges = [
            NetworkEdge(source=c.source_id, target=c.target_id, weight=c.weight, kind=c.kind)
            for c in declared
            if c.source_id in ids and c.target_id in ids
        ]
    elif params.mode == "category":
        edges = [
            NetworkEdge(source=a.id, target=b.id, weight=1.0, kind="category")
            for a, b in combinations(records, 2)
            if a.category and a.category == b.category
        ]
    else:
        tag_sets = {r.id: {t.casefold() for t in r.tags} for r in records}
        for a, b in combinations(records, 2):
            shared = len(tag_sets[a.id] & tag_sets[b.id])
            if shared:
                edges.append(NetworkEdge(source=a.id, target=b.id, weight=float(shared), kind="tags"))

    edges = [edge for edge in edges if edge.weight >= params.min_weight]

    degree: Counter[str] = Counter()
    for edge in edges:
        degree[edge.source] += 1
        degree[edge.target] += 1

    nodes = [NetworkNode(id=r.id, label=r.title, category=r.category, degree=degree[r.id]) for r in records]
    return GenerateNetworkOutput(
        mode=params.mode,
        nodes=nodes,
        edges=edges,
        stats=NetworkStats(
            total_nodes=len(nodes),
            total_edges=len(edges),
            avg_connections=round(2 * len(edges) / len(nodes), 2) if nodes else 0.0,
            clusters=_count_clusters([n.id for n in nodes], edges),
        ),
    )


GENERATE_NETWORK_SPEC = ToolSpec(
    name=ToolName.GENERATE_NETWORK,
    description=(
        "Build a graph of experiences: nodes are records, weighted edges are declared connections, "
        "a shared category, or shared tags."
    ),
    input_model=GenerateNetworkInput,
    output_model=GenerateNetworkOutput,
    handler=generate_network,
)


# =============================================================================
# generateDashboard
# =============================================================================


PanelId = Literal[
    "category-distribution",
    "temporal-trend",
    "location-heatmap",
    "top-contributors",
    "attribute-breakdown",
]
ALL_PANELS: tuple[PanelId, ...] = (
    "category-distribution",
    "temporal-trend",
    "location-heatmap",
    "top-contributors",
    "attribute-breakdown",
)


class DashboardPanel(BaseModel):
    id: PanelId
    type: Literal["pie", "line", "bar"]
    title: str
    labels: list[str]
    values: list[float]


class DashboardSummary(BaseModel):
    total: int
    categories: int
    located: int
    dated: int


class GenerateDashboardInput(DatasetInput):
    panels: list[PanelId] = Field(default_factory=lambda: list(ALL_PANELS), min_length=1)
    top_n: int = Field(default=10, ge=1, le=50)


class GenerateDashboardOutput(ToolOutput):
    panels: list[DashboardPanel]
    summary: DashboardSummary

    def headline(self) -> str:
        return f"Dashboard with {len(self.panels)} panels over {self.summary.total} experiences."


def _panel(panel_id: PanelId, records: list[RecordSummary], top_n: int) -> DashboardPanel:
    if panel_id == "category-distribution":
        entries = top_counts((r.category for r in records), limit=top_n)
        return DashboardPanel(
            id=panel_id, type="pie", title="Experiences by category",
            labels=[e.label for e in entries], values=[e.count for e in entries],
        )
    if panel_id == "temporal-trend":
        buckets = bucket_counts((r.occurred_at for r in records), "month")
        return DashboardPanel(
            id=panel_id, type="line", title="Experiences per month",
            labels=[period for period, _ in buckets], values=[count for _, count in buckets],
        )
    if panel_id == "location-heatmap":
        entries = top_counts((location_key(r) for r in records), limit=top_n)
        title = "Top locations"
    elif panel_id == "top-contributors":
        entries = top_counts((r.identity_id for r in records), limit=top_n)
        title = "Top contributors"
    else:
        entries = top_counts(
            (f"{key}={value}" for r in records for key, value in r.attributes.items()),
            limit=top_n,
        )
        title = "Most common attribute values"
    return DashboardPanel(
        id=panel_id, type="bar", title=title,
        labels=[e.label for e in entries], values=[e.count for e in entries],
    )


async def generate_dashboard(
    context: RequestContext,
    params: GenerateDashboardInput,
    analysis: AnalysisSettings,
) -> GenerateDashboardOutput:
    records = await _dataset(context, params, analysis)
    panels = [_panel(panel_id, records, params.top_n) for panel_id in dict.fromkeys(params.panels)]
    return GenerateDashboardOutput(
        panels=panels,
        summary=DashboardSummary(
            total=len(records),
            categories=len({r.category for r in records if r.category}),
            located=sum(1 for r in records if r.has_coordinates),
            dated=sum(1 for r in records if r.occurred_at is not None),
        ),
    )


GENERATE_DASHBOARD_SPEC = ToolSpec(
    name=ToolName.GENERATE_DASHBOARD,
    description=(
        "Bundle several aggregate views of one result set: category distribution (pie), monthly "
        "trend (line), top locations, top contributors and attribute values (bar)."
    ),
    input_model=GenerateDashboardInput,
    output_model=GenerateDashboardOutput,
    handler=generate_dashboard,
)
