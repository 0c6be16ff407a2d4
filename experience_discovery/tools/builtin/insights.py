"""
Insight Tools - statistics, trend prediction, follow-up suggestions and export.

generateInsights and predictTrends are deterministic: every threshold comes
from AnalysisSettings and the math lives in analysis.statistics, so results
can be asserted exactly in tests without any language model involved.

Pattern: One ToolSpec per tool, registered by tools.registry
"""

import csv
import io
import json
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from experience_discovery.analysis.geo import grid_cell
from experience_discovery.analysis.periods import bucket_counts, next_period_label, to_utc_naive
from experience_discovery.analysis.statistics import (
    linear_regression,
    mean_and_stddev,
    z_for_confidence,
)
from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.core.exceptions import InsufficientData, UnsupportedFormat
from experience_discovery.models.domain import ConversationTurn, ToolName
from experience_discovery.models.records import RecordSummary
from experience_discovery.tools.base import ToolInput, ToolOutput, ToolSpec
from experience_discovery.tools.builtin.common import (
    CountEntry,
    DateRange,
    SeriesPoint,
    location_key,
    resolve_dataset,
    top_counts,
)


EXPORT_VERSION = "1.0"
EXPORT_SOURCE = "experience-discovery"
EXPORT_FILENAME_PREFIX = "experience-export"
SUPPORTED_EXPORT_FORMATS = ("csv", "json")


# =============================================================================
# generateInsights
# =============================================================================


class Insight(BaseModel):
    """
    One finding of the advanced insight mode.

    Attributes:
        type: spike | trend | hotspot | dominance | data_quality
        title: Short title.
        description: One plain-language sentence.
        confidence: In [0, 1].
        data: Numbers backing the finding.
    """

    type: Literal["spike", "trend", "hotspot", "dominance", "data_quality"]
    title: str
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    data: dict[str, Any] = Field(default_factory=dict)


class BasicStatistics(BaseModel):
    total: int = 0
    categories: list[CountEntry] = Field(default_factory=list)
    top_locations: list[CountEntry] = Field(default_factory=list)
    date_histogram: list[SeriesPoint] = Field(default_factory=list)
    date_range: Optional[DateRange] = None


class GenerateInsightsInput(ToolInput):
    data: Optional[list[RecordSummary]] = Field(
        default=None,
        description="Result set to analyse; fetched by category when omitted",
    )
    category: Optional[str] = None
    date_range: Optional[DateRange] = None
    complexity: Literal["basic", "advanced"] = "advanced"
    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    max_insights: int = Field(default=10, ge=1, le=20)


class GenerateInsightsOutput(ToolOutput):
    complexity: Literal["basic", "advanced"]
    statistics: BasicStatistics
    insights: list[Insight] = Field(default_factory=list)

    def headline(self) -> str:
        total = self.statistics.total
        if self.complexity == "basic" or not self.insights:
            top = self.statistics.categories[0].label if self.statistics.categories else None
            suffix = f", mostly {top}" if top else ""
            return f"Analysed {total} experiences{suffix}."
        return f"Found {len(self.insights)} insights in {total} experiences; strongest: {self.insights[0].title}."


def _basic_statistics(records: list[RecordSummary]) -> BasicStatistics:
    dates = [to_utc_naive(r.occurred_at) for r in records if r.occurred_at is not None]
    histogram = [SeriesPoint(period=p, count=c) for p, c in bucket_counts(dates, "month")]
    return BasicStatistics(
        total=len(records),
        categories=top_counts((r.category for r in records), limit=len(records) or 1),
        top_locations=top_counts((location_key(r) for r in records), limit=10),
        date_histogram=histogram,
        date_range=DateRange(start=min(dates), end=max(dates)) if dates else None,
    )


def _spike_insights(histogram: list[SeriesPoint], z: float) -> list[Insight]:
    counts = [point.count for point in histogram]
    mean, sigma = mean_and_stddev(counts)
    if sigma == 0:
        return []
    threshold = mean + z * sigma
    return [
        Insight(
            type="spike",
            title=f"Activity spike in {point.period}",
            description=(
                f"{point.period} had {point.count:g} experiences, well above the monthly "
                f"average of {mean:.1f}."
            ),
            confidence=min(0.99, (point.count - mean) / (3 * sigma)),
            data={"period": point.period, "count": point.count, "mean": mean, "stddev": sigma},
        )
        for point in histogram
        if point.count > threshold
    ]


def _trend_insight(histogram: list[SeriesPoint], analysis: AnalysisSettings) -> list[Insight]:
    if len(histogram) < analysis.min_trend_points:
        return []
    fit = linear_regression([point.count for point in histogram])
    if fit.r_squared <= analysis.insight_trend_r_squared or abs(fit.slope) <= analysis.stable_slope:
        return []
    direction = "increasing" if fit.slope > 0 else "decreasing"
    return [
        Insight(
            type="trend",
            title=f"Reports are {direction}",
            description=f"Monthly volume is {direction} by about {abs(fit.slope):.1f} reports per month.",
            confidence=min(1.0, fit.r_squared),
            data={"slope": fit.slope, "r_squared": fit.r_squared, "periods": len(histogram)},
        )
    ]


def _hotspot_insights(records: list[RecordSummary], analysis: AnalysisSettings) -> list[Insight]:
    geo = [r for r in records if r.has_coordinates]
    if len(geo) < analysis.insight_min_geo_records:
        return []
    cells = Counter(grid_cell(r.latitude, r.longitude, analysis.hotspot_grid_degrees) for r in geo)
    threshold = max(3, 0.05 * len(geo))
    insights = []
    for (lat, lng), count in cells.most_common():
        if count < threshold:
            break
        pct = 100 * count / len(geo)
        insights.append(
            Insight(
                type="hotspot",
                title=f"Hotspot near ({lat:g}, {lng:g})",
                description=f"{pct:.0f}% of located experiences fall in one {analysis.hotspot_grid_degrees:g} degree cell.",
                confidence=min(0.95, pct / 20),
                data={"lat": lat, "lng": lng, "count": count, "percentage": round(pct, 2)},
            )
        )
    return insights


def _dominance_insights(statistics: BasicStatistics, analysis: AnalysisSettings) -> list[Insight]:
    if len(statistics.categories) < 2:
        return []
    insights = []
    for entry in statistics.categories:
        share_ = entry.count / statistics.total
        if share_ <= analysis.dominance_share:
            continue
        pct = 100 * share_
        insights.append(
            Insight(
                type="dominance",
                title=f"{entry.label} dominates",
                description=f"{entry.label} accounts for {pct:.0f}% of all experiences.",
                confidence=min(0.95, pct / 50),
                data={"category": entry.label, "count": entry.count, "percentage": round(pct, 2)},
            )
        )
    return insights


def _quality_insights(records: list[RecordSummary]) -> list[Insight]:
    total = len(records)
    insights = []
    missing_geo = sum(1 for r in records if not r.has_coordinates)
    missing_date = sum(1 for r in records if r.occurred_at is None)
    for label, missing in (("coordinates", missing_geo), ("dates", missing_date)):
        if missing / total > 0.5:
            insights.append(
                Insight(
                    type="data_quality",
                    title=f"Most experiences lack {label}",
                    description=f"{missing} of {total} experiences have no {label}; related views are partial.",
                    confidence=0.99,
                    data={"field": label, "missing": missing, "total": total},
                )
            )
    return insights


async def generate_insights(
    context: RequestContext,
    params: GenerateInsightsInput,
    analysis: AnalysisSettings,
) -> GenerateInsightsOutput:
    """
    Summary statistics, plus detected findings in advanced mode.

    Findings below ``min_confidence`` are dropped; the rest are ordered by
    confidence and capped at ``max_insights``.
    """
    records = await resolve_dataset(context, analysis, params.data, params.category, params.date_range)
    statistics = _basic_statistics(records)
    if params.complexity == "basic" or not records:
        return GenerateInsightsOutput(complexity=params.complexity, statistics=statistics)

    found = [
        *_spike_insights(statistics.date_histogram, analysis.insight_spike_z),
        *_trend_insight(statistics.date_histogram, analysis),
        *_hotspot_insights(records, analysis),
        *_dominance_insights(statistics, analysis),
        *_quality_insights(records),
    ]
    kept = [insight for insight in found if insight.confidence >= params.min_confidence]
    kept.sort(key=lambda insight: insight.confidence, reverse=True)
    return GenerateInsightsOutput(
        complexity=params.complexity,
        statistics=statistics,
        insights=kept[: params.max_insights],
    )


GENERATE_INSIGHTS_SPEC = ToolSpec(
    name=ToolName.GENERATE_INSIGHTS,
    description=(
        "Summarize a result set: counts, top locations and a monthly histogram (basic), plus "
        "spikes, trends, geographic hotspots and category dominance with confidence scores (advanced)."
    ),
    input_model=GenerateInsightsInput,
    output_model=GenerateInsightsOutput,
    handler=generate_insights,
)


# =============================================================================
# predictTrends
# =============================================================================


class Forecast(BaseModel):
    period: str
    predicted: float
    lower_bound: float
    upper_bound: float
    confidence: float


class PredictTrendsInput(ToolInput):
    series: Optional[list[SeriesPoint]] = Field(
        default=None,
        description="Chronological bucketed counts; built from data or category when omitted",
    )
    data: Optional[list[RecordSummary]] = None
    category: Optional[str] = None
    date_range: Optional[DateRange] = None
    granularity: Literal["day", "week", "month", "year"] = "month"
    forecast_periods: int = Field(default=3, ge=1, le=12)
    confidence_level: float = Field(default=0.95, ge=0.5, le=0.99)


class PredictTrendsOutput(ToolOutput):
    slope: float
    intercept: float
    r_squared: float
    correlation: float
    std_error: float
    trend: Literal["increasing", "decreasing", "stable"]
    significance: Literal["strong", "moderate", "weak", "none"]
    historical: list[SeriesPoint]
    forecast: list[Forecast]
    confidence_level: float

    def headline(self) -> str:
        nxt = f"; next period about {self.forecast[0].predicted:g}" if self.forecast else ""
        return (
            f"Trend is {self.trend} ({self.significance}, R²={self.r_squared:.2f}, "
            f"slope {self.slope:+.2f} per period){nxt}."
        )


def _significance(r_squared: float) -> str:
    if r_squared >= 0.8:
        return "strong"
    if r_squared >= 0.6:
        return "moderate"
    if r_squared >= 0.4:
        return "weak"
    return "none"


async def predict_trends(
    context: RequestContext,
    params: PredictTrendsInput,
    analysis: AnalysisSettings,
) -> PredictTrendsOutput:
    """
    Fit an OLS line to a bucketed count series and forecast ahead.

    Raises:
        InsufficientData: Fewer than ``min_trend_points`` non-zero buckets.
    """
    if params.series is not None:
        series = list(params.series)
    else:
        records = await resolve_dataset(context, analysis, params.data, params.category, params.date_range)
        buckets = bucket_counts((r.occurred_at for r in records), params.granularity, fill_gaps=True)
        series = [SeriesPoint(period=period, count=count) for period, count in buckets]

    non_zero = sum(1 for point in series if point.count > 0)
    if non_zero < analysis.min_trend_points:
        raise InsufficientData(
            f"not enough data points: {non_zero} non-empty periods, "
            f"at least {analysis.min_trend_points} are needed"
        )

    fit = linear_regression([point.count for point in series])
    z = z_for_confidence(params.confidence_level)

    forecast: list[Forecast] = []
    label = series[-1].period
    for i in range(params.forecast_periods):
        x = fit.n + i
        predicted = fit.predict(x)
        margin = fit.prediction_margin(x, z)
        label = next_period_label(label, params.granularity)
        forecast.append(
            Forecast(
                period=label,
                predicted=round(max(0.0, predicted), 2),
                lower_bound=round(max(0.0, predicted - margin), 2),
                upper_bound=round(max(0.0, predicted + margin), 2),
                confidence=max(0.5, fit.r_squared * 0.9**i),
            )
        )

    if abs(fit.slope) < analysis.stable_slope:
        trend = "stable"
    else:
        trend = "increasing" if fit.slope > 0 else "decreasing"

    return PredictTrendsOutput(
        slope=fit.slope,
        intercept=fit.intercept,
        r_squared=fit.r_squared,
        correlation=fit.correlation,
        std_error=fit.std_error,
        trend=trend,
        significance=_significance(fit.r_squared),
        historical=series,
        forecast=forecast,
        confidence_level=params.confidence_level,
    )


PREDICT_TRENDS_SPEC = ToolSpec(
    name=ToolName.PREDICT_TRENDS,
    description=(
        "Forecast future report volume with linear regression over a time-bucketed series. "
        "Reports slope, R², a trend label and prediction intervals. Needs at least 3 non-empty periods."
    ),
    input_model=PredictTrendsInput,
    output_model=PredictTrendsOutput,
    handler=predict_trends,
)


# =============================================================================
# suggestFollowups
# =============================================================================


class Suggestion(BaseModel):
    id: str
    action: Literal["explore", "filter", "visualize", "compare", "export"]
    label: str
    description: str
    query: str
    tool: str
    priority: int


class SuggestFollowupsInput(ToolInput):
    query: str = Field(..., min_length=1, description="The request the results answered")
    results: list[RecordSummary] = Field(default_factory=list)
    total: Optional[int] = Field(default=None, ge=0, description="Match count, if larger than results")
    category: Optional[str] = None
    location: Optional[str] = None
    history: list[ConversationTurn] = Field(default_factory=list)
    max_suggestions: int = Field(default=5, ge=1, le=10)


class SuggestFollowupsOutput(ToolOutput):
    shape: Literal["empty", "sparse", "rich"]
    suggestions: list[Suggestion]

    def headline(self) -> str:
        if not self.suggestions:
            return "No follow-up suggestions."
        labels = ", ".join(s.label.lower() for s in self.suggestions[:3])
        return f"Suggested next steps: {labels}."


# Demotion applied to a suggestion the conversation has already taken.
TAKEN_PENALTY = 5


def _candidates(params: SuggestFollowupsInput, total: int, shape: str) -> list[tuple[str, Suggestion]]:
    """(history keyword, suggestion) pairs applicable to this result shape."""
    q = params.query
    results = params.results
    has_geo = bool(params.location) or any(r.has_coordinates for r in results)
    has_dates = any(r.occurred_at is not None for r in results)
    has_category = bool(params.category) or any(r.category for r in results)
    has_identity = any(r.identity_id for r in results)

    out: list[tuple[str, Suggestion]] = []

    def add(keyword, action, label, description, query, tool, priority):
        out.append(
            (
                keyword,
                Suggestion(
                    id=f"followup-{len(out)}",
                    action=action,
                    label=label,
                    description=description,
                    query=query,
                    tool=tool.value,
                    priority=priority,
                ),
            )
        )

    if shape == "empty":
        add("similar", "explore", "Search by meaning", "Look for experiences described differently",
            f"Find experiences similar to {q}", ToolName.SEMANTIC_SEARCH, 9)
        add("keyword", "filter", "Try keywords", "Match individual words instead of filters",
            f"Keyword search for {q}", ToolName.FULL_TEXT_SEARCH, 8)
        add("overview", "explore", "Browse an overview", "See what the collection holds overall",
            "Give me an overview of all experiences", ToolName.GENERATE_INSIGHTS, 6)
        return out

    if shape == "sparse":
        add("broader", "filter", "Broaden the search", "Drop a filter or widen the date range",
            f"Show more results like {q}", ToolName.ADVANCED_SEARCH, 7)
    if has_geo and total > 1:
        add("map", "visualize", "Show on map", "Visualize where these happened",
            f"Show me a map of {q}", ToolName.GENERATE_MAP, 8)
    if has_dates and total > 2:
        add("timeline", "visualize", "Timeline view", "See how these unfold over time",
            f"Show timeline of {q}", ToolName.GENERATE_TIMELINE, 8)
    if shape == "rich":
        add("pattern", "explore", "Detect patterns", "Find spikes, hotspots and dominant categories",
            f"Analyze patterns in {q}", ToolName.DETECT_PATTERNS, 7)
    if has_dates and total > 3:
        add("predict", "explore", "Predict trends", "Forecast future volume from the history",
            f"Predict future trends for {q}", ToolName.PREDICT_TRENDS, 7)
    if has_category and total > 3:
        add("compare", "compare", "Compare categories", "Contrast with another category",
            f"Compare categories for {q}", ToolName.COMPARE_CATEGORIES, 6)
    if params.location:
        add("nearby", "filter", "Nearby locations", "Expand the search to the surrounding area",
            f"Find similar experiences near {params.location}", ToolName.GEO_SEARCH, 6)
    add("connection", "explore", "Related experiences", "Find similar or connected experiences",
        f"Show me experiences related to {q}", ToolName.FIND_CONNECTIONS, 5)
    if has_identity:
        add("contributor", "explore", "Top contributors", "See who reported most of these",
            f"Who are the top contributors for {q}?", ToolName.RANK_IDENTITIES, 5)
    add("export", "export", "Export results", "Download the results as CSV or JSON",
        f"Export results for {q}", ToolName.EXPORT_RESULTS, 4)
    return out


async def suggest_followups(
    context: RequestContext,
    params: SuggestFollowupsInput,
    analysis: AnalysisSettings,
) -> SuggestFollowupsOutput:
    """
    Propose next actions from the result shape and prior turns.

    Suggestions whose keyword already appears in the user's earlier turns
    are demoted rather than removed.
    """
    total = params.total if params.total is not None else len(params.results)
    if total == 0:
        shape = "empty"
    elif total <= analysis.sparse_result_threshold:
        shape = "sparse"
    else:
        shape = "rich"

    asked = " ".join(turn.content.lower() for turn in params.history if turn.role == "user")
    ranked = []
    for keyword, suggestion in _candidates(params, total, shape):
        if keyword in asked:
            suggestion = suggestion.model_copy(
                update={"priority": max(1, suggestion.priority - TAKEN_PENALTY)}
            )
        ranked.append(suggestion)
    ranked.sort(key=lambda s: s.priority, reverse=True)

    return SuggestFollowupsOutput(shape=shape, suggestions=ranked[: params.max_suggestions])


SUGGEST_FOLLOWUPS_SPEC = ToolSpec(
    name=ToolName.SUGGEST_FOLLOWUPS,
    description=(
        "Suggest useful next questions (explore, filter, visualize, compare, export) based on "
        "how many results came back and what the conversation already covered."
    ),
    input_model=SuggestFollowupsInput,
    output_model=SuggestFollowupsOutput,
    handler=suggest_followups,
)


# =============================================================================
# exportResults
# =============================================================================


class ExportResultsInput(ToolInput):
    data: list[dict[str, Any]] = Field(..., description="Rows to export, usually search results")
    format: str = Field(default="json", description="csv or json")
    filename: Optional[str] = Field(
        default=None,
        pattern=r"^[\w.-]{1,80}$",
        description="Filename prefix without extension",
    )
    include_metadata: bool = True
    fields: list[str] = Field(default_factory=list, description="CSV columns; all when empty")


class ExportResultsOutput(ToolOutput):
    format: Literal["csv", "json"]
    filename: str
    mime_type: str
    record_count: int
    content: str

    def headline(self) -> str:
        return f"Exported {self.record_count} records as {self.format.upper()} ({self.filename})."


def flatten(row: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted keys; lists become JSON text."""
    flat: dict[str, Any] = {}
    for key, value in row.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if value is None:
            flat[name] = ""
        elif isinstance(value, dict):
            flat.update(flatten(value, name))
        elif isinstance(value, list):
            flat[name] = json.dumps(value, default=str, ensure_ascii=False)
        else:
            flat[name] = value
    return flat


def to_csv(rows: list[dict[str, Any]], fields: Optional[list[str]] = None) -> str:
    flattened = [flatten(row) for row in rows]
    header = list(fields) if fields else sorted({key for row in flattened for key in row})
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(header)
    for row in flattened:
        writer.writerow([_cell(row.get(column, "")) for column in header])
    return buffer.getvalue()


def _cell(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


async def export_results(
    context: RequestContext,
    params: ExportResultsInput,
    analysis: AnalysisSettings,
) -> ExportResultsOutput:
    """
    Serialize rows to CSV or JSON with metadata.

    Raises:
        UnsupportedFormat: Any format other than csv or json.
    """
    export_format = params.format.strip().lower()
    if export_format not in SUPPORTED_EXPORT_FORMATS:
        raise UnsupportedFormat(params.format)

    now = datetime.now(timezone.utc)
    if export_format == "csv":
        content = to_csv(params.data, params.fields or None)
        mime_type = "text/csv"
    else:
        payload: Any = params.data
        if params.include_metadata:
            payload = {
                "metadata": {
                    "exported_at": now.isoformat(),
                    "record_count": len(params.data),
                    "version": EXPORT_VERSION,
                    "source": EXPORT_SOURCE,
                },
                "data": params.data,
            }
        content = json.dumps(payload, indent=2, default=str, ensure_ascii=False)
        mime_type = "application/json"

    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    prefix = params.filename or EXPORT_FILENAME_PREFIX
    return ExportResultsOutput(
        format=export_format,
        filename=f"{prefix}-{timestamp}.{export_format}",
        mime_type=mime_type,
        record_count=len(params.data),
        content=content,
    )


EXPORT_RESULTS_SPEC = ToolSpec(
    name=ToolName.EXPORT_RESULTS,
    description="Export a result set as CSV (flattened columns) or JSON with metadata.",
    input_model=ExportResultsInput,
    output_model=ExportResultsOutput,
    handler=export_results,
)
