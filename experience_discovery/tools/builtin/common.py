"""
Shared input shapes and data access for the builtin tools.

Tools that analyse a result set accept it through ``data`` (usually the
``results`` of a search, passed by reference) and otherwise fetch their own
rows from ``context.tenant_store``, bounded by ``max_scan_rows``.
"""

from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, Field, model_validator

from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.models.records import RecordQuery, RecordSummary


class DateRange(BaseModel):
    """Inclusive date range; either end may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class CountEntry(BaseModel):
    """A labelled count, used for top-N lists and histograms."""

    label: str
    count: int


class SeriesPoint(BaseModel):
    """One bucket of a time series."""

    period: str
    count: float = Field(..., ge=0)


async def fetch_records(
    context: RequestContext,
    analysis: AnalysisSettings,
    category: Optional[str] = None,
    date_range: Optional[DateRange] = None,
    **filters: object,
) -> list[RecordSummary]:
    """Read up to ``max_scan_rows`` records of the caller's tenant."""
    query = RecordQuery(
        categories=[category] if category else [],
        date_from=date_range.start if date_range else None,
        date_to=date_range.end if date_range else None,
        limit=analysis.max_scan_rows,
        **filters,
    )
    page = await context.tenant_store.search(query)
    return [RecordSummary.from_record(record) for record in page.records]


async def resolve_dataset(
    context: RequestContext,
    analysis: AnalysisSettings,
    data: Optional[list[RecordSummary]],
    category: Optional[str] = None,
    date_range: Optional[DateRange] = None,
) -> list[RecordSummary]:
    """Use the supplied result set, or fetch one when none was given."""
    if data is not None:
        return list(data)
    return await fetch_records(context, analysis, category=category, date_range=date_range)


def top_counts(values: Iterable[Optional[str]], limit: int) -> list[CountEntry]:
    """Most common non-empty values; ties keep first-seen order."""
    counter = Counter(value for value in values if value)
    return [CountEntry(label=label, count=count) for label, count in counter.most_common(limit)]


def location_key(record: RecordSummary) -> Optional[str]:
    """Normalized location label of a record, or None."""
    if not record.location_text:
        return None
    return record.location_text.strip()
