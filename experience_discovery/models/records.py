"""
Record Models - experience records and store query shapes.

ExperienceRecord is what a store holds; RecordSummary is the shape every
tool emits and accepts as a result set, so one tool's output can be fed to
another tool's ``data`` argument unchanged.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


EXCERPT_LENGTH = 200

AttributeOperator = Literal["equals", "contains", "exists", "gt", "lt", "gte", "lte"]
SortKey = Literal["newest", "oldest", "title"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Stored Records
# =============================================================================


class ExperienceRecord(BaseModel):
    """
    A single submitted experience as held by the store.

    Attributes:
        id: Record identifier, unique within a tenant
        identity_id: Identity that contributed the record
        title: Short title
        story_text: Full free-text account
        category: Category slug (e.g. "ufo-uap", "dreams")
        tags: Free-form tags
        emotions: Emotions reported by the contributor
        location_text: Free-form location ("Berlin, Germany")
        latitude / longitude: Optional coordinates
        occurred_at: When the experience happened
        time_of_day: morning | afternoon | evening | night
        attributes: Category-specific key/value answers
        embedding: Optional vector for meaning-based search
    """

    model_config = ConfigDict(frozen=True)

    id: str
    identity_id: str
    title: str
    story_text: str = ""
    category: str
    tags: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    location_text: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    occurred_at: Optional[datetime] = None
    time_of_day: Optional[str] = None
    attributes: dict[str, str] = Field(default_factory=dict)
    embedding: Optional[list[float]] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class RecordSummary(BaseModel):
    """Record shape shared by all tool inputs and outputs."""

    id: str
    title: str = ""
    category: Optional[str] = None
    excerpt: str = ""
    location_text: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    occurred_at: Optional[datetime] = None
    time_of_day: Optional[str] = None
    identity_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    attributes: dict[str, str] = Field(default_factory=dict)
    score: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_record(cls, record: ExperienceRecord, score: Optional[float] = None) -> "RecordSummary":
        """Project a stored record to the shared summary shape."""
        return cls(
            id=record.id,
            title=record.title,
            category=record.category,
            excerpt=record.story_text[:EXCERPT_LENGTH],
            location_text=record.location_text,
            latitude=record.latitude,
            longitude=record.longitude,
            occurred_at=record.occurred_at,
            time_of_day=record.time_of_day,
            identity_id=record.identity_id,
            tags=list(record.tags),
            emotions=list(record.emotions),
            attributes=dict(record.attributes),
            score=score,
        )


class RecordConnection(BaseModel):
    """A declared, weighted edge between two records."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    target_id: str
    weight: float = Field(default=1.0, ge=0.0)
    kind: str = "related"


# =============================================================================
# Query Shapes
# =============================================================================


class AttributeFilter(BaseModel):
    """Predicate over one attribute key."""

    key: str = Field(..., min_length=1)
    value: Optional[str] = None
    operator: AttributeOperator = "equals"


class GeoRadius(BaseModel):
    """Radius-from-point predicate; validated by the caller."""

    lat: float
    lng: float
    radius_km: float


class BoundingBox(BaseModel):
    """Bounding-box predicate; validated by the caller."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float


class RecordQuery(BaseModel):
    """
    Filtered read against a tenant-scoped store.

    Empty lists mean "no constraint". Tags and emotions must all be present
    on a record; attribute filters are combined with ``attribute_logic``.
    """

    categories: list[str] = Field(default_factory=list)
    identity_ids: list[str] = Field(default_factory=list)
    record_ids: list[str] = Field(default_factory=list)
    exclude_ids: list[str] = Field(default_factory=list)
    location_text: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    time_of_day: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    attribute_filters: list[AttributeFilter] = Field(default_factory=list)
    attribute_logic: Literal["AND", "OR"] = "AND"
    radius: Optional[GeoRadius] = None
    bbox: Optional[BoundingBox] = None
    require_coordinates: bool = False
    sort: SortKey = "newest"
    limit: int = Field(default=50, ge=1, le=100_000)
    offset: int = Field(default=0, ge=0)

    def describe(self) -> dict[str, Any]:
        """Non-default filters, for logs and tool output."""
        return self.model_dump(
            mode="json",
            exclude_defaults=True,
            exclude={"limit", "offset", "sort"},
        )


class RecordPage(BaseModel):
    """One page of records plus the total match count."""

    records: list[ExperienceRecord] = Field(default_factory=list)
    total: int = 0


class ScoredRecord(BaseModel):
    """Record with a relevance score from full-text or vector search."""

    record: ExperienceRecord
    score: float
