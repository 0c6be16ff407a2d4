"""
Predicate evaluation for RecordQuery.

Used by the in-memory store and by tools that post-filter a result set
already in hand, so both apply identical semantics.
"""

from typing import Optional

from experience_discovery.analysis.geo import haversine_km, in_bbox
from experience_discovery.analysis.periods import to_utc_naive
from experience_discovery.models.records import AttributeFilter, ExperienceRecord, RecordQuery


def _as_number(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def matches_attribute(attributes: dict[str, str], flt: AttributeFilter) -> bool:
    """Evaluate one attribute predicate; string comparisons ignore case."""
    actual = attributes.get(flt.key)
    if flt.operator == "exists":
        return actual is not None and actual != ""
    if actual is None or flt.value is None:
        return False
    if flt.operator == "equals":
        return actual.casefold() == flt.value.casefold()
    if flt.operator == "contains":
        return flt.value.casefold() in actual.casefold()

    left, right = _as_number(actual), _as_number(flt.value)
    if left is None or right is None:
        return False
    if flt.operator == "gt":
        return left > right
    if flt.operator == "lt":
        return left < right
    if flt.operator == "gte":
        return left >= right
    return left <= right


def matches_attributes(attributes: dict[str, str], filters: list[AttributeFilter], logic: str = "AND") -> bool:
    if not filters:
        return True
    results = (matches_attribute(attributes, flt) for flt in filters)
    return all(results) if logic == "AND" else any(results)


def _contains_all(have: list[str], want: list[str]) -> bool:
    folded = {item.casefold() for item in have}
    return all(item.casefold() in folded for item in want)


def matches(record: ExperienceRecord, query: RecordQuery) -> bool:
    """True when the record satisfies every constraint of ``query``."""
    if query.categories and record.category not in query.categories:
        return False
    if query.identity_ids and record.identity_id not in query.identity_ids:
        return False
    if query.record_ids and record.id not in query.record_ids:
        return False
    if record.id in query.exclude_ids:
        return False
    if query.location_text:
        if not record.location_text or query.location_text.casefold() not in record.location_text.casefold():
            return False
    if query.date_from or query.date_to:
        if record.occurred_at is None:
            return False
        occurred = to_utc_naive(record.occurred_at)
        if query.date_from and occurred < to_utc_naive(query.date_from):
            return False
        if query.date_to and occurred > to_utc_naive(query.date_to):
            return False
    if query.time_of_day and (record.time_of_day or "").casefold() != query.time_of_day.casefold():
        return False
    if query.tags and not _contains_all(record.tags, query.tags):
        return False
    if query.emotions and not _contains_all(record.emotions, query.emotions):
        return False
    if not matches_attributes(record.attributes, query.attribute_filters, query.attribute_logic):
        return False
    if query.require_coordinates or query.radius or query.bbox:
        if not record.has_coordinates:
            return False
    if query.radius:
        distance = haversine_km(query.radius.lat, query.radius.lng, record.latitude, record.longitude)
        if distance > query.radius.radius_km:
            return False
    if query.bbox:
        box = query.bbox
        if not in_bbox(record.latitude, record.longitude, box.min_lat, box.min_lng, box.max_lat, box.max_lng):
            return False
    return True


def sort_records(records: list[ExperienceRecord], sort: str) -> list[ExperienceRecord]:
    """Order records by the sort key; ties break on id for determinism."""
    if sort == "title":
        return sorted(records, key=lambda r: (r.title.casefold(), r.id))

    dated = [r for r in records if r.occurred_at is not None]
    undated = sorted((r for r in records if r.occurred_at is None), key=lambda r: r.id)
    dated.sort(key=lambda r: r.id)
    dated.sort(key=lambda r: to_utc_naive(r.occurred_at), reverse=(sort == "newest"))
    return dated + undated
