"""
Calendar bucketing for time-series tools.

Periods are ordered by their calendar start, never by label text or by the
order records arrive in.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, Literal, Optional


Granularity = Literal["hour", "day", "week", "month", "year"]


def period_start(moment: datetime, granularity: Granularity) -> datetime:
    """Start of the calendar period containing ``moment``."""
    if granularity == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == "day":
        return day
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    if granularity == "month":
        return day.replace(day=1)
    return day.replace(month=1, day=1)


def period_label(start: datetime, granularity: Granularity) -> str:
    """Stable text label for a period start."""
    if granularity == "hour":
        return start.strftime("%Y-%m-%dT%H:00")
    if granularity == "day":
        return start.strftime("%Y-%m-%d")
    if granularity == "week":
        year, week, _ = start.isocalendar()
        return f"{year}-W{week:02d}"
    if granularity == "month":
        return start.strftime("%Y-%m")
    return start.strftime("%Y")


def parse_period_label(label: str, granularity: Granularity) -> Optional[datetime]:
    """Inverse of period_label; None for labels in another format."""
    try:
        if granularity == "hour":
            return datetime.strptime(label, "%Y-%m-%dT%H:00")
        if granularity == "day":
            return datetime.strptime(label, "%Y-%m-%d")
        if granularity == "week":
            year, week = label.split("-W")
            return datetime.fromisocalendar(int(year), int(week), 1)
        if granularity == "month":
            return datetime.strptime(label, "%Y-%m")
        return datetime.strptime(label, "%Y")
    except ValueError:
        return None


def shift_period(start: datetime, granularity: Granularity, steps: int) -> datetime:
    """Start of the period ``steps`` periods after ``start``."""
    if granularity == "hour":
        return start + timedelta(hours=steps)
    if granularity == "day":
        return start + timedelta(days=steps)
    if granularity == "week":
        return start + timedelta(weeks=steps)
    if granularity == "month":
        months = start.month - 1 + steps
        return start.replace(year=start.year + months // 12, month=months % 12 + 1)
    return start.replace(year=start.year + steps)


def next_period_label(label: str, granularity: Granularity, steps: int = 1) -> str:
    """Label ``steps`` periods after ``label``; "<label>+N" when it cannot be parsed."""
    start = parse_period_label(label, granularity)
    if start is None:
        return f"{label}+{steps}"
    return period_label(shift_period(start, granularity, steps), granularity)


def bucket_counts(
    moments: Iterable[Optional[datetime]],
    granularity: Granularity,
    fill_gaps: bool = False,
) -> list[tuple[str, int]]:
    """
    Count moments per period, in chronological order.

    None entries are skipped. With ``fill_gaps`` every period between the
    first and the last bucket is present, empty ones with a count of 0.
    """
    counts: Counter[datetime] = Counter()
    for moment in moments:
        if moment is None:
            continue
        counts[period_start(to_utc_naive(moment), granularity)] += 1
    if not fill_gaps or not counts:
        return [(period_label(start, granularity), counts[start]) for start in sorted(counts)]

    buckets: list[tuple[str, int]] = []
    start, last = min(counts), max(counts)
    while start <= last:
        buckets.append((period_label(start, granularity), counts[start]))
        start = shift_period(start, granularity, 1)
    return buckets


def to_utc_naive(moment: datetime) -> datetime:
    """Drop the timezone after converting to UTC, so mixed inputs compare."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
