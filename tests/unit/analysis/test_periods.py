"""
Unit tests for experience_discovery/analysis/periods.py - calendar bucketing.
"""

from datetime import datetime, timedelta, timezone

import pytest


class TestPeriodLabels:

    @pytest.mark.parametrize(
        "granularity,expected",
        [
            ("hour", "2024-03-05T22:00"),
            ("day", "2024-03-05"),
            ("week", "2024-W10"),
            ("month", "2024-03"),
            ("year", "2024"),
        ],
    )
    def test_label_for_each_granularity(self, granularity, expected):
        from experience_discovery.analysis.periods import period_label, period_start

        moment = datetime(2024, 3, 5, 22, 41)

        assert period_label(period_start(moment, granularity), granularity) == expected

    def test_week_starts_on_monday(self):
        from experience_discovery.analysis.periods import period_start

        assert period_start(datetime(2024, 3, 7, 12), "week") == datetime(2024, 3, 4)

    def test_next_label_rolls_over_year(self):
        from experience_discovery.analysis.periods import next_period_label

        assert next_period_label("2024-11", "month", 3) == "2025-02"
        assert next_period_label("2024-W52", "week") == "2025-W01"
        assert next_period_label("2023", "year", 2) == "2025"

    def test_unparseable_label(self):
        from experience_discovery.analysis.periods import next_period_label

        assert next_period_label("spring", "month", 2) == "spring+2"


class TestBucketCounts:

    def test_chronological_order_regardless_of_input_order(self):
        from experience_discovery.analysis.periods import bucket_counts

        moments = [
            datetime(2024, 3, 1),
            datetime(2023, 12, 30),
            None,
            datetime(2024, 3, 20),
            datetime(2024, 1, 2),
        ]

        assert bucket_counts(moments, "month") == [("2023-12", 1), ("2024-01", 1), ("2024-03", 2)]

    def test_fill_gaps_adds_empty_periods(self):
        from experience_discovery.analysis.periods import bucket_counts

        moments = [datetime(2024, 3, 1), datetime(2023, 11, 30), datetime(2024, 3, 20)]

        assert bucket_counts(moments, "month", fill_gaps=True) == [
            ("2023-11", 1),
            ("2023-12", 0),
            ("2024-01", 0),
            ("2024-02", 0),
            ("2024-03", 2),
        ]
        assert bucket_counts([datetime(2024, 1, 1), datetime(2024, 1, 15)], "week", fill_gaps=True) == [
            ("2024-W01", 1),
            ("2024-W02", 0),
            ("2024-W03", 1),
        ]
        assert bucket_counts([None], "day", fill_gaps=True) == []

    def test_mixed_timezones_are_normalized_to_utc(self):
        from experience_discovery.analysis.periods import bucket_counts

        berlin = timezone(timedelta(hours=1))
        moments = [
            datetime(2024, 1, 1, 0, 30, tzinfo=berlin),  # 2023-12-31 23:30 UTC
            datetime(2024, 1, 1, 12, 0),
        ]

        assert bucket_counts(moments, "day") == [("2023-12-31", 1), ("2024-01-01", 1)]
