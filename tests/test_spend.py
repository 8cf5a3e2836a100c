"""
Unit tests for spend aggregation.
"""

import os
import time
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from xc_cli.core.spend import (
    DAY,
    HOUR,
    MONTH,
    WEEK,
    daily_breakdown,
    format_cost_footer,
    spend_summary,
    start_of_local_day,
    sum_since,
    sum_since_local_midnight,
)
from xc_cli.storage.models import HttpMethod, UsageRecord

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def record_at(age, cost):
    return UsageRecord(
        timestamp=NOW - age,
        operation_id="posts.searchRecent",
        http_method=HttpMethod.GET,
        estimated_cost=Decimal(cost),
    )


class TestSumSince:
    """Test trailing window sums."""

    def setup_method(self):
        self.records = [
            record_at(timedelta(minutes=10), "0.01"),
            record_at(timedelta(hours=5), "0.02"),
            record_at(timedelta(days=3), "0.10"),
            record_at(timedelta(days=20), "1.00"),
            record_at(timedelta(days=45), "5.00"),
        ]

    def test_windows(self):
        """Test each standard window."""
        assert sum_since(self.records, HOUR, NOW) == Decimal("0.01")
        assert sum_since(self.records, DAY, NOW) == Decimal("0.03")
        assert sum_since(self.records, WEEK, NOW) == Decimal("0.13")
        assert sum_since(self.records, MONTH, NOW) == Decimal("1.13")

    def test_monotonic_in_window(self):
        """Test wider windows never sum to less."""
        windows = [timedelta(0), HOUR, DAY, WEEK, MONTH, timedelta(days=365)]
        sums = [sum_since(self.records, w, NOW) for w in windows]
        assert sums == sorted(sums)

    def test_idempotent(self):
        """Test the same inputs give the same result."""
        assert sum_since(self.records, WEEK, NOW) == sum_since(self.records, WEEK, NOW)

    def test_window_boundary_inclusive(self):
        """Test a record exactly at the cutoff is counted."""
        records = [record_at(HOUR, "0.01")]
        assert sum_since(records, HOUR, NOW) == Decimal("0.01")

    def test_empty(self):
        assert sum_since([], DAY, NOW) == Decimal("0")

    def test_negative_window_rejected(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            sum_since(self.records, timedelta(seconds=-1), NOW)


class TestLocalDay:
    """Test the since-midnight sum used by the budget check."""

    def test_start_of_day_keeps_timezone(self):
        tz = timezone(timedelta(hours=-5))
        now = datetime(2024, 6, 15, 1, 30, tzinfo=tz)
        assert start_of_local_day(now) == datetime(2024, 6, 15, 0, 0, tzinfo=tz)

    def test_excludes_yesterday(self):
        """Test records before local midnight are not counted."""
        records = [
            record_at(timedelta(hours=11), "0.50"),   # 01:00 today
            record_at(timedelta(hours=13), "3.00"),   # 23:00 yesterday
        ]
        assert sum_since_local_midnight(records, NOW) == Decimal("0.50")

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
    def test_midnight_on_dst_change_day(self):
        """Test midnight uses the offset in force at midnight, not at now."""
        try:
            with patch.dict(os.environ, {"TZ": "America/New_York"}):
                time.tzset()
                # 2024-03-10: EST (-5) at midnight, EDT (-4) by noon
                now = datetime(2024, 3, 10, 16, 0, tzinfo=timezone.utc).astimezone()
                records = [
                    UsageRecord(datetime(2024, 3, 10, 4, 30, tzinfo=timezone.utc),
                                "a", HttpMethod.GET, Decimal("3.00")),   # 23:30 EST yesterday
                    UsageRecord(datetime(2024, 3, 10, 5, 30, tzinfo=timezone.utc),
                                "a", HttpMethod.GET, Decimal("0.50")),   # 00:30 EST today
                ]
                assert start_of_local_day(now) == datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc)
                assert sum_since_local_midnight(records, now) == Decimal("0.50")
        finally:
            time.tzset()

    def test_midnight_in_other_timezone(self):
        """Test midnight is computed in the clock's zone, not UTC."""
        tz = timezone(timedelta(hours=9))
        now = NOW.astimezone(tz)  # 21:00 local
        records = [
            record_at(timedelta(hours=11), "0.50"),   # 10:00 local
            record_at(timedelta(hours=13), "3.00"),   # 08:00 local
        ]
        assert sum_since_local_midnight(records, now) == Decimal("3.50")


class TestSummary:
    """Test the combined summary and footer."""

    def test_summary(self):
        records = [record_at(timedelta(minutes=1), "0.01"), record_at(timedelta(days=2), "0.02")]
        summary = spend_summary(records, NOW)
        assert summary.total_requests == 2
        assert summary.to_dict() == {
            "1h": 0.01,
            "24h": 0.01,
            "7d": 0.03,
            "30d": 0.03,
            "totalRequests": 2,
        }

    def test_footer_empty_without_records(self):
        """Test no footer is produced for an empty ledger."""
        assert format_cost_footer([], NOW) == ""

    def test_footer(self):
        records = [record_at(timedelta(minutes=1), "0.016")]
        footer = format_cost_footer(records, NOW)
        assert footer.startswith("Cost: $0.02 (1h)")
        assert "(30d)" in footer

    def test_daily_breakdown_newest_first(self):
        """Test per-day totals are grouped and ordered."""
        local_noon = datetime(2024, 6, 15, 12, 0).astimezone()
        records = [
            UsageRecord(local_noon - timedelta(days=1), "a", HttpMethod.GET, Decimal("0.02")),
            UsageRecord(local_noon, "a", HttpMethod.GET, Decimal("0.01")),
            UsageRecord(local_noon + timedelta(minutes=5), "a", HttpMethod.GET, Decimal("0.01")),
        ]
        assert daily_breakdown(records) == [
            (date(2024, 6, 15), Decimal("0.02")),
            (date(2024, 6, 14), Decimal("0.02")),
        ]
