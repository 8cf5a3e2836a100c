"""
Spend aggregation over trailing time windows.

All functions are pure: the reference "now" is always passed in so results
are deterministic for a given record set.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Iterable, List, Tuple

from xc_cli.storage.models import UsageRecord

Clock = Callable[[], datetime]

HOUR = timedelta(hours=1)
DAY = timedelta(hours=24)
WEEK = timedelta(days=7)
MONTH = timedelta(days=30)  # 30 x 24h, not calendar months


def system_clock() -> datetime:
    """Current time as a timezone-aware local datetime."""
    return datetime.now().astimezone()


@dataclass(frozen=True)
class SpendSummary:
    """Spend over the standard windows."""
    last_hour: Decimal
    last_day: Decimal
    last_week: Decimal
    last_month: Decimal
    total_requests: int

    def to_dict(self) -> dict:
        return {
            "1h": float(self.last_hour),
            "24h": float(self.last_day),
            "7d": float(self.last_week),
            "30d": float(self.last_month),
            "totalRequests": self.total_requests,
        }


def sum_since(records: Iterable[UsageRecord], window: timedelta, now: datetime) -> Decimal:
    """Sum estimated costs of records inside a trailing window.

    Args:
        records: Usage records to aggregate
        window: Non-negative window length
        now: Reference time the window ends at

    Returns:
        Total cost of records with timestamp >= now - window
    """
    if window < timedelta(0):
        raise ValueError("window cannot be negative")
    cutoff = now - window
    return sum(
        (r.estimated_cost for r in records if r.timestamp >= cutoff),
        Decimal("0"),
    )


def start_of_local_day(now: datetime) -> datetime:
    """Midnight of the calendar day `now` falls on, in now's own timezone.

    When `now` is system local time the offset is looked up again at
    midnight, which differs from now's offset on DST transition days.
    """
    if now.tzinfo is not None and now.utcoffset() == now.astimezone().utcoffset():
        return datetime.combine(now.date(), time()).astimezone()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def sum_since_local_midnight(records: Iterable[UsageRecord], now: datetime) -> Decimal:
    """Sum estimated costs of records made since local midnight."""
    cutoff = start_of_local_day(now)
    return sum(
        (r.estimated_cost for r in records if r.timestamp >= cutoff),
        Decimal("0"),
    )


def spend_summary(records: List[UsageRecord], now: datetime) -> SpendSummary:
    return SpendSummary(
        last_hour=sum_since(records, HOUR, now),
        last_day=sum_since(records, DAY, now),
        last_week=sum_since(records, WEEK, now),
        last_month=sum_since(records, MONTH, now),
        total_requests=len(records),
    )


def daily_breakdown(records: Iterable[UsageRecord]) -> List[Tuple[date, Decimal]]:
    """Group spend by local calendar date, newest first."""
    by_day = defaultdict(lambda: Decimal("0"))
    for record in records:
        by_day[record.timestamp.astimezone().date()] += record.estimated_cost
    return sorted(by_day.items(), key=lambda item: item[0], reverse=True)


def format_cost_footer(records: List[UsageRecord], now: datetime) -> str:
    """Build the compact cost footer line, or "" if nothing was recorded."""
    if not records:
        return ""
    s = spend_summary(records, now)
    return (
        f"Cost: {_fmt(s.last_hour)} (1h) · {_fmt(s.last_day)} (24h) · "
        f"{_fmt(s.last_week)} (7d) · {_fmt(s.last_month)} (30d)"
    )


def _fmt(amount: Decimal) -> str:
    return f"${amount:.2f}"
