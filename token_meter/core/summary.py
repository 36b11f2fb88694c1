"""
Summary rollups.

Derives today/week/month figures from the daily buckets.
"""

from datetime import date, datetime, timedelta
from typing import List

from token_meter.storage.models import (
    DailyUsage,
    RateLimitInfo,
    UsageSummary,
    UtilizationInfo,
)


def build_summary(
    daily: List[DailyUsage],
    rate_limits: RateLimitInfo,
    utilization: UtilizationInfo,
    today: date,
    now: datetime,
) -> UsageSummary:
    """Assemble the summary for one refresh pass.

    The week covers today and the six days before it; the month starts on
    the first of today's month.

    Args:
        daily: Buckets sorted ascending by date
        rate_limits: Local windows
        utilization: Merged gauges
        today: Local calendar date of the pass
        now: Instant of the pass, recorded as last_updated

    Returns:
        UsageSummary
    """
    today_str = today.isoformat()
    week_start = (today - timedelta(days=6)).isoformat()
    month_start = today.replace(day=1).isoformat()

    today_bucket = next((d for d in daily if d.date == today_str), None)

    # YYYY-MM-DD strings compare in date order
    week_cost = sum(d.total_cost for d in daily if d.date >= week_start)
    month_cost = sum(d.total_cost for d in daily if d.date >= month_start)

    return UsageSummary(
        daily=list(daily),
        today_cost=today_bucket.total_cost if today_bucket else 0.0,
        week_cost=week_cost,
        month_cost=month_cost,
        today_tokens=today_bucket.total_tokens if today_bucket else 0,
        today_model_breakdowns=list(today_bucket.model_breakdowns) if today_bucket else [],
        rate_limits=rate_limits,
        utilization=utilization,
        last_updated=now.isoformat(timespec="seconds"),
    )
