"""
Rolling rate-limit windows.

Builds the 5-hour session window and the 168-hour weekly window from the
same deduplicated records.

The reset instant is an estimate: it is anchored on the oldest record still
inside the window, so it moves forward once that record ages out. The
provider's real reset algorithm is not observable from local logs.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Set

from token_meter.storage.models import RateLimitInfo, UsageRecord, WindowInfo

SESSION_WINDOW_HOURS = 5
WEEKLY_WINDOW_HOURS = 168


def build_rate_limits(records: Iterable[UsageRecord], now: datetime) -> RateLimitInfo:
    """Build both windows from scratch.

    Args:
        records: Deduplicated usage records
        now: Aware datetime the windows trail from

    Returns:
        RateLimitInfo with the session and weekly windows
    """
    records = list(records)
    return RateLimitInfo(
        session=build_window(records, SESSION_WINDOW_HOURS, now),
        weekly=build_window(records, WEEKLY_WINDOW_HOURS, now),
    )


def build_window(records: List[UsageRecord], window_hours: int, now: datetime) -> WindowInfo:
    """Sum usage of records with timestamp >= now - window_hours.

    Cache tokens are not counted; only input and output tokens count toward
    rate limits. The reset estimate is suppressed when it has already passed.
    """
    start = now - timedelta(hours=window_hours)

    input_tokens = 0
    output_tokens = 0
    sessions: Set[str] = set()
    oldest = None
    for record in records:
        if record.timestamp < start:
            continue
        input_tokens += record.input_tokens
        output_tokens += record.output_tokens
        if record.session_id:
            sessions.add(record.session_id)
        if oldest is None or record.timestamp < oldest:
            oldest = record.timestamp

    resets_at = None
    minutes_until_reset = None
    if oldest is not None:
        candidate = oldest + timedelta(hours=window_hours)
        if candidate > now:
            resets_at = candidate
            minutes_until_reset = int((candidate - now).total_seconds() // 60)

    return WindowInfo(
        window_hours=window_hours,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        sessions_active=len(sessions),
        oldest_message_time=oldest,
        resets_at=resets_at,
        minutes_until_reset=minutes_until_reset,
    )
