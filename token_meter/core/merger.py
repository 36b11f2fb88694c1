"""
Utilization merging.

Combines locally estimated windows with the remote utilization snapshot.

Precedence, decided in one place:
1. Remote utilization for the window, when the endpoint reported it
2. Local tokens used against the configured plan ceiling
3. Empty state when there is no local usage either
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, TypeVar

from token_meter.storage.models import (
    RateLimitInfo,
    UtilizationInfo,
    WindowInfo,
    WindowUtilization,
)

T = TypeVar("T")

SOURCE_REMOTE = "remote"
SOURCE_ESTIMATE = "estimate"
SOURCE_EMPTY = "empty"


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """Outcome of one data source: data, or the reason it is unavailable."""
    data: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "SourceResult[T]":
        return cls(data=data)

    @classmethod
    def unavailable(cls, reason: str) -> "SourceResult[T]":
        return cls(reason=reason)

    @property
    def available(self) -> bool:
        return self.reason is None and self.data is not None


@dataclass(frozen=True)
class RemoteWindow:
    """One window as reported by the remote endpoint."""
    utilization: float
    resets_at: Optional[datetime] = None


@dataclass(frozen=True)
class RemoteUtilization:
    """Decoded remote utilization response; any window may be missing."""
    five_hour: Optional[RemoteWindow] = None
    seven_day: Optional[RemoteWindow] = None
    seven_day_opus: Optional[RemoteWindow] = None


def merge_utilization(
    rate_limits: RateLimitInfo,
    remote: SourceResult[RemoteUtilization],
    session_limit: int,
    weekly_limit: int,
) -> UtilizationInfo:
    """Merge local windows with the remote snapshot, window by window.

    Args:
        rate_limits: Locally built windows; their token counts are kept as-is
        remote: Remote snapshot or the reason it is unavailable
        session_limit: Plan ceiling for the 5-hour window
        weekly_limit: Plan ceiling for the weekly window

    Returns:
        UtilizationInfo with one gauge per window
    """
    snapshot = remote.data if remote.available else RemoteUtilization()
    return UtilizationInfo(
        session=merge_window(rate_limits.session, snapshot.five_hour, session_limit),
        weekly=merge_window(rate_limits.weekly, snapshot.seven_day, weekly_limit),
        weekly_opus=_from_remote(snapshot.seven_day_opus) if snapshot.seven_day_opus else None,
    )


def merge_window(local: WindowInfo, remote: Optional[RemoteWindow], limit: int) -> WindowUtilization:
    if remote is not None:
        return _from_remote(remote, limit)
    if local.tokens_used > 0 and limit > 0:
        return WindowUtilization(
            percentage=estimate_percentage(local.tokens_used, limit),
            source=SOURCE_ESTIMATE,
            resets_at=local.resets_at,
            limit=limit,
        )
    return WindowUtilization(percentage=0.0, source=SOURCE_EMPTY, limit=limit)


def estimate_percentage(tokens_used: int, limit: int) -> float:
    """Share of the plan ceiling consumed, capped at 100."""
    if limit <= 0:
        return 0.0
    return min(tokens_used / limit * 100, 100.0)


def _from_remote(remote: RemoteWindow, limit: Optional[int] = None) -> WindowUtilization:
    return WindowUtilization(
        percentage=remote.utilization,
        source=SOURCE_REMOTE,
        resets_at=remote.resets_at,
        limit=limit,
    )
