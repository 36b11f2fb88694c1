"""
Data models for storage layer.

Defines usage records, aggregates and the persisted summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from token_meter.core.token_counter import TokenUsage


@dataclass(frozen=True)
class UsageRecord:
    """One assistant turn parsed from a session log.

    Immutable once parsed. Several records may share a request_id when the
    CLI logged one line per content block of the same API call.
    """
    timestamp: datetime
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    session_id: Optional[str] = None
    request_id: Optional[str] = None

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens,
        )


@dataclass(frozen=True)
class ModelBreakdown:
    """Per-model token and cost subtotal within a day."""
    model_name: str
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    cost: float
    priced: bool = True

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_name,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "cost": self.cost,
            "priced": self.priced,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelBreakdown":
        return cls(
            model_name=data["model_name"],
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cache_creation_tokens=int(data.get("cache_creation_tokens", 0)),
            cache_read_tokens=int(data.get("cache_read_tokens", 0)),
            cost=float(data.get("cost", 0.0)),
            priced=bool(data.get("priced", True)),
        )


@dataclass(frozen=True)
class DailyUsage:
    """Token and cost totals for one local calendar date.

    Invariants: total_tokens is the sum of the four categories, and
    total_cost is the sum of the model breakdown costs.
    """
    date: str
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    total_cost: float
    models_used: List[str] = field(default_factory=list)
    model_breakdowns: List[ModelBreakdown] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "models_used": list(self.models_used),
            "model_breakdowns": [b.to_dict() for b in self.model_breakdowns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyUsage":
        return cls(
            date=data["date"],
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cache_creation_tokens=int(data.get("cache_creation_tokens", 0)),
            cache_read_tokens=int(data.get("cache_read_tokens", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
            total_cost=float(data.get("total_cost", 0.0)),
            models_used=list(data.get("models_used", [])),
            model_breakdowns=[
                ModelBreakdown.from_dict(b) for b in data.get("model_breakdowns", [])
            ],
        )


@dataclass(frozen=True)
class WindowInfo:
    """Locally computed usage inside one trailing rate-limit window.

    resets_at is an estimate anchored on the oldest record still inside the
    window; it is only set while that instant lies in the future.
    """
    window_hours: int
    input_tokens: int = 0
    output_tokens: int = 0
    sessions_active: int = 0
    oldest_message_time: Optional[datetime] = None
    resets_at: Optional[datetime] = None
    minutes_until_reset: Optional[int] = None

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_hours": self.window_hours,
            "tokens_used": self.tokens_used,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "sessions_active": self.sessions_active,
            "oldest_message_time": _isoformat(self.oldest_message_time),
            "resets_at": _isoformat(self.resets_at),
            "minutes_until_reset": self.minutes_until_reset,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WindowInfo":
        return cls(
            window_hours=int(data["window_hours"]),
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            sessions_active=int(data.get("sessions_active", 0)),
            oldest_message_time=_parse_iso(data.get("oldest_message_time")),
            resets_at=_parse_iso(data.get("resets_at")),
            minutes_until_reset=data.get("minutes_until_reset"),
        )


@dataclass(frozen=True)
class RateLimitInfo:
    """The session (5h) and weekly (168h) windows."""
    session: WindowInfo
    weekly: WindowInfo

    def to_dict(self) -> Dict[str, Any]:
        return {"session": self.session.to_dict(), "weekly": self.weekly.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateLimitInfo":
        return cls(
            session=WindowInfo.from_dict(data["session"]),
            weekly=WindowInfo.from_dict(data["weekly"]),
        )


@dataclass(frozen=True)
class WindowUtilization:
    """Merged utilization gauge for one window.

    source is "remote" when the endpoint reported the window, "estimate"
    when computed from local tokens against the plan ceiling, and "empty"
    when neither had data.
    """
    percentage: float
    source: str
    resets_at: Optional[datetime] = None
    limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentage": self.percentage,
            "source": self.source,
            "resets_at": _isoformat(self.resets_at),
            "limit": self.limit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WindowUtilization":
        return cls(
            percentage=float(data.get("percentage", 0.0)),
            source=data.get("source", "empty"),
            resets_at=_parse_iso(data.get("resets_at")),
            limit=data.get("limit"),
        )


@dataclass(frozen=True)
class UtilizationInfo:
    """Merged gauges; weekly_opus is only ever reported remotely."""
    session: WindowUtilization
    weekly: WindowUtilization
    weekly_opus: Optional[WindowUtilization] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "weekly": self.weekly.to_dict(),
            "weekly_opus": self.weekly_opus.to_dict() if self.weekly_opus else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UtilizationInfo":
        opus = data.get("weekly_opus")
        return cls(
            session=WindowUtilization.from_dict(data["session"]),
            weekly=WindowUtilization.from_dict(data["weekly"]),
            weekly_opus=WindowUtilization.from_dict(opus) if opus else None,
        )


@dataclass(frozen=True)
class UsageSummary:
    """Last computed snapshot, persisted between runs."""
    daily: List[DailyUsage]
    today_cost: float
    week_cost: float
    month_cost: float
    today_tokens: int
    today_model_breakdowns: List[ModelBreakdown]
    rate_limits: RateLimitInfo
    utilization: UtilizationInfo
    last_updated: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily": [d.to_dict() for d in self.daily],
            "today_cost": self.today_cost,
            "week_cost": self.week_cost,
            "month_cost": self.month_cost,
            "today_tokens": self.today_tokens,
            "today_model_breakdowns": [b.to_dict() for b in self.today_model_breakdowns],
            "rate_limits": self.rate_limits.to_dict(),
            "utilization": self.utilization.to_dict(),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageSummary":
        return cls(
            daily=[DailyUsage.from_dict(d) for d in data.get("daily", [])],
            today_cost=float(data.get("today_cost", 0.0)),
            week_cost=float(data.get("week_cost", 0.0)),
            month_cost=float(data.get("month_cost", 0.0)),
            today_tokens=int(data.get("today_tokens", 0)),
            today_model_breakdowns=[
                ModelBreakdown.from_dict(b) for b in data.get("today_model_breakdowns", [])
            ],
            rate_limits=RateLimitInfo.from_dict(data["rate_limits"]),
            utilization=UtilizationInfo.from_dict(data["utilization"]),
            last_updated=data.get("last_updated", ""),
        )


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
