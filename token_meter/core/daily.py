"""
Daily cost aggregation.

Buckets deduplicated records by local calendar date and model.
"""

from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional

from .pricing import PRICING_TABLE, PricingTable
from .token_counter import TokenUsage
from token_meter.storage.models import DailyUsage, ModelBreakdown, UsageRecord


def aggregate_daily(
    records: Iterable[UsageRecord],
    since: datetime,
    tz: Optional[tzinfo] = None,
    pricing: PricingTable = PRICING_TABLE,
) -> List[DailyUsage]:
    """Group records into per-day, per-model totals.

    Days with no records are omitted rather than zero-filled; callers that
    need a continuous series must synthesize the gaps.

    Args:
        records: Deduplicated usage records
        since: Records older than this are excluded
        tz: Zone used to derive the calendar date (local zone when None)
        pricing: Pricing table for per-model costs

    Returns:
        DailyUsage buckets sorted ascending by date
    """
    # date -> model -> usage; dicts keep first-encounter order of models
    days: Dict[str, Dict[str, TokenUsage]] = {}
    for record in records:
        if record.timestamp < since:
            continue
        date = record.timestamp.astimezone(tz).strftime("%Y-%m-%d")
        models = days.setdefault(date, {})
        models[record.model] = models.get(record.model, TokenUsage()) + record.usage

    return [_build_day(date, days[date], pricing) for date in sorted(days)]


def _build_day(date: str, models: Dict[str, TokenUsage], pricing: PricingTable) -> DailyUsage:
    breakdowns = [_build_breakdown(model, usage, pricing) for model, usage in models.items()]
    # sorted() is stable, so equal costs keep encounter order
    breakdowns = sorted(breakdowns, key=lambda b: b.cost, reverse=True)

    total = TokenUsage()
    for usage in models.values():
        total = total + usage

    return DailyUsage(
        date=date,
        input_tokens=total.input_tokens,
        output_tokens=total.output_tokens,
        cache_creation_tokens=total.cache_creation_tokens,
        cache_read_tokens=total.cache_read_tokens,
        total_tokens=total.total_tokens,
        total_cost=sum(b.cost for b in breakdowns),
        models_used=sorted(models),
        model_breakdowns=breakdowns,
    )


def _build_breakdown(model: str, usage: TokenUsage, pricing: PricingTable) -> ModelBreakdown:
    return ModelBreakdown(
        model_name=model,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        cache_creation_tokens=usage.cache_creation_tokens,
        cache_read_tokens=usage.cache_read_tokens,
        cost=pricing.get_pricing(model).cost(usage),
        priced=pricing.is_priced(model),
    )
