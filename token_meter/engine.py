"""
Refresh orchestration.

Runs the local log pipeline and the remote utilization fetch concurrently,
merges them, and keeps the last good summary.

State owned by the engine:
- summary: replaced wholesale after each successful pass, never patched
- the remote client's cached bearer token, invalidated only on a 401
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

from token_meter.config.loader import AppConfig, DataSource
from token_meter.core.daily import aggregate_daily
from token_meter.core.dedup import deduplicate_records, find_conflicting_duplicates
from token_meter.core.log_scanner import LogScanner
from token_meter.core.merger import RemoteUtilization, SourceResult, merge_utilization
from token_meter.core.pricing import PRICING_TABLE
from token_meter.core.record_parser import parse_line
from token_meter.core.summary import build_summary
from token_meter.core.windows import WEEKLY_WINDOW_HOURS, build_rate_limits
from token_meter.sources.credentials import default_credential_provider
from token_meter.sources.legacy import LegacySourceError, LegacyUsageSource
from token_meter.sources.remote import RemoteUsageClient
from token_meter.storage.models import DailyUsage, RateLimitInfo, UsageRecord, UsageSummary
from token_meter.storage.repository import SummaryCache

logger = logging.getLogger(__name__)


class RefreshError(Exception):
    """Raised when every daily data source failed during a refresh."""


@dataclass(frozen=True)
class LocalUsage:
    """Result of one pass over the session logs."""
    records: List[UsageRecord]
    daily: List[DailyUsage]
    rate_limits: RateLimitInfo


class UsageEngine:
    """Owns the refresh cycle and the cached summary."""

    def __init__(
        self,
        config: AppConfig,
        scanner: Optional[LogScanner] = None,
        remote: Optional[RemoteUsageClient] = None,
        legacy: Optional[LegacyUsageSource] = None,
        cache: Optional[SummaryCache] = None,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize the engine.

        Collaborators default to the ones described by the config.

        Args:
            config: Application configuration
            scanner: Session log scanner
            remote: Remote utilization client; None disables the remote source
                unless the config enables it
            legacy: ccusage wrapper, used when data_source is legacy
            cache: Persistent summary cache
            tz: Zone for calendar dates (local zone when None)
        """
        self.config = config
        self.scanner = scanner or LogScanner(config.log_dirs)
        if remote is None and config.remote.enabled:
            remote = RemoteUsageClient(
                endpoint=config.remote.endpoint,
                credentials=default_credential_provider(config.remote.credentials_path),
                timeout=config.remote.timeout_seconds,
            )
        self.remote = remote
        if legacy is None and config.data_source == DataSource.LEGACY:
            legacy = LegacyUsageSource(config.legacy_binary)
        self.legacy = legacy
        self.cache = cache or SummaryCache(config.cache_db)
        self.tz = tz
        self.pricing = PRICING_TABLE.with_policy(config.unknown_model_pricing)

        self.summary: Optional[UsageSummary] = None
        self.last_error: Optional[str] = None
        self._inflight: Optional[asyncio.Future] = None

    def load_cached(self) -> Optional[UsageSummary]:
        """Load the persisted summary, unless a live one already exists."""
        if self.summary is None:
            try:
                self.summary = self.cache.load()
            except (sqlite3.Error, OSError) as e:
                logger.warning("Cannot read summary cache: %s", e)
        return self.summary

    async def refresh(self, now: Optional[datetime] = None) -> UsageSummary:
        """Run a full aggregation pass.

        A request arriving while a pass is running joins that pass instead
        of starting an overlapping one. The running pass is shielded so a
        cancelled caller never leaves a partially applied result.

        Args:
            now: Aware instant of the pass (current time when None)

        Returns:
            The new summary

        Raises:
            RefreshError: If no daily data source succeeded; the previous
                summary stays cached
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh_pass(now))
        return await asyncio.shield(self._inflight)

    async def run_forever(
        self,
        interval: Optional[float] = None,
        on_update: Optional[Callable[[UsageSummary], None]] = None,
    ) -> None:
        """Refresh on a fixed timer until cancelled.

        Failures are logged and the previous summary is kept.

        Args:
            interval: Seconds between passes (config value when None)
            on_update: Called with each new summary
        """
        interval = interval or self.config.refresh_interval_seconds
        while True:
            try:
                summary = await self.refresh()
            except RefreshError as e:
                logger.error("Refresh failed: %s", e)
            except Exception:
                # CancelledError is a BaseException and still stops the loop
                logger.exception("Unexpected error during refresh")
            else:
                if on_update is not None:
                    on_update(summary)
            await asyncio.sleep(interval)

    async def _refresh_pass(self, now: Optional[datetime]) -> UsageSummary:
        now = now or datetime.now(timezone.utc)
        today = now.astimezone(self.tz).date()

        local, remote, legacy = await asyncio.gather(
            asyncio.to_thread(self._local_pass, now),
            self._fetch_remote(),
            self._fetch_legacy(today),
        )

        if legacy.available:
            daily = legacy.data
        elif local.available:
            if legacy.reason is not None and self.legacy is not None:
                logger.warning("ccusage unavailable (%s), using session logs", legacy.reason)
            daily = local.data.daily
        else:
            reasons = [local.reason]
            if self.legacy is not None:
                reasons.append(legacy.reason)
            self.last_error = "; ".join(r for r in reasons if r)
            raise RefreshError(f"No usage data source succeeded: {self.last_error}")

        if local.available:
            rate_limits = local.data.rate_limits
        else:
            rate_limits = build_rate_limits([], now)

        if not remote.available:
            logger.debug("Remote utilization unavailable: %s", remote.reason)

        limits = self.config.limits
        utilization = merge_utilization(rate_limits, remote, limits.session, limits.weekly)
        summary = build_summary(daily, rate_limits, utilization, today, now)

        self.summary = summary
        self.last_error = None
        try:
            self.cache.save(summary)
        except (sqlite3.Error, OSError) as e:
            logger.warning("Cannot persist summary cache: %s", e)
        return summary

    def _local_pass(self, now: datetime) -> SourceResult[LocalUsage]:
        try:
            return SourceResult.ok(self.collect_local(now))
        except OSError as e:
            logger.warning("Session log scan failed: %s", e)
            return SourceResult.unavailable(f"session logs: {e}")

    def collect_local(self, now: datetime) -> LocalUsage:
        """Scan, parse, deduplicate and aggregate the session logs.

        Args:
            now: Aware instant the pass runs at

        Returns:
            LocalUsage with deduplicated records, daily buckets and windows
        """
        history_start = now - timedelta(days=self.config.history_days)
        window_start = now - timedelta(hours=WEEKLY_WINDOW_HOURS)
        modified_after = min(history_start, window_start)

        parsed = []
        for line in self.scanner.iter_lines(modified_after):
            record = parse_line(line)
            if record is not None:
                parsed.append(record)

        conflicts = find_conflicting_duplicates(parsed)
        if conflicts:
            logger.warning(
                "%d request id(s) have differing duplicate entries; totals depend on file order: %s",
                len(conflicts), ", ".join(conflicts[:5]),
            )

        records = deduplicate_records(parsed)
        logger.debug("Parsed %d usage records, %d after dedup", len(parsed), len(records))

        return LocalUsage(
            records=records,
            daily=aggregate_daily(records, since=history_start, tz=self.tz, pricing=self.pricing),
            rate_limits=build_rate_limits(records, now),
        )

    async def _fetch_remote(self) -> SourceResult[RemoteUtilization]:
        if self.remote is None:
            return SourceResult.unavailable("disabled")
        return await self.remote.fetch()

    async def _fetch_legacy(self, today: date) -> SourceResult[List[DailyUsage]]:
        if self.legacy is None:
            return SourceResult.unavailable("disabled")
        since = today - timedelta(days=self.config.history_days)
        try:
            return SourceResult.ok(await self.legacy.fetch_daily(since, today))
        except LegacySourceError as e:
            return SourceResult.unavailable(str(e))
