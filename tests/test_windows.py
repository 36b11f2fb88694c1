"""
Unit tests for the rolling rate-limit windows.
"""

from datetime import datetime, timedelta, timezone

from token_meter.core.windows import build_rate_limits, build_window
from token_meter.storage.models import UsageRecord

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


class TestRateLimitWindows:
    """Test session and weekly window construction."""

    def create_record(self, hours_ago, session_id="s1", input_tokens=1000, output_tokens=500,
                      cache_read=0):
        """Create a test usage record."""
        return UsageRecord(
            timestamp=NOW - timedelta(hours=hours_ago),
            model="claude-sonnet-4",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cache_read,
            session_id=session_id,
        )

    def test_session_window_scenario(self):
        """Three records in the last 4 hours across two sessions."""
        records = [
            self.create_record(4, "s1"),
            self.create_record(2, "s1"),
            self.create_record(1, "s2"),
        ]
        session = build_rate_limits(records, NOW).session
        assert session.tokens_used == 4500
        assert session.input_tokens == 3000
        assert session.output_tokens == 1500
        assert session.sessions_active == 2
        assert session.window_hours == 5

    def test_cache_tokens_excluded(self):
        session = build_rate_limits([self.create_record(1, cache_read=99_999)], NOW).session
        assert session.tokens_used == 1500

    def test_windows_have_independent_ranges(self):
        """A 6-hour-old record counts weekly but not for the session."""
        records = [self.create_record(6), self.create_record(1), self.create_record(200)]
        info = build_rate_limits(records, NOW)
        assert info.session.tokens_used == 1500
        assert info.weekly.tokens_used == 3000
        assert info.weekly.window_hours == 168

    def test_window_start_is_inclusive(self):
        assert build_window([self.create_record(5)], 5, NOW).tokens_used == 1500

    def test_reset_estimate_from_oldest_record(self):
        """Reset is oldest timestamp + window length, floored to minutes."""
        record = UsageRecord(
            timestamp=NOW - timedelta(hours=3, seconds=30),
            model="claude-sonnet-4",
            input_tokens=1,
        )
        window = build_window([record], 5, NOW)
        assert window.oldest_message_time == record.timestamp
        assert window.resets_at == record.timestamp + timedelta(hours=5)
        # 1h 59m 30s remaining
        assert window.minutes_until_reset == 119

    def test_reset_suppressed_when_elapsed(self):
        """An anchor whose reset is not in the future exposes no reset."""
        record = self.create_record(5)
        window = build_window([record], 5, NOW)
        assert window.oldest_message_time == record.timestamp
        assert window.resets_at is None
        assert window.minutes_until_reset is None

    def test_empty_window(self):
        window = build_window([], 168, NOW)
        assert window.tokens_used == 0
        assert window.sessions_active == 0
        assert window.oldest_message_time is None
        assert window.resets_at is None
        assert window.minutes_until_reset is None

    def test_records_without_session_id_not_counted_as_sessions(self):
        records = [self.create_record(1, session_id=None), self.create_record(2, "s1")]
        assert build_window(records, 5, NOW).sessions_active == 1
