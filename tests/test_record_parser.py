"""
Unit tests for session log line decoding.
"""

import json
from datetime import datetime, timezone

import pytest

from token_meter.core.record_parser import parse_line, parse_timestamp


def _line(**overrides) -> str:
    entry = {
        "type": "assistant",
        "timestamp": "2025-06-01T10:15:30.123Z",
        "sessionId": "s1",
        "requestId": "req-1",
        "message": {
            "model": "claude-sonnet-4-20250514",
            "usage": {
                "input_tokens": 100,
                "output_tokens": 50,
                "cache_creation_input_tokens": 10,
                "cache_read_input_tokens": 5,
            },
        },
    }
    entry.update(overrides)
    return json.dumps(entry)


class TestParseLine:
    """Test acceptance and rejection of log lines."""

    def test_assistant_line_parses(self):
        """Verify all fields are decoded."""
        record = parse_line(_line())
        assert record is not None
        assert record.timestamp == datetime(2025, 6, 1, 10, 15, 30, 123000, tzinfo=timezone.utc)
        assert record.session_id == "s1"
        assert record.request_id == "req-1"
        assert record.model == "claude-sonnet-4-20250514"
        assert record.input_tokens == 100
        assert record.output_tokens == 50
        assert record.cache_creation_tokens == 10
        assert record.cache_read_tokens == 5

    @pytest.mark.parametrize("line", [
        "",
        "   ",
        "not json",
        "[1, 2, 3]",
        '{"type": "assistant"',
    ])
    def test_malformed_lines_are_discarded(self, line):
        """Empty and undecodable lines are not applicable."""
        assert parse_line(line) is None

    @pytest.mark.parametrize("entry_type", ["user", "system", "summary", None])
    def test_non_assistant_types_are_discarded(self, entry_type):
        """Only assistant turns carry usage."""
        assert parse_line(_line(type=entry_type)) is None

    def test_missing_usage_is_discarded(self):
        """A null usage block is rejected."""
        assert parse_line(_line(message={"model": "claude-sonnet-4", "usage": None})) is None

    def test_synthetic_model_is_discarded(self):
        """Locally synthesized turns are not billable."""
        line = _line(message={"model": "<synthetic>", "usage": {"input_tokens": 1}})
        assert parse_line(line) is None

    def test_missing_model_is_discarded(self):
        """A usage block without a model is rejected."""
        assert parse_line(_line(message={"usage": {"input_tokens": 1}})) is None

    def test_bad_timestamp_is_discarded(self):
        """Unparseable and missing timestamps reject the record."""
        assert parse_line(_line(timestamp="yesterday")) is None
        assert parse_line(_line(timestamp=None)) is None

    def test_missing_token_fields_default_to_zero(self):
        """Absent counts do not reject the record."""
        record = parse_line(_line(message={"model": "claude-haiku-3", "usage": {}}))
        assert record is not None
        assert record.usage.total_tokens == 0

    def test_invalid_token_values_become_zero(self):
        """Negative, boolean and string counts are coerced to zero."""
        usage = {"input_tokens": -5, "output_tokens": True, "cache_read_input_tokens": "7"}
        record = parse_line(_line(message={"model": "claude-haiku-3", "usage": usage}))
        assert record.input_tokens == 0
        assert record.output_tokens == 0
        assert record.cache_read_tokens == 0

    def test_optional_ids(self):
        """Missing or empty ids become None."""
        entry = json.loads(_line())
        del entry["sessionId"]
        entry["requestId"] = ""
        record = parse_line(json.dumps(entry))
        assert record.session_id is None
        assert record.request_id is None


class TestParseTimestamp:
    """Test ISO-8601 timestamp formats."""

    def test_fractional_seconds(self):
        assert parse_timestamp("2025-06-01T10:15:30.5Z") == datetime(
            2025, 6, 1, 10, 15, 30, 500000, tzinfo=timezone.utc
        )

    def test_whole_seconds(self):
        assert parse_timestamp("2025-06-01T10:15:30Z") == datetime(
            2025, 6, 1, 10, 15, 30, tzinfo=timezone.utc
        )

    def test_numeric_offset(self):
        parsed = parse_timestamp("2025-06-01T12:15:30+02:00")
        assert parsed == datetime(2025, 6, 1, 10, 15, 30, tzinfo=timezone.utc)

    def test_naive_timestamp_rejected(self):
        """Without an offset the instant is ambiguous."""
        assert parse_timestamp("2025-06-01T10:15:30") is None

    def test_non_string_rejected(self):
        assert parse_timestamp(1717236930) is None

    def test_nanosecond_precision_truncated(self):
        """Fractions finer than microseconds still parse."""
        assert parse_timestamp("2025-06-01T10:15:30.123456789Z") == datetime(
            2025, 6, 1, 10, 15, 30, 123456, tzinfo=timezone.utc
        )

    def test_nanosecond_line_is_kept(self):
        record = parse_line(_line(timestamp="2025-06-01T10:15:30.123456789+00:00"))
        assert record is not None
        assert record.timestamp.microsecond == 123456
