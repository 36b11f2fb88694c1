"""
Unit tests for the legacy ccusage source.

Fake binaries are small shell scripts written into a temp directory.
"""

import json
import os
import stat
import sys
from datetime import date

import pytest

from token_meter.sources.legacy import (
    INSTALL_HINT,
    LegacySourceError,
    LegacyUsageSource,
    parse_daily_output,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script binary")

CAMEL_OUTPUT = {
    "daily": [
        {
            "date": "2025-06-10",
            "inputTokens": 100,
            "outputTokens": 50,
            "cacheCreationTokens": 10,
            "cacheReadTokens": 5,
            "totalTokens": 165,
            "totalCost": 0.5,
            "modelsUsed": ["claude-sonnet-4", "claude-haiku-3"],
            "modelBreakdowns": [
                {"modelName": "claude-haiku-3", "inputTokens": 10, "outputTokens": 5, "cost": 0.1},
                {"modelName": "claude-sonnet-4", "inputTokens": 90, "outputTokens": 45, "cost": 0.4},
            ],
        },
        {"date": "2025-06-09", "inputTokens": 1, "outputTokens": 1, "totalCost": 0.01},
    ],
}


def write_fake_binary(directory, script: str) -> str:
    """Write an executable shell script and return its path."""
    path = os.path.join(str(directory), "ccusage")
    with open(path, "w", encoding="utf-8") as f:
        f.write("#!/bin/sh\n" + script)
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class TestParseDailyOutput:
    """Test decoding of both output shapes."""

    def test_object_with_camel_case_keys(self):
        days = parse_daily_output(json.dumps(CAMEL_OUTPUT))
        assert [d.date for d in days] == ["2025-06-09", "2025-06-10"]
        day = days[1]
        assert day.input_tokens == 100
        assert day.cache_creation_tokens == 10
        assert day.total_tokens == 165
        assert day.total_cost == 0.5
        assert day.models_used == ["claude-haiku-3", "claude-sonnet-4"]
        assert [b.model_name for b in day.model_breakdowns] == ["claude-sonnet-4", "claude-haiku-3"]

    def test_bare_array_with_snake_case_keys(self):
        text = json.dumps([{
            "date": "2025-06-10",
            "input_tokens": 7,
            "output_tokens": 3,
            "model_breakdowns": [{"model_name": "claude-opus-4", "cost": 1.25}],
        }])
        day = parse_daily_output(text)[0]
        assert day.total_tokens == 10
        assert day.total_cost == 1.25
        assert day.model_breakdowns[0].model_name == "claude-opus-4"

    def test_empty_array(self):
        assert parse_daily_output("[]") == []

    def test_object_without_daily_key(self):
        with pytest.raises(ValueError, match="missing 'daily'"):
            parse_daily_output('{"totals": {}}')

    def test_not_json(self):
        with pytest.raises(ValueError):
            parse_daily_output("ccusage v15")


class TestFindBinary:
    """Test binary discovery."""

    def test_explicit_missing_binary(self, tmp_path):
        source = LegacyUsageSource(binary=str(tmp_path / "nope"))
        with pytest.raises(LegacySourceError, match="npm install -g ccusage"):
            source.find_binary()

    @posix_only
    def test_explicit_binary_found(self, tmp_path):
        path = write_fake_binary(tmp_path, "exit 0\n")
        assert LegacyUsageSource(binary=path).find_binary() == path

    def test_install_hint_names_package(self):
        assert "ccusage" in INSTALL_HINT


@posix_only
class TestFetchDaily:
    """Test running a fake binary."""

    @pytest.mark.asyncio
    async def test_success_passes_date_range(self, tmp_path):
        args_file = tmp_path / "args.txt"
        output = json.dumps(CAMEL_OUTPUT).replace("'", "")
        path = write_fake_binary(
            tmp_path,
            f'echo "$@" > "{args_file}"\n'
            f"echo '{output}'\n",
        )

        days = await LegacyUsageSource(binary=path).fetch_daily(
            date(2025, 5, 11), date(2025, 6, 10)
        )

        assert [d.date for d in days] == ["2025-06-09", "2025-06-10"]
        assert args_file.read_text().split() == [
            "daily", "--json", "--since", "20250511", "--until", "20250610",
        ]

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path):
        path = write_fake_binary(tmp_path, "echo 'boom' >&2\nexit 2\n")
        with pytest.raises(LegacySourceError, match="ccusage failed: boom"):
            await LegacyUsageSource(binary=path).fetch_daily(date(2025, 6, 1), date(2025, 6, 10))

    @pytest.mark.asyncio
    async def test_malformed_output(self, tmp_path):
        path = write_fake_binary(tmp_path, "echo 'not json'\n")
        with pytest.raises(LegacySourceError, match="Failed to parse ccusage output"):
            await LegacyUsageSource(binary=path).fetch_daily(date(2025, 6, 1), date(2025, 6, 10))

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        path = write_fake_binary(tmp_path, "exec sleep 5\n")
        with pytest.raises(LegacySourceError, match="timed out"):
            await LegacyUsageSource(binary=path, timeout=0.2).fetch_daily(
                date(2025, 6, 1), date(2025, 6, 10)
            )


class TestMalformedOutput:
    """Test that structurally wrong records are rejected as ValueError."""

    def test_breakdown_not_an_object(self):
        text = json.dumps([{"date": "2025-06-10", "modelBreakdowns": ["claude-sonnet-4"]}])
        with pytest.raises(ValueError, match="model breakdown must be an object"):
            parse_daily_output(text)

    def test_breakdowns_not_a_list(self):
        text = json.dumps([{"date": "2025-06-10", "modelBreakdowns": {"x": 1}}])
        with pytest.raises(ValueError, match="must be a list"):
            parse_daily_output(text)

    def test_models_used_string_rejected(self):
        """A string is not split into single-character model names."""
        text = json.dumps([{"date": "2025-06-10", "modelsUsed": "claude-sonnet-4"}])
        with pytest.raises(ValueError, match="must be a list"):
            parse_daily_output(text)

    def test_non_string_date_rejected(self):
        with pytest.raises(ValueError, match="'date'"):
            parse_daily_output(json.dumps([{"date": 20250610}]))

    @posix_only
    @pytest.mark.asyncio
    async def test_malformed_breakdown_fails_source(self, tmp_path):
        output = json.dumps([{"date": "2025-06-10", "modelBreakdowns": ["claude-sonnet-4"]}])
        path = write_fake_binary(tmp_path, f"echo '{output}'\n")
        with pytest.raises(LegacySourceError, match="Failed to parse ccusage output"):
            await LegacyUsageSource(binary=path).fetch_daily(date(2025, 6, 1), date(2025, 6, 10))
