"""
Legacy external-binary source.

Runs ``ccusage daily --json`` and decodes its pre-aggregated daily records.
Any failure fails this source for the current refresh only.
"""

import asyncio
import json
import logging
import os
import shutil
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from token_meter.storage.models import DailyUsage, ModelBreakdown

logger = logging.getLogger(__name__)

BINARY_NAME = "ccusage"
INSTALL_HINT = "ccusage not found. Install with: npm install -g ccusage"


class LegacySourceError(Exception):
    """Raised when the external binary is missing, fails, or emits bad output."""


class LegacyUsageSource:
    """Wrapper around the external ccusage binary."""

    def __init__(self, binary: Optional[str] = None, timeout: float = 60.0):
        """Initialize the source.

        Args:
            binary: Explicit path to the binary; discovered when None
            timeout: Seconds to wait for the process
        """
        self.binary = binary
        self.timeout = timeout
        self._resolved: Optional[str] = None

    def find_binary(self) -> str:
        """Locate the binary, caching the first hit.

        Raises:
            LegacySourceError: If no executable is found
        """
        if self._resolved is not None:
            return self._resolved

        candidates = [self.binary] if self.binary else _search_paths()
        for path in candidates:
            if path and os.path.isfile(path) and os.access(path, os.X_OK):
                self._resolved = path
                return path

        if not self.binary:
            found = shutil.which(BINARY_NAME)
            if found:
                self._resolved = found
                return found

        raise LegacySourceError(INSTALL_HINT)

    async def fetch_daily(self, since: date, until: date) -> List[DailyUsage]:
        """Run the binary for a date range and decode its output.

        Args:
            since: First day, inclusive
            until: Last day, inclusive

        Returns:
            DailyUsage records sorted ascending by date

        Raises:
            LegacySourceError: On missing binary, non-zero exit or bad output
        """
        binary = self.find_binary()
        args = [
            "daily", "--json",
            "--since", since.strftime("%Y%m%d"),
            "--until", until.strftime("%Y%m%d"),
        ]
        logger.debug("Running %s %s", binary, " ".join(args))

        try:
            process = await asyncio.create_subprocess_exec(
                binary, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LegacySourceError(f"ccusage failed to start: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise LegacySourceError(f"ccusage timed out after {self.timeout:g}s")

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip() or "Unknown error"
            raise LegacySourceError(f"ccusage failed: {message}")

        try:
            return parse_daily_output(stdout.decode("utf-8"))
        except (ValueError, KeyError, TypeError) as e:
            raise LegacySourceError(f"Failed to parse ccusage output: {e}")


def parse_daily_output(text: str) -> List[DailyUsage]:
    """Decode the binary's JSON output.

    Accepts either a bare array of daily records or an object with a
    ``daily`` array, with camelCase or snake_case keys.

    Raises:
        ValueError: If the output is not valid JSON of the expected shape
        KeyError: If a record has no date
    """
    payload = json.loads(text)
    if isinstance(payload, dict):
        if "daily" not in payload:
            raise ValueError("missing 'daily' key in response")
        payload = payload["daily"]
    if not isinstance(payload, list):
        raise ValueError("expected a list of daily records")

    days = [_decode_day(item) for item in payload]
    return sorted(days, key=lambda d: d.date)


def _decode_day(item: Dict[str, Any]) -> DailyUsage:
    if not isinstance(item, dict):
        raise ValueError("daily record must be an object")
    if not isinstance(item["date"], str):
        raise ValueError("'date' must be a YYYY-MM-DD string")
    raw_breakdowns = _get_list(item, "model_breakdowns")
    breakdowns = [_decode_breakdown(b) for b in raw_breakdowns]
    models_used = _get_list(item, "models_used")
    if not all(isinstance(m, str) for m in models_used):
        raise ValueError("'modelsUsed' must be a list of model names")
    input_tokens = int(_get(item, "input_tokens", 0))
    output_tokens = int(_get(item, "output_tokens", 0))
    cache_creation = int(_get(item, "cache_creation_tokens", 0))
    cache_read = int(_get(item, "cache_read_tokens", 0))
    return DailyUsage(
        date=item["date"],
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_creation_tokens=cache_creation,
        cache_read_tokens=cache_read,
        total_tokens=int(_get(
            item, "total_tokens", input_tokens + output_tokens + cache_creation + cache_read
        )),
        total_cost=float(_get(item, "total_cost", sum(b.cost for b in breakdowns))),
        models_used=sorted(models_used),
        model_breakdowns=sorted(breakdowns, key=lambda b: b.cost, reverse=True),
    )


def _decode_breakdown(item: Dict[str, Any]) -> ModelBreakdown:
    if not isinstance(item, dict):
        raise ValueError("model breakdown must be an object")
    model_name = _get(item, "model_name", "")
    if not isinstance(model_name, str):
        raise ValueError("'modelName' must be a string")
    return ModelBreakdown(
        model_name=model_name,
        input_tokens=int(_get(item, "input_tokens", 0)),
        output_tokens=int(_get(item, "output_tokens", 0)),
        cache_creation_tokens=int(_get(item, "cache_creation_tokens", 0)),
        cache_read_tokens=int(_get(item, "cache_read_tokens", 0)),
        cost=float(_get(item, "cost", 0.0)),
    )


def _get_list(item: Dict[str, Any], snake_key: str) -> List[Any]:
    value = _get(item, snake_key, [])
    if not isinstance(value, list):
        raise ValueError(f"'{snake_key}' must be a list")
    return value


def _get(item: Dict[str, Any], snake_key: str, default: Any) -> Any:
    """Look a field up by snake_case name, then by its camelCase form."""
    if snake_key in item:
        return item[snake_key]
    head, *rest = snake_key.split("_")
    camel_key = head + "".join(part.capitalize() for part in rest)
    return item.get(camel_key, default)


def _search_paths() -> List[str]:
    home = Path.home()
    paths: List[str] = []
    nvm_dir = home / ".nvm" / "versions" / "node"
    if nvm_dir.is_dir():
        # Newest installed node version first
        for version in sorted(os.listdir(nvm_dir), reverse=True):
            paths.append(str(nvm_dir / version / "bin" / BINARY_NAME))
    paths.append(f"/usr/local/bin/{BINARY_NAME}")
    paths.append(f"/opt/homebrew/bin/{BINARY_NAME}")
    paths.append(str(home / ".npm-global" / "bin" / BINARY_NAME))
    return paths
