"""
Session log line decoding.

Turns one JSON Lines entry into a UsageRecord, or discards it.
"""

import json
import re
from datetime import datetime
from typing import Any, Dict, Optional

from token_meter.storage.models import UsageRecord

ASSISTANT_TYPE = "assistant"

# Model name the CLI writes for turns it fabricates locally
SYNTHETIC_MODEL = "<synthetic>"

_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)

# strptime %f takes at most microseconds
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_line(line: str) -> Optional[UsageRecord]:
    """Decode one raw log line.

    The envelope is decoded first and branched on its ``type`` tag; only
    assistant turns carry billable usage. Unknown tags, user turns and meta
    events are not errors, just not applicable.

    Args:
        line: One raw line of a session log

    Returns:
        UsageRecord, or None when the line is not an applicable usage entry
    """
    line = line.strip()
    if not line:
        return None
    try:
        entry = json.loads(line)
    except ValueError:
        return None
    if not isinstance(entry, dict) or entry.get("type") != ASSISTANT_TYPE:
        return None
    return _parse_assistant_entry(entry)


def _parse_assistant_entry(entry: Dict[str, Any]) -> Optional[UsageRecord]:
    message = entry.get("message")
    if not isinstance(message, dict):
        return None

    usage = message.get("usage")
    model = message.get("model")
    if not isinstance(usage, dict) or not isinstance(model, str):
        return None
    if model == SYNTHETIC_MODEL:
        return None

    timestamp = parse_timestamp(entry.get("timestamp"))
    if timestamp is None:
        return None

    return UsageRecord(
        timestamp=timestamp,
        model=model,
        input_tokens=_token_count(usage.get("input_tokens")),
        output_tokens=_token_count(usage.get("output_tokens")),
        cache_creation_tokens=_token_count(usage.get("cache_creation_input_tokens")),
        cache_read_tokens=_token_count(usage.get("cache_read_input_tokens")),
        session_id=_optional_str(entry.get("sessionId")),
        request_id=_optional_str(entry.get("requestId")),
    )


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 instant with or without fractional seconds.

    Both ``Z`` and numeric UTC offsets are accepted. Digits beyond
    microsecond precision are truncated. Timestamps without an offset are
    rejected since they cannot be placed on the timeline.
    """
    if not isinstance(value, str):
        return None
    value = _EXCESS_FRACTION.sub(r"\1", value, count=1)
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _token_count(value: Any) -> int:
    # bool is an int subclass; a flag is never a token count
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None
