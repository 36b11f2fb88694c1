"""
Request-level deduplication.

The CLI writes one log line per content block of a single API call; every
block repeats the call's usage totals and request id. Counting them all
would multiply usage and cost by the number of blocks.
"""

from typing import Dict, Iterable, List, Set, Tuple

from token_meter.storage.models import UsageRecord


def deduplicate_records(records: Iterable[UsageRecord]) -> List[UsageRecord]:
    """Keep one record per request id.

    The first record seen for a request id wins. Records without a request
    id are always kept; they cannot be correlated with anything.

    Args:
        records: Records in scan order, possibly spanning many files

    Returns:
        Records with no repeated non-empty request id, in input order
    """
    seen: Set[str] = set()
    result: List[UsageRecord] = []
    for record in records:
        rid = record.request_id
        if not rid:
            result.append(record)
            continue
        if rid not in seen:
            seen.add(rid)
            result.append(record)
    return result


def find_conflicting_duplicates(records: Iterable[UsageRecord]) -> List[str]:
    """Request ids whose copies disagree on model or token usage.

    "First wins" only yields the same totals regardless of scan order when
    all copies are identical; any id returned here makes the result depend
    on file order.
    """
    signatures: Dict[str, Tuple] = {}
    conflicts: List[str] = []
    for record in records:
        rid = record.request_id
        if not rid:
            continue
        signature = (record.model, record.usage)
        first = signatures.setdefault(rid, signature)
        if first != signature and rid not in conflicts:
            conflicts.append(rid)
    return conflicts
