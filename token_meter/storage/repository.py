"""
Repository pattern for data access.

Persists the last successfully computed UsageSummary so a consumer always
has a last-known-good snapshot, even when a refresh fails.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageSummary

logger = logging.getLogger(__name__)

CACHE_KEY = "cached_summary"


class SummaryCache:
    """Key/value store for the serialized summary.

    The summary is stored as one JSON document under a single well-known
    key and replaced wholesale on every save.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, key: str = CACHE_KEY):
        """Initialize the cache with a database path.

        Args:
            db_path: Path to SQLite database file
            key: Name the summary is stored under
        """
        self.db_path = db_path
        self.key = key
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        # Deferred so an unusable path only fails the call that touches it
        if not self._schema_ready:
            initialize_schema(self.db_path)
            self._schema_ready = True

    def save(self, summary: UsageSummary) -> None:
        """Overwrite the cached summary in a single transaction."""
        self._ensure_schema()
        payload = json.dumps(summary.to_dict())
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO summary_cache (key, payload, updated_at)
                VALUES (?, ?, ?)
                """,
                (self.key, payload, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def load(self) -> Optional[UsageSummary]:
        """Return the cached summary, or None when absent or unreadable.

        A payload that no longer decodes (e.g. written by an older version)
        is treated as a cache miss.
        """
        self._ensure_schema()
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT payload FROM summary_cache WHERE key = ?", (self.key,)
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        try:
            return UsageSummary.from_dict(json.loads(row[0]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable cached summary: %s", e)
            return None

    def clear(self) -> None:
        self._ensure_schema()
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM summary_cache WHERE key = ?", (self.key,))
            conn.commit()
        finally:
            conn.close()


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the summary_cache table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS summary_cache (
                key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()
