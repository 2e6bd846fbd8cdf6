"""
Usage Event Store - Persist app launch events in SQLite.

Acts as the usage-event source for the UsageRanker. Each launch is kept
as an individual timestamped row so the ranker can decay every event by
its own age. History older than the lookback window is pruned rather
than kept indefinitely.
"""

import sqlite3
import threading
import time
from pathlib import Path
from typing import Optional

from loguru import logger

from ..models import ACTIVITY_RESUMED, UsageEvent
from ..sources import SourceUnavailableError, UsageEventSource


def default_db_path() -> Path:
    """XDG data location for the usage database."""
    return Path.home() / ".local" / "share" / "appintel" / "usage.db"


class UsageEventStore(UsageEventSource):
    """
    SQLite-backed usage event history.

    Methods:
        record_launch(package_id): Record an app launch
        query_events(start, end): Events inside a time window
        prune(older_than): Drop events older than a timestamp
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else default_db_path()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Persistent connection with WAL mode; refreshes query from a worker thread
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_database()
        logger.debug(f"UsageEventStore initialized with db at {self.db_path}")

    def _init_database(self):
        """Create database schema if it doesn't exist."""
        cursor = self._conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS usage_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                package_id TEXT,
                timestamp REAL NOT NULL,
                event_type TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_usage_timestamp
            ON usage_events(timestamp)
        """)

        self._conn.commit()

    def record_launch(
        self,
        package_id: str,
        timestamp: Optional[float] = None,
        event_type: str = ACTIVITY_RESUMED,
    ) -> None:
        """
        Record an application launch.

        Args:
            package_id: Package identifier (e.g., "org.mozilla.firefox")
            timestamp: POSIX seconds, defaults to now
            event_type: Event kind, "activity_resumed" for launches
        """
        now = time.time() if timestamp is None else timestamp

        try:
            with self._lock:
                self._conn.execute(
                    "INSERT INTO usage_events (package_id, timestamp, event_type) VALUES (?, ?, ?)",
                    (package_id, now, event_type),
                )
                self._conn.commit()

            logger.debug(f"Recorded launch for {package_id}")
        except sqlite3.Error:
            logger.exception(f"Failed to record launch for {package_id}")

    def query_events(self, start: float, end: float) -> list[UsageEvent]:
        """
        Get events inside [start, end], oldest first.

        Raises:
            SourceUnavailableError: If the database cannot be read
        """
        try:
            with self._lock:
                rows = self._conn.execute("""
                    SELECT package_id, timestamp, event_type
                    FROM usage_events
                    WHERE timestamp >= ? AND timestamp <= ?
                    ORDER BY timestamp ASC, id ASC
                """, (start, end)).fetchall()
        except sqlite3.Error as e:
            raise SourceUnavailableError(f"Cannot read usage history at {self.db_path}: {e}") from e

        return [UsageEvent(package_id, timestamp, event_type) for package_id, timestamp, event_type in rows]

    def prune(self, older_than: float) -> int:
        """
        Delete events older than a timestamp.

        Returns:
            Number of deleted events (0 on database error)
        """
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "DELETE FROM usage_events WHERE timestamp < ?", (older_than,)
                )
                self._conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to prune usage history")
            return 0

        if cursor.rowcount:
            logger.debug(f"Pruned {cursor.rowcount} usage events")
        return cursor.rowcount

    def count(self) -> int:
        """Total number of stored events."""
        with self._lock:
            result = self._conn.execute("SELECT COUNT(*) FROM usage_events").fetchone()
        return result[0] if result else 0

    def clear(self, package_id: Optional[str] = None) -> None:
        """
        Clear usage history.

        Args:
            package_id: If provided, clear only this package's events.
                       If None, clear all events.
        """
        try:
            with self._lock:
                if package_id:
                    self._conn.execute("DELETE FROM usage_events WHERE package_id = ?", (package_id,))
                else:
                    self._conn.execute("DELETE FROM usage_events")
                self._conn.commit()
        except sqlite3.Error:
            logger.exception(f"Failed to clear usage history for {package_id or 'all apps'}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# Singleton accessor
_usage_store_instance = None


def get_usage_store() -> UsageEventStore:
    """
    Get the singleton UsageEventStore instance.

    Returns:
        UsageEventStore: The global instance
    """
    global _usage_store_instance
    if _usage_store_instance is None:
        _usage_store_instance = UsageEventStore()
    return _usage_store_instance
