"""SQLite store for completed query (turn) events.

One row per completed agent turn. Opened connections are short-lived
(``with self._connect() as conn:``), so the store is safe to call from an
executor thread while the event loop keeps running.
"""

import logging
import sqlite3
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agentmux.core.models import QueryCompleteData, QueryEvent

logger = logging.getLogger(__name__)

DEFAULT_STATS_DB_PATH = ".agentmux/stats.db"
_DAY_MS = 24 * 60 * 60 * 1000


class StatsStoreError(Exception):
    """Stats database is unavailable or a write failed."""

    pass


@dataclass
class AgentTotals:
    count: int = 0
    duration: int = 0


@dataclass
class StatsAggregation:
    """Summary of query events over a time window."""

    total_queries: int = 0
    total_duration: int = 0
    avg_duration: float = 0.0
    by_agent: dict[str, AgentTotals] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)


class StatsDatabase:
    """Query-event persistence.

    USAGE:
        db = StatsDatabase(".agentmux/stats.db")
        db.initialize()
        event_id = db.insert_query_event(data)
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS query_events (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        agent_type TEXT NOT NULL,
        source TEXT NOT NULL,
        start_time INTEGER NOT NULL,
        duration INTEGER NOT NULL,
        project_path TEXT,
        tab_id TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_query_start_time ON query_events(start_time);
    CREATE INDEX IF NOT EXISTS idx_query_agent_type ON query_events(agent_type);
    CREATE INDEX IF NOT EXISTS idx_query_source ON query_events(source);
    CREATE INDEX IF NOT EXISTS idx_query_session ON query_events(session_id);
    """

    def __init__(self, db_path: str | Path = DEFAULT_STATS_DB_PATH):
        self.db_path = Path(db_path)
        self._ready = False

    def initialize(self) -> None:
        """Create the schema. Safe to call more than once.

        Raises:
            StatsStoreError: If the database cannot be opened or created
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(self.SCHEMA)
        except (OSError, sqlite3.Error) as e:
            self._ready = False
            raise StatsStoreError(f"Failed to initialize stats database at {self.db_path}: {e}") from e
        self._ready = True
        logger.debug(f"Stats database ready at {self.db_path}")

    def is_ready(self) -> bool:
        return self._ready

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections.

        Uses a 30-second busy timeout so concurrent writers wait instead of
        failing with "database is locked".
        """
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 30000")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def insert_query_event(self, data: QueryCompleteData) -> str:
        """Persist one completed turn and return its generated id.

        Raises:
            StatsStoreError: If the store is not initialized or the write fails
        """
        if not self._ready:
            raise StatsStoreError("Stats database is not initialized")

        event_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO query_events (
                        id, session_id, agent_type, source,
                        start_time, duration, project_path, tab_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event_id,
                        data.session_id,
                        data.agent_type,
                        data.source,
                        data.start_time,
                        data.duration,
                        data.project_path,
                        data.tab_id,
                    ),
                )
        except sqlite3.Error as e:
            raise StatsStoreError(f"Failed to insert query event: {e}") from e
        return event_id

    def get_query_events(
        self,
        days: int | None = None,
        agent_type: str | None = None,
        source: str | None = None,
        session_id: str | None = None,
    ) -> list[QueryEvent]:
        """Query events with optional filters, newest first."""
        query = "SELECT * FROM query_events WHERE 1 = 1"
        params: list[Any] = []

        if days is not None:
            query += " AND start_time >= ?"
            params.append(_cutoff_ms(days))
        if agent_type:
            query += " AND agent_type = ?"
            params.append(agent_type)
        if source:
            query += " AND source = ?"
            params.append(source)
        if session_id:
            query += " AND session_id = ?"
            params.append(session_id)

        query += " ORDER BY start_time DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [QueryEvent(**dict(row)) for row in rows]

    def get_aggregation(self, days: int = 30) -> StatsAggregation:
        """Totals per agent and per source over the last ``days`` days."""
        cutoff = _cutoff_ms(days)
        aggregation = StatsAggregation()

        with self._connect() as conn:
            totals = conn.execute(
                """
                SELECT COUNT(*) AS total, COALESCE(SUM(duration), 0) AS duration
                FROM query_events WHERE start_time >= ?
                """,
                (cutoff,),
            ).fetchone()
            by_agent = conn.execute(
                """
                SELECT agent_type, COUNT(*) AS total, SUM(duration) AS duration
                FROM query_events WHERE start_time >= ?
                GROUP BY agent_type ORDER BY total DESC
                """,
                (cutoff,),
            ).fetchall()
            by_source = conn.execute(
                """
                SELECT source, COUNT(*) AS total
                FROM query_events WHERE start_time >= ?
                GROUP BY source
                """,
                (cutoff,),
            ).fetchall()

        aggregation.total_queries = totals["total"]
        aggregation.total_duration = totals["duration"]
        if aggregation.total_queries:
            aggregation.avg_duration = aggregation.total_duration / aggregation.total_queries
        aggregation.by_agent = {
            row["agent_type"]: AgentTotals(count=row["total"], duration=row["duration"] or 0)
            for row in by_agent
        }
        aggregation.by_source = {row["source"]: row["total"] for row in by_source}
        return aggregation


def _cutoff_ms(days: int) -> int:
    return int(time.time() * 1000) - days * _DAY_MS
