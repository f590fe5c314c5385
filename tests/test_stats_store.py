"""Tests for the query-event stats store."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from agentmux.core.models import QueryCompleteData
from agentmux.metrics.stats_store import StatsDatabase, StatsStoreError

DAY_MS = 24 * 60 * 60 * 1000


def query(session_id: str = "s1", agent_type: str = "codex", source: str = "user", age_days: float = 0, duration: int = 1000) -> QueryCompleteData:
    return QueryCompleteData(
        session_id=session_id,
        agent_type=agent_type,
        source=source,
        start_time=int(time.time() * 1000 - age_days * DAY_MS),
        duration=duration,
        project_path="/repo",
        tab_id="tab-1",
    )


class TestInitialization:
    def test_not_ready_until_initialized(self, tmp_path: Path):
        db = StatsDatabase(tmp_path / "stats.db")
        assert db.is_ready() is False
        with pytest.raises(StatsStoreError, match="not initialized"):
            db.insert_query_event(query())

    def test_creates_parent_directories(self, tmp_path: Path):
        db = StatsDatabase(tmp_path / "nested" / "dir" / "stats.db")
        db.initialize()
        assert db.is_ready()
        assert db.db_path.exists()

    def test_initialize_twice(self, stats_db: StatsDatabase):
        stats_db.initialize()
        assert stats_db.is_ready()

    def test_unwritable_location(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        db = StatsDatabase(blocker / "stats.db")
        with pytest.raises(StatsStoreError):
            db.initialize()
        assert db.is_ready() is False


class TestQueryEvents:
    def test_insert_and_read_back(self, stats_db: StatsDatabase):
        data = query()
        event_id = stats_db.insert_query_event(data)

        events = stats_db.get_query_events()
        assert len(events) == 1
        assert events[0].id == event_id
        assert events[0].session_id == "s1"
        assert events[0].project_path == "/repo"
        assert events[0].start_time == data.start_time

    def test_newest_first(self, stats_db: StatsDatabase):
        stats_db.insert_query_event(query(session_id="old", age_days=2))
        stats_db.insert_query_event(query(session_id="new"))
        assert [e.session_id for e in stats_db.get_query_events()] == ["new", "old"]

    def test_filters(self, stats_db: StatsDatabase):
        stats_db.insert_query_event(query(session_id="a", agent_type="codex", source="user"))
        stats_db.insert_query_event(query(session_id="b", agent_type="claude-code", source="auto"))
        stats_db.insert_query_event(query(session_id="c", agent_type="codex", age_days=40))

        assert {e.session_id for e in stats_db.get_query_events(agent_type="codex")} == {"a", "c"}
        assert [e.session_id for e in stats_db.get_query_events(source="auto")] == ["b"]
        assert [e.session_id for e in stats_db.get_query_events(session_id="b")] == ["b"]
        assert {e.session_id for e in stats_db.get_query_events(days=30)} == {"a", "b"}


class TestAggregation:
    def test_empty(self, stats_db: StatsDatabase):
        aggregation = stats_db.get_aggregation()
        assert aggregation.total_queries == 0
        assert aggregation.avg_duration == 0.0
        assert aggregation.by_agent == {}

    def test_totals(self, stats_db: StatsDatabase):
        stats_db.insert_query_event(query(agent_type="codex", duration=1000))
        stats_db.insert_query_event(query(agent_type="codex", duration=3000, source="auto"))
        stats_db.insert_query_event(query(agent_type="opencode", duration=2000))
        stats_db.insert_query_event(query(agent_type="opencode", duration=9000, age_days=60))

        aggregation = stats_db.get_aggregation(days=30)
        assert aggregation.total_queries == 3
        assert aggregation.total_duration == 6000
        assert aggregation.avg_duration == pytest.approx(2000)
        assert aggregation.by_agent["codex"].count == 2
        assert aggregation.by_agent["codex"].duration == 4000
        assert aggregation.by_agent["opencode"].count == 1
        assert aggregation.by_source == {"user": 2, "auto": 1}
