"""Unit tests for usage analytics sinks."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from core.errors import AnalyticsFailure
from core.models import UsageEvent
from storage.analytics import (
    EVENT_LABEL,
    LoggingAnalyticsSink,
    Neo4jAnalyticsSink,
    track_rag_usage,
)


@pytest.fixture
def mock_driver():
    driver = MagicMock()
    session = MagicMock()
    driver.session.return_value.__enter__ = MagicMock(return_value=session)
    driver.session.return_value.__exit__ = MagicMock(return_value=False)
    return driver, session


@pytest.fixture
def event():
    return UsageEvent(
        user_id="u1",
        company_id="acme",
        event_type="search",
        query_text="revenue",
        results_count=2,
        avg_similarity=0.8,
        search_duration_ms=15,
        metadata={"hybrid_mode": True},
    )


class TestNeo4jAnalyticsSink:
    def test_record_creates_event_node(self, mock_driver, event):
        driver, session = mock_driver

        Neo4jAnalyticsSink(driver).record(event)

        query = session.run.call_args[0][0]
        call_kwargs = session.run.call_args[1]
        assert f"CREATE (e:{EVENT_LABEL}" in query
        assert call_kwargs["user_id"] == "u1"
        assert call_kwargs["event_type"] == "search"
        assert call_kwargs["results_count"] == 2
        assert call_kwargs["metadata_json"] == '{"hybrid_mode": true}'
        assert call_kwargs["created_at"] == event.created_at.isoformat()

    def test_driver_error_wrapped(self, mock_driver, event):
        driver, session = mock_driver
        session.run.side_effect = RuntimeError("connection refused")

        with pytest.raises(AnalyticsFailure):
            Neo4jAnalyticsSink(driver).record(event)


class TestTrackRagUsage:
    def test_records_event(self, event):
        sink = MagicMock()
        assert track_rag_usage(sink, event) is True
        sink.record.assert_called_once_with(event)

    def test_no_sink(self, event):
        assert track_rag_usage(None, event) is False

    def test_never_raises(self, mock_driver, event):
        driver, session = mock_driver
        session.run.side_effect = RuntimeError("connection refused")

        assert track_rag_usage(Neo4jAnalyticsSink(driver), event) is False

    def test_logging_sink(self, event, caplog):
        with caplog.at_level("INFO", logger="storage.analytics"):
            assert track_rag_usage(LoggingAnalyticsSink(), event) is True
        assert "RAG usage: search" in caplog.text


class TestUsageEvent:
    def test_rejects_unknown_event_type(self):
        with pytest.raises(ValueError):
            UsageEvent(user_id="u1", event_type="download")
