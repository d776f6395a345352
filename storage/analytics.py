"""Best-effort usage analytics for uploads, searches and context injection."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from core.errors import AnalyticsFailure
from core.models import UsageEvent

if TYPE_CHECKING:
    from neo4j import Driver

logger = logging.getLogger(__name__)

EVENT_LABEL = "RagUsageEvent"


class AnalyticsSink(ABC):
    @abstractmethod
    def record(self, event: UsageEvent) -> None:
        """Persist a usage event. May raise AnalyticsFailure."""


class LoggingAnalyticsSink(AnalyticsSink):
    """Writes events to the log only."""

    def record(self, event: UsageEvent) -> None:
        logger.info(
            "RAG usage: %s user=%s results=%s duration_ms=%s",
            event.event_type,
            event.user_id,
            event.results_count,
            event.search_duration_ms,
        )


class Neo4jAnalyticsSink(AnalyticsSink):
    """Stores events as ``(:RagUsageEvent)`` nodes."""

    def __init__(self, driver: Driver):
        self._driver = driver

    def record(self, event: UsageEvent) -> None:
        try:
            with self._driver.session() as session:
                session.run(
                    f"""
                    CREATE (e:{EVENT_LABEL} {{
                        user_id: $user_id,
                        company_id: $company_id,
                        session_id: $session_id,
                        event_type: $event_type,
                        document_id: $document_id,
                        query_text: $query_text,
                        results_count: $results_count,
                        avg_similarity: $avg_similarity,
                        search_duration_ms: $search_duration_ms,
                        tokens_used: $tokens_used,
                        estimated_cost: $estimated_cost,
                        metadata: $metadata_json,
                        created_at: $created_at
                    }})
                    """,
                    user_id=event.user_id,
                    company_id=event.company_id,
                    session_id=event.session_id,
                    event_type=event.event_type,
                    document_id=event.document_id,
                    query_text=event.query_text,
                    results_count=event.results_count,
                    avg_similarity=event.avg_similarity,
                    search_duration_ms=event.search_duration_ms,
                    tokens_used=event.tokens_used,
                    estimated_cost=event.estimated_cost,
                    metadata_json=json.dumps(event.metadata, default=str),
                    created_at=event.created_at.isoformat(),
                )
        except Exception as e:
            raise AnalyticsFailure(f"Failed to record {event.event_type} event") from e


def track_rag_usage(sink: AnalyticsSink | None, event: UsageEvent) -> bool:
    """Record ``event`` on ``sink``. Never raises; returns whether it was stored."""
    if sink is None:
        return False
    try:
        sink.record(event)
        return True
    except Exception as e:
        logger.error("Failed to track RAG usage (%s): %s", event.event_type, e)
        return False
