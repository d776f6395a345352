"""Context assembly: render ranked results and inject them into a prompt context."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from core.config import settings
from core.models import (
    InjectionMetrics,
    RAGInjectionResult,
    RAGIntegrationOptions,
    SearchMetrics,
    SearchOptions,
    SearchResult,
    UsageEvent,
)
from storage.analytics import track_rag_usage

if TYPE_CHECKING:
    from retrieval.retriever import Retriever
    from storage.analytics import AnalyticsSink

logger = logging.getLogger(__name__)

NO_CONTEXT_FOUND = "No relevant context found."
RESULT_SEPARATOR = "\n\n---\n\n"
USER_CONTEXT_HEADER = "## User-Supplied Context"
RETRIEVED_HEADER = "## Retrieved Documents"
USE_CONTEXT_INSTRUCTION = (
    "Use the information above from the user's documents to inform your analysis."
)


class RetrievedContext(BaseModel):
    """Rendered context plus the ranked results it was built from."""

    text: str
    results: list[SearchResult] = Field(default_factory=list)
    metrics: SearchMetrics | None = None

    @property
    def is_empty(self) -> bool:
        return not self.results


def format_similarity(similarity: float) -> str:
    """Percentage with one decimal, as rendered in context headers."""
    return f"{similarity * 100:.1f}"


def format_context(results: list[SearchResult]) -> str:
    """Render results as ``[rank] file (similarity: X%)`` blocks.

    The header format is parsed back by ``generation.quality``; keep them in
    sync.
    """
    if not results:
        return NO_CONTEXT_FOUND

    blocks = [
        f"[{rank}] {result.document.file_name} "
        f"(similarity: {format_similarity(result.similarity)}%)\n"
        f"{result.content.strip()}"
        for rank, result in enumerate(results, start=1)
    ]
    return RESULT_SEPARATOR.join(blocks)


def retrieve_context(
    query: str, options: SearchOptions, retriever: Retriever
) -> RetrievedContext:
    """Search (hybrid or semantic per ``options.hybrid_mode``) and render."""
    response = retriever.search(query, options)
    return RetrievedContext(
        text=format_context(response.results),
        results=response.results,
        metrics=response.metrics,
    )


def get_relevant_context(
    query: str, options: SearchOptions, retriever: Retriever
) -> str:
    """Rendered context for ``query``, or NO_CONTEXT_FOUND when nothing matched.

    Search failures propagate.
    """
    return retrieve_context(query, options, retriever).text


def combine_contexts(existing_context: str | None, rag_context: str) -> str:
    if not existing_context or not existing_context.strip():
        return (
            f"{RETRIEVED_HEADER}\n\n{rag_context.strip()}"
            f"{RESULT_SEPARATOR}{USE_CONTEXT_INSTRUCTION}"
        )

    return (
        f"{USER_CONTEXT_HEADER}\n\n{existing_context.strip()}\n\n\n"
        f"{RETRIEVED_HEADER}\n\n{rag_context.strip()}"
    )


def inject_rag_context(
    question: str,
    existing_context: str | None,
    options: RAGIntegrationOptions,
    retriever: Retriever,
    analytics: AnalyticsSink | None = None,
) -> RAGInjectionResult:
    """Enrich ``existing_context`` with documents relevant to ``question``.

    Retrieval is best effort: when disabled, when nothing is found, or when
    embedding/search fails, the caller's context is returned unchanged with
    ``rag_used=False``. This function does not raise for retrieval failures.
    """
    start = time.perf_counter()
    original = existing_context or ""

    if not options.enabled:
        logger.info("RAG disabled for session %s", options.session_id)
        return RAGInjectionResult(question=question, enriched_context=original)

    search_options = SearchOptions(
        user_id=options.user_id,
        company_id=options.company_id,
        session_id=options.session_id,
        limit=options.limit if options.limit is not None else settings.rag_limit,
        min_similarity=(
            options.min_similarity
            if options.min_similarity is not None
            else settings.rag_min_similarity
        ),
        hybrid_mode=(
            options.hybrid_search
            if options.hybrid_search is not None
            else settings.hybrid_mode
        ),
        provider=options.provider,
    )

    logger.info(
        "Searching relevant documents: user=%s company=%s session=%s hybrid=%s",
        options.user_id,
        options.company_id,
        options.session_id,
        search_options.hybrid_mode,
    )

    try:
        retrieved = retrieve_context(question, search_options, retriever)
    except Exception as e:
        logger.error(
            "RAG search failed, continuing without RAG (user=%s): %s",
            options.user_id,
            e,
        )
        return RAGInjectionResult(question=question, enriched_context=original)

    duration = int((time.perf_counter() - start) * 1000)
    provider = (
        retrieved.metrics.provider if retrieved.metrics and retrieved.metrics.provider
        else options.provider or "default"
    )

    if retrieved.is_empty:
        logger.info("No relevant documents found for %r (%dms)", question[:100], duration)
        return RAGInjectionResult(
            question=question,
            enriched_context=original,
            search_metrics=InjectionMetrics(
                duration=duration, results_count=0, provider=provider
            ),
        )

    sources_count = len(retrieved.results)
    enriched = combine_contexts(existing_context, retrieved.text)

    logger.info(
        "RAG context injected: %d sources, %d characters, %dms",
        sources_count,
        len(enriched),
        duration,
    )

    track_rag_usage(
        analytics,
        UsageEvent(
            user_id=options.user_id,
            company_id=options.company_id,
            session_id=options.session_id,
            event_type="debate_injection",
            query_text=question,
            results_count=sources_count,
            avg_similarity=sum(r.similarity for r in retrieved.results) / sources_count,
            search_duration_ms=duration,
            estimated_cost=retrieved.metrics.cost if retrieved.metrics else 0.0,
            metadata={"hybrid_mode": search_options.hybrid_mode},
        ),
    )

    return RAGInjectionResult(
        question=question,
        enriched_context=enriched,
        rag_context=retrieved.text,
        rag_used=True,
        sources_count=sources_count,
        search_metrics=InjectionMetrics(
            duration=duration, results_count=sources_count, provider=provider
        ),
    )
