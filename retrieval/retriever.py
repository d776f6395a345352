"""Semantic, keyword and hybrid (RRF) search over a chunk store."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from pydantic import ValidationError

from core.cache import TTLCache
from core.config import settings
from core.errors import EmbeddingFailure, StoreQueryFailure
from core.models import (
    DocumentInfo,
    EmbeddingResult,
    SearchMetrics,
    SearchOptions,
    SearchResponse,
    SearchResult,
    StoreRow,
    UsageEvent,
    UsageEventType,
)
from retrieval.fusion import reciprocal_rank_fusion
from retrieval.reranker import Reranker, get_reranker
from storage.analytics import track_rag_usage

if TYPE_CHECKING:
    from ingestion.embedder import EmbeddingClient
    from storage.analytics import AnalyticsSink
    from storage.base import ChunkStore

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _limit(options: SearchOptions) -> int:
    return options.limit if options.limit is not None else settings.search_limit


def _to_result(row: StoreRow) -> SearchResult:
    return SearchResult(
        chunk_id=row.chunk_id,
        document_id=row.document_id,
        content=row.content,
        similarity=row.score,
        metadata=dict(row.chunk_metadata),
        document=DocumentInfo(
            file_name=row.file_name,
            file_type=row.file_type,
            uploaded_at=row.uploaded_at,
            tags=list(row.tags),
        ),
    )


class Retriever:
    """Runs scoped searches for one store and one embedding client.

    Holds no per-request state, so a single instance can serve concurrent
    queries.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: EmbeddingClient | None = None,
        reranker: Reranker | None = None,
        embedding_cache: TTLCache | None = None,
    ):
        """Initialize retriever.

        Args:
            store: Chunk store to query
            embedder: Embedding client (default: OpenAIEmbedder from settings)
            reranker: Re-ranking strategy used when ``options.rerank`` is set
            embedding_cache: Optional cache of query embeddings, keyed by
                (text, provider, model)
        """
        self.store = store

        if embedder is None:
            from ingestion.embedder import OpenAIEmbedder

            self.embedder = OpenAIEmbedder()
        else:
            self.embedder = embedder

        self.reranker = reranker or get_reranker()

        if embedding_cache is None and settings.embedding_cache_ttl_seconds > 0:
            embedding_cache = TTLCache(settings.embedding_cache_ttl_seconds)
        self.embedding_cache = embedding_cache

    def embed_query(self, query: str, options: SearchOptions) -> EmbeddingResult:
        """Embed the query, raising EmbeddingFailure on any provider error."""
        key = (query, options.provider, options.model)
        if self.embedding_cache is not None:
            cached = self.embedding_cache.get(key)
            if cached is not None:
                logger.debug("Query embedding cache hit")
                return cached

        try:
            embedding = self.embedder.embed(
                query, options.user_id, provider=options.provider, model=options.model
            )
        except Exception as e:
            logger.error("Query embedding failed for %r: %s", query[:100], e)
            raise EmbeddingFailure("Semantic search failed: embedding error") from e

        if self.embedding_cache is not None:
            self.embedding_cache.set(key, embedding)
        return embedding

    def semantic_search(self, query: str, options: SearchOptions) -> SearchResponse:
        """Vector similarity search.

        Pipeline steps:
        1. Embed the query
        2. Query the store scoped to the user/company/session/documents and
           to the embedding's dimensions
        3. Apply the similarity floor and limit
        4. Re-rank if requested

        Raises:
            EmbeddingFailure: The query could not be embedded
            StoreQueryFailure: The store query failed
        """
        start = time.perf_counter()
        limit = _limit(options)
        min_similarity = (
            options.min_similarity
            if options.min_similarity is not None
            else settings.min_similarity
        )

        embedding_start = time.perf_counter()
        embedding = self.embed_query(query, options)
        embedding_time = _elapsed_ms(embedding_start)
        logger.info(
            "Query embedding generated: provider=%s dimensions=%d time=%dms",
            embedding.provider.name,
            embedding.dimensions,
            embedding_time,
        )

        scope = options.scope(dimensions=embedding.dimensions)
        search_start = time.perf_counter()
        try:
            rows = self.store.similarity_search(
                embedding.vector, scope, limit, min_similarity
            )
        except Exception as e:
            logger.error("Semantic search failed for %r: %s", query[:100], e)
            raise StoreQueryFailure("Semantic search failed") from e
        search_time = _elapsed_ms(search_start)

        results = [_to_result(row) for row in rows if row.score >= min_similarity]
        results = results[:limit]

        if options.rerank and results:
            results = self.reranker.rerank(query, results)

        metrics = SearchMetrics(
            duration=_elapsed_ms(start),
            embedding_time=embedding_time,
            search_time=search_time,
            results_count=len(results),
            provider=embedding.provider.name,
            dimensions=embedding.dimensions,
            cost=embedding.cost,
        )
        logger.info(
            "Semantic search completed: %d results in %dms",
            metrics.results_count,
            metrics.duration,
        )
        return SearchResponse(results=results, metrics=metrics)

    def keyword_search(self, query: str, options: SearchOptions) -> list[SearchResult]:
        """Lexical search; ``similarity`` holds the store's lexical score."""
        limit = _limit(options)
        try:
            rows = self.store.keyword_search(query, options.scope(), limit)
        except Exception as e:
            logger.error("Keyword search failed for %r: %s", query[:100], e)
            raise StoreQueryFailure("Keyword search failed") from e
        return [_to_result(row) for row in rows]

    def hybrid_search(self, query: str, options: SearchOptions) -> SearchResponse:
        """Semantic and keyword search run concurrently, merged with RRF.

        Each result's ``similarity`` is its fusion score, an ordering signal
        rather than a probability.
        """
        start = time.perf_counter()
        limit = _limit(options)
        semantic_options = options.model_copy(update={"hybrid_mode": False})

        with ThreadPoolExecutor(max_workers=2) as pool:
            semantic_future = pool.submit(self.semantic_search, query, semantic_options)
            keyword_future = pool.submit(self._timed_keyword_search, query, options)
            semantic = semantic_future.result()
            keyword_results, keyword_time = keyword_future.result()

        merged = reciprocal_rank_fusion(semantic.results, keyword_results)[:limit]

        metrics = SearchMetrics(
            duration=_elapsed_ms(start),
            embedding_time=semantic.metrics.embedding_time,
            search_time=semantic.metrics.search_time + keyword_time,
            results_count=len(merged),
            provider=semantic.metrics.provider,
            dimensions=semantic.metrics.dimensions,
            cost=semantic.metrics.cost,
        )
        logger.info(
            "Hybrid search completed: vector=%d keyword=%d merged=%d in %dms",
            len(semantic.results),
            len(keyword_results),
            len(merged),
            metrics.duration,
        )
        return SearchResponse(results=merged, metrics=metrics)

    def search(
        self,
        query: str,
        options: SearchOptions,
        analytics: AnalyticsSink | None = None,
        event_type: UsageEventType = "search",
    ) -> SearchResponse:
        """Hybrid or semantic search per ``options.hybrid_mode``, tracked as ``event_type``."""
        if options.hybrid_mode:
            response = self.hybrid_search(query, options)
        else:
            response = self.semantic_search(query, options)

        if analytics is not None:
            results = response.results
            avg_similarity = (
                sum(r.similarity for r in results) / len(results) if results else 0.0
            )
            try:
                event = UsageEvent(
                    user_id=options.user_id,
                    company_id=options.company_id,
                    session_id=options.session_id,
                    event_type=event_type,
                    query_text=query,
                    results_count=len(results),
                    avg_similarity=avg_similarity,
                    search_duration_ms=response.metrics.duration,
                    estimated_cost=response.metrics.cost,
                    metadata={
                        "hybrid_mode": options.hybrid_mode,
                        "min_similarity": options.min_similarity,
                        "limit": options.limit,
                    },
                )
            except ValidationError as e:
                logger.error("Skipping usage tracking for %r: %s", event_type, e)
            else:
                track_rag_usage(analytics, event)
        return response

    def _timed_keyword_search(
        self, query: str, options: SearchOptions
    ) -> tuple[list[SearchResult], int]:
        start = time.perf_counter()
        results = self.keyword_search(query, options)
        elapsed = _elapsed_ms(start)
        logger.info("Keyword search completed: %d results in %dms", len(results), elapsed)
        return results, elapsed
