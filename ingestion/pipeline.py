"""Indexing pipeline: preprocess -> chunk -> embed -> store."""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from core.models import ChunkOptions, EmbeddedChunk, IndexingReport, ScopeFilter, UsageEvent
from ingestion.chunker import chunk_document, default_options
from ingestion.preprocessor import process_document
from storage.analytics import track_rag_usage

if TYPE_CHECKING:
    from ingestion.embedder import EmbeddingClient
    from storage.analytics import AnalyticsSink
    from storage.base import ChunkStore

logger = logging.getLogger(__name__)


def index_document(
    raw_content: str,
    file_name: str,
    file_type: str,
    file_size: int,
    scope: ScopeFilter,
    store: ChunkStore,
    embedder: EmbeddingClient,
    chunk_options: ChunkOptions | None = None,
    document_id: str | None = None,
    tags: list[str] | None = None,
    analytics: AnalyticsSink | None = None,
) -> IndexingReport:
    """Index one uploaded document under ``scope``.

    A chunk whose embedding fails is logged and skipped; the rest of the
    document is still stored. Store failures propagate.

    Args:
        raw_content: Extracted text of the document
        file_name: Original file name
        file_type: Extension without dot (e.g. "pdf")
        file_size: Size of the original file in bytes
        scope: Owner scope; ``user_id``, ``company_id`` and ``session_id``
            are stored on every chunk
        store: Chunk store to write to
        embedder: Embedding client
        chunk_options: Chunking options (default: from settings)
        document_id: Identifier to use (default: new UUID)
        tags: Free-form document tags
        analytics: Optional sink for the ``document_upload`` event

    Returns:
        IndexingReport with stored and failed chunk counts
    """
    start = time.perf_counter()
    document_id = document_id or str(uuid.uuid4())
    options = chunk_options or default_options()

    document = process_document(raw_content, file_name, file_type, file_size)
    chunks = chunk_document(document.content, options)
    logger.info(
        "Chunked %s into %d chunks (strategy=%s, size=%d, overlap=%d)",
        file_name,
        len(chunks),
        options.strategy,
        options.chunk_size,
        options.chunk_overlap,
    )

    store.add_document(document_id, document, scope, tags=tags)

    embedded: list[EmbeddedChunk] = []
    failed = 0
    total_cost = 0.0
    dimensions: int | None = None

    for chunk in chunks:
        try:
            result = embedder.embed(chunk.content, scope.user_id)
        except Exception as e:
            failed += 1
            logger.error(
                "Failed to embed chunk %d of %s: %s", chunk.index, file_name, e
            )
            continue

        dimensions = result.dimensions
        total_cost += result.cost
        embedded.append(
            EmbeddedChunk(
                document_id=document_id,
                chunk=chunk,
                vector=result.vector,
                dimensions=result.dimensions,
                user_id=scope.user_id,
                company_id=scope.company_id,
                session_id=scope.session_id,
            )
        )

    stored = store.add_chunks(embedded) if embedded else 0
    duration = int((time.perf_counter() - start) * 1000)

    logger.info(
        "Indexed %s: %d chunks stored, %d failed in %dms",
        file_name,
        stored,
        failed,
        duration,
    )

    track_rag_usage(
        analytics,
        UsageEvent(
            user_id=scope.user_id,
            company_id=scope.company_id,
            session_id=scope.session_id,
            event_type="document_upload",
            document_id=document_id,
            search_duration_ms=duration,
            tokens_used=document.metadata.token_estimate,
            estimated_cost=total_cost,
            metadata={
                "file_name": file_name,
                "file_type": file_type,
                "file_size": file_size,
                "chunk_count": stored,
                "failed_chunks": failed,
                "strategy": options.strategy,
            },
        ),
    )

    return IndexingReport(
        document_id=document_id,
        chunk_count=stored,
        failed_chunks=failed,
        dimensions=dimensions,
    )
