"""In-process chunk store for tests, local runs and small corpora."""

from __future__ import annotations

import logging
import math
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np

from core.models import CanonicalDocument, EmbeddedChunk, ScopeFilter, StoreRow
from storage.base import ChunkStore

logger = logging.getLogger(__name__)

_TERM = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    return [t.lower() for t in _TERM.findall(text)]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity normalised to [0, 1] as ``(1 + cos) / 2``."""
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.5
    cos = float(np.dot(vec_a, vec_b) / norm)
    return (1.0 + cos) / 2.0


@dataclass
class _StoredDocument:
    file_name: str
    file_type: str
    tags: list[str]
    uploaded_at: datetime
    chunk_ids: list[str] = field(default_factory=list)


class InMemoryChunkStore(ChunkStore):
    """Exact nearest-neighbour and term-frequency search over a dict of chunks."""

    def __init__(self) -> None:
        self._documents: dict[str, _StoredDocument] = {}
        self._chunks: dict[str, EmbeddedChunk] = {}
        self._lock = threading.Lock()

    def add_document(
        self,
        document_id: str,
        document: CanonicalDocument,
        scope: ScopeFilter,
        tags: list[str] | None = None,
    ) -> None:
        with self._lock:
            self._documents[document_id] = _StoredDocument(
                file_name=document.metadata.file_name,
                file_type=document.metadata.file_type,
                tags=list(tags or []),
                uploaded_at=datetime.now(timezone.utc),
            )

    def add_chunks(self, chunks: list[EmbeddedChunk]) -> int:
        with self._lock:
            for item in chunks:
                document = self._documents.get(item.document_id)
                if document is None:
                    raise KeyError(f"Unknown document: {item.document_id}")
                self._chunks[item.chunk_id] = item
                if item.chunk_id not in document.chunk_ids:
                    document.chunk_ids.append(item.chunk_id)
        logger.debug("Added %d chunks to memory store", len(chunks))
        return len(chunks)

    def similarity_search(
        self,
        vector: list[float],
        scope: ScopeFilter,
        limit: int,
        min_similarity: float,
    ) -> list[StoreRow]:
        scored: list[tuple[float, EmbeddedChunk]] = []
        for item in self._in_scope(scope):
            score = cosine_similarity(vector, item.vector)
            if score >= min_similarity:
                scored.append((score, item))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return self._rows(scored, limit)

    def keyword_search(
        self, query: str, scope: ScopeFilter, limit: int
    ) -> list[StoreRow]:
        terms = set(tokenize(query))
        if not terms:
            return []

        unscoped = scope.model_copy(update={"dimensions": None})
        scored: list[tuple[float, EmbeddedChunk]] = []
        for item in self._in_scope(unscoped):
            tokens = tokenize(item.chunk.content)
            counts = Counter(tokens)
            if not all(counts[t] for t in terms):
                continue
            # Term frequency damped by document length
            score = sum(counts[t] for t in terms) / (1.0 + math.log1p(len(tokens)))
            scored.append((score, item))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return self._rows(scored, limit)

    def delete_document(self, document_id: str) -> int:
        with self._lock:
            document = self._documents.pop(document_id, None)
            if document is None:
                return 0
            for chunk_id in document.chunk_ids:
                self._chunks.pop(chunk_id, None)
            return len(document.chunk_ids)

    def count(self) -> int:
        return len(self._chunks)

    def _in_scope(self, scope: ScopeFilter) -> list[EmbeddedChunk]:
        with self._lock:
            items = list(self._chunks.values())
        return [
            item
            for item in items
            if scope.matches(
                item.user_id,
                item.company_id,
                item.session_id,
                item.document_id,
                item.dimensions,
            )
        ]

    def _rows(
        self, scored: list[tuple[float, EmbeddedChunk]], limit: int
    ) -> list[StoreRow]:
        # Documents deleted since the scope snapshot are skipped
        with self._lock:
            live = [
                (score, item, self._documents[item.document_id])
                for score, item in scored
                if item.document_id in self._documents
            ]
        return [self._row(item, document, score) for score, item, document in live[:limit]]

    def _row(
        self, item: EmbeddedChunk, document: _StoredDocument, score: float
    ) -> StoreRow:
        meta = item.chunk.metadata
        return StoreRow(
            chunk_id=item.chunk_id,
            document_id=item.document_id,
            content=item.chunk.content,
            chunk_metadata={
                "start_pos": meta.start_pos,
                "end_pos": meta.end_pos,
                "token_estimate": meta.token_estimate,
                "char_count": meta.char_count,
                "has_overlap": meta.has_overlap,
                "chunk_index": item.chunk.index,
                **meta.custom,
            },
            file_name=document.file_name,
            file_type=document.file_type,
            uploaded_at=document.uploaded_at,
            tags=list(document.tags),
            score=score,
        )
