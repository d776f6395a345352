"""Chunk store interface shared by the Neo4j and in-memory backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from core.models import CanonicalDocument, EmbeddedChunk, ScopeFilter, StoreRow


class ChunkStore(ABC):
    """Persists embedded chunks and answers scoped similarity/lexical queries.

    Similarity scores are cosine similarity normalised to ``[0, 1]``
    (``(1 + cos) / 2``). Lexical scores are backend-specific and not
    comparable with similarity scores.
    """

    @abstractmethod
    def add_document(
        self,
        document_id: str,
        document: CanonicalDocument,
        scope: ScopeFilter,
        tags: list[str] | None = None,
    ) -> None:
        """Register the document that chunks will be attached to."""

    @abstractmethod
    def add_chunks(self, chunks: list[EmbeddedChunk]) -> int:
        """Store embedded chunks. Returns count added."""

    @abstractmethod
    def similarity_search(
        self,
        vector: list[float],
        scope: ScopeFilter,
        limit: int,
        min_similarity: float,
    ) -> list[StoreRow]:
        """Nearest chunks within ``scope``, most similar first."""

    @abstractmethod
    def keyword_search(
        self, query: str, scope: ScopeFilter, limit: int
    ) -> list[StoreRow]:
        """Chunks matching every query term within ``scope``, best first."""

    @abstractmethod
    def delete_document(self, document_id: str) -> int:
        """Delete a document and its chunks. Returns chunks deleted."""

    @abstractmethod
    def count(self) -> int:
        """Return total number of chunks."""

    def close(self) -> None:
        return None
