"""Data models for the retrieval engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

ChunkStrategy = Literal["recursive", "semantic", "fixed"]
UsageEventType = Literal["document_upload", "search", "debate_injection", "manual_search"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Documents and chunks
# ---------------------------------------------------------------------------


class DocumentMetadata(BaseModel):
    """Descriptive metadata computed once per uploaded source."""

    model_config = {"frozen": True}

    file_name: str
    file_type: str
    file_size: int = 0
    char_count: int = 0
    token_estimate: int = 0
    line_count: int = 0
    paragraph_count: int = 0
    custom: dict[str, Any] = Field(default_factory=dict)


class CanonicalDocument(BaseModel):
    """Normalized document text plus the raw extracted text it came from."""

    model_config = {"frozen": True}

    content: str
    raw_content: str
    metadata: DocumentMetadata


class ChunkOptions(BaseModel):
    """How a document is split into chunks. Sizes are in characters."""

    strategy: ChunkStrategy = "recursive"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: list[str] | None = None
    min_chunk_size: int | None = None


class ChunkMetadata(BaseModel):
    model_config = {"frozen": True}

    start_pos: int
    end_pos: int
    token_estimate: int
    char_count: int
    has_overlap: bool = False
    custom: dict[str, Any] = Field(default_factory=dict)


class Chunk(BaseModel):
    """A bounded segment of a document, the unit of embedding and retrieval."""

    model_config = {"frozen": True}

    content: str
    index: int = 0
    metadata: ChunkMetadata


class EmbeddedChunk(BaseModel):
    """A chunk with its vector and the scope identifiers it is stored under."""

    chunk_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_id: str
    chunk: Chunk
    vector: list[float]
    dimensions: int
    user_id: str
    company_id: str | None = None
    session_id: str | None = None


class IndexingReport(BaseModel):
    document_id: str
    chunk_count: int = 0
    failed_chunks: int = 0
    dimensions: int | None = None


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


class ProviderInfo(BaseModel):
    name: str


class EmbeddingResult(BaseModel):
    vector: list[float]
    provider: ProviderInfo
    dimensions: int
    cost: float = 0.0


# ---------------------------------------------------------------------------
# Scoping and search
# ---------------------------------------------------------------------------


class ScopeFilter(BaseModel):
    """Tenant/scope predicates a store adapter must apply to every query.

    ``user_id`` is mandatory; every other predicate is only applied when set.
    ``dimensions`` restricts similarity queries to chunks embedded with a
    compatible model.
    """

    model_config = {"frozen": True}

    user_id: str
    company_id: str | None = None
    session_id: str | None = None
    document_ids: tuple[str, ...] | None = None
    dimensions: int | None = None

    def to_params(self) -> dict[str, Any]:
        """Query parameters for a store's fixed scope predicate."""
        return {
            "user_id": self.user_id,
            "company_id": self.company_id,
            "session_id": self.session_id,
            "document_ids": list(self.document_ids) if self.document_ids else None,
            "dimensions": self.dimensions,
        }

    def matches(
        self,
        user_id: str,
        company_id: str | None,
        session_id: str | None,
        document_id: str,
        dimensions: int | None = None,
    ) -> bool:
        if user_id != self.user_id:
            return False
        if self.company_id is not None and company_id != self.company_id:
            return False
        if self.session_id is not None and session_id != self.session_id:
            return False
        if self.document_ids and document_id not in self.document_ids:
            return False
        if self.dimensions is not None and dimensions != self.dimensions:
            return False
        return True


class StoreRow(BaseModel):
    """A raw row returned by a chunk store query."""

    chunk_id: str
    document_id: str
    content: str
    chunk_metadata: dict[str, Any] = Field(default_factory=dict)
    file_name: str = ""
    file_type: str = ""
    uploaded_at: datetime = Field(default_factory=_utcnow)
    tags: list[str] = Field(default_factory=list)
    score: float = 0.0


class DocumentInfo(BaseModel):
    file_name: str
    file_type: str
    uploaded_at: datetime = Field(default_factory=_utcnow)
    tags: list[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    """A ranked chunk. ``similarity`` is a fusion score for hybrid results."""

    chunk_id: str
    document_id: str
    content: str
    similarity: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    document: DocumentInfo
    rerank_score: float | None = None


class SearchMetrics(BaseModel):
    """Per-query timings in milliseconds."""

    duration: int = 0
    embedding_time: int = 0
    search_time: int = 0
    results_count: int = 0
    provider: str = ""
    dimensions: int = 0
    cost: float = 0.0


class SearchResponse(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    metrics: SearchMetrics = Field(default_factory=SearchMetrics)


class SearchOptions(BaseModel):
    user_id: str
    company_id: str | None = None
    session_id: str | None = None
    limit: int | None = None
    min_similarity: float | None = None
    hybrid_mode: bool = False
    rerank: bool = False
    provider: str | None = None
    model: str | None = None
    document_ids: list[str] | None = None

    def scope(self, dimensions: int | None = None) -> ScopeFilter:
        return ScopeFilter(
            user_id=self.user_id,
            company_id=self.company_id,
            session_id=self.session_id,
            document_ids=tuple(self.document_ids) if self.document_ids else None,
            dimensions=dimensions,
        )


# ---------------------------------------------------------------------------
# Context injection
# ---------------------------------------------------------------------------


class RAGIntegrationOptions(BaseModel):
    user_id: str
    company_id: str | None = None
    session_id: str | None = None
    limit: int | None = None
    min_similarity: float | None = None
    hybrid_search: bool | None = None
    provider: str | None = None
    enabled: bool = True


class InjectionMetrics(BaseModel):
    duration: int = 0
    results_count: int = 0
    provider: str = "default"


class RAGInjectionResult(BaseModel):
    question: str
    enriched_context: str = ""
    rag_context: str = ""
    rag_used: bool = False
    sources_count: int = 0
    search_metrics: InjectionMetrics | None = None


class SourceInfo(BaseModel):
    """A source parsed back out of a rendered context block."""

    document_name: str
    similarity: float  # percentage, 0-100


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class UsageEvent(BaseModel):
    user_id: str
    event_type: UsageEventType
    company_id: str | None = None
    session_id: str | None = None
    document_id: str | None = None
    query_text: str | None = None
    results_count: int | None = None
    avg_similarity: float | None = None
    search_duration_ms: int | None = None
    tokens_used: int = 0
    estimated_cost: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
