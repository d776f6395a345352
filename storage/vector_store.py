"""Neo4j chunk store: cosine similarity and full-text search, tenant scoped."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from core.config import settings
from core.models import CanonicalDocument, EmbeddedChunk, ScopeFilter, StoreRow
from storage.base import ChunkStore

if TYPE_CHECKING:
    from neo4j import Driver

logger = logging.getLogger(__name__)

INDEX_NAME = "rag_chunks_index"
FULLTEXT_INDEX_NAME = "rag_chunks_fulltext"
NODE_LABEL = "RagChunk"
DOCUMENT_LABEL = "RagDocument"
EMBEDDING_PROPERTY = "embedding"

# Fixed predicate over ScopeFilter.to_params(); unset predicates are NULL
SCOPE_PREDICATE = """
    c.user_id = $user_id
    AND ($company_id IS NULL OR c.company_id = $company_id)
    AND ($session_id IS NULL OR c.session_id = $session_id)
    AND ($document_ids IS NULL OR c.document_id IN $document_ids)
    AND ($dimensions IS NULL OR c.dimensions = $dimensions)
"""

RETURN_ROW = """
    RETURN c.id AS chunk_id,
           c.document_id AS document_id,
           c.content AS content,
           c.metadata AS metadata,
           d.file_name AS file_name,
           d.file_type AS file_type,
           d.uploaded_at AS uploaded_at,
           d.tags AS tags,
           score
    ORDER BY score DESC
    LIMIT $limit
"""

SIMILARITY_QUERY = f"""
    MATCH (d:{DOCUMENT_LABEL})-[:HAS_CHUNK]->(c:{NODE_LABEL})
    WHERE {SCOPE_PREDICATE}
    WITH d, c, vector.similarity.cosine(c.{EMBEDDING_PROPERTY}, $embedding) AS score
    WHERE score >= $min_similarity
    {RETURN_ROW}
"""

KEYWORD_QUERY = f"""
    CALL db.index.fulltext.queryNodes('{FULLTEXT_INDEX_NAME}', $query)
    YIELD node AS c, score
    MATCH (d:{DOCUMENT_LABEL})-[:HAS_CHUNK]->(c)
    WHERE {SCOPE_PREDICATE}
    {RETURN_ROW}
"""

_TERM = re.compile(r"\w+", re.UNICODE)


def build_fulltext_query(query: str) -> str:
    """Plain-query semantics for Lucene: lowercase word terms, all required.

    Lowercasing also keeps terms from being read as AND/OR/NOT operators.
    Returns "" when the query has no word characters.
    """
    terms = [t.lower() for t in _TERM.findall(query)]
    return " AND ".join(terms)


class Neo4jChunkStore(ChunkStore):
    """Neo4j-backed chunk store.

    ``(:RagDocument)-[:HAS_CHUNK]->(:RagChunk)``. Similarity is computed with
    ``vector.similarity.cosine`` (already ``(1 + cos) / 2``) only over chunks
    that pass the scope and dimension predicate, so chunks embedded with a
    different model are never compared. That query is an exact scan over the
    scoped chunks and does not read ``INDEX_NAME``.

    ``init_index`` still creates the vector index so approximate
    nearest-neighbour lookups (``db.index.vector.queryNodes``) are available
    to callers searching the whole corpus without a scope.
    """

    def __init__(self, driver: Driver | None = None):
        if driver is None:
            from neo4j import GraphDatabase

            self._driver = GraphDatabase.driver(
                settings.neo4j_uri,
                auth=(settings.neo4j_user, settings.neo4j_password),
            )
        else:
            self._driver = driver

    def close(self) -> None:
        self._driver.close()

    def init_index(self) -> None:
        """Create the vector and full-text indexes if they don't exist."""
        with self._driver.session() as session:
            session.run(
                f"""
                CREATE VECTOR INDEX {INDEX_NAME} IF NOT EXISTS
                FOR (n:{NODE_LABEL})
                ON (n.{EMBEDDING_PROPERTY})
                OPTIONS {{
                    indexConfig: {{
                        `vector.dimensions`: $dimensions,
                        `vector.similarity_function`: 'cosine'
                    }}
                }}
                """,
                dimensions=settings.embedding_dimensions,
            )
            session.run(
                f"""
                CREATE FULLTEXT INDEX {FULLTEXT_INDEX_NAME} IF NOT EXISTS
                FOR (n:{NODE_LABEL})
                ON EACH [n.content]
                OPTIONS {{
                    indexConfig: {{
                        `fulltext.analyzer`: $analyzer
                    }}
                }}
                """,
                analyzer=settings.fulltext_analyzer,
            )
        logger.info(
            "Indexes '%s' and '%s' initialized", INDEX_NAME, FULLTEXT_INDEX_NAME
        )

    def add_document(
        self,
        document_id: str,
        document: CanonicalDocument,
        scope: ScopeFilter,
        tags: list[str] | None = None,
    ) -> None:
        meta = document.metadata
        with self._driver.session() as session:
            session.run(
                f"""
                MERGE (d:{DOCUMENT_LABEL} {{id: $id}})
                SET d.file_name = $file_name,
                    d.file_type = $file_type,
                    d.file_size = $file_size,
                    d.char_count = $char_count,
                    d.user_id = $user_id,
                    d.company_id = $company_id,
                    d.session_id = $session_id,
                    d.tags = $tags,
                    d.uploaded_at = $uploaded_at,
                    d.metadata = $metadata_json
                """,
                id=document_id,
                file_name=meta.file_name,
                file_type=meta.file_type,
                file_size=meta.file_size,
                char_count=meta.char_count,
                user_id=scope.user_id,
                company_id=scope.company_id,
                session_id=scope.session_id,
                tags=tags or [],
                uploaded_at=datetime.now(timezone.utc).isoformat(),
                metadata_json=json.dumps(meta.custom),
            )
        logger.info("Registered document %s (%s)", document_id, meta.file_name)

    def add_chunks(self, chunks: list[EmbeddedChunk]) -> int:
        """Store chunks as Neo4j nodes with embeddings. Returns count added."""
        if not chunks:
            return 0

        with self._driver.session() as session:
            for item in chunks:
                session.run(
                    f"""
                    MATCH (d:{DOCUMENT_LABEL} {{id: $document_id}})
                    MERGE (c:{NODE_LABEL} {{id: $id}})
                    SET c.document_id = $document_id,
                        c.content = $content,
                        c.chunk_index = $chunk_index,
                        c.{EMBEDDING_PROPERTY} = $embedding,
                        c.dimensions = $dimensions,
                        c.user_id = $user_id,
                        c.company_id = $company_id,
                        c.session_id = $session_id,
                        c.metadata = $metadata_json
                    MERGE (d)-[:HAS_CHUNK]->(c)
                    """,
                    id=item.chunk_id,
                    document_id=item.document_id,
                    content=item.chunk.content,
                    chunk_index=item.chunk.index,
                    embedding=item.vector,
                    dimensions=item.dimensions,
                    user_id=item.user_id,
                    company_id=item.company_id,
                    session_id=item.session_id,
                    metadata_json=json.dumps(_chunk_metadata(item)),
                )

        logger.info("Added %d chunks to store", len(chunks))
        return len(chunks)

    def similarity_search(
        self,
        vector: list[float],
        scope: ScopeFilter,
        limit: int,
        min_similarity: float,
    ) -> list[StoreRow]:
        with self._driver.session() as session:
            records = session.run(
                SIMILARITY_QUERY,
                embedding=vector,
                limit=limit,
                min_similarity=min_similarity,
                **scope.to_params(),
            )
            return [_row_from_record(record) for record in records]

    def keyword_search(
        self, query: str, scope: ScopeFilter, limit: int
    ) -> list[StoreRow]:
        lucene_query = build_fulltext_query(query)
        if not lucene_query:
            logger.debug("Keyword query has no searchable terms: %r", query)
            return []

        params = scope.to_params()
        # Lexical ranking ignores embedding dimensionality
        params["dimensions"] = None

        with self._driver.session() as session:
            records = session.run(
                KEYWORD_QUERY, query=lucene_query, limit=limit, **params
            )
            return [_row_from_record(record) for record in records]

    def delete_document(self, document_id: str) -> int:
        with self._driver.session() as session:
            result = session.run(
                f"""
                MATCH (d:{DOCUMENT_LABEL} {{id: $id}})
                OPTIONAL MATCH (d)-[:HAS_CHUNK]->(c:{NODE_LABEL})
                WITH d, collect(c) AS chunks
                FOREACH (c IN chunks | DETACH DELETE c)
                DETACH DELETE d
                RETURN size(chunks) AS total
                """,
                id=document_id,
            )
            record = result.single()
            count = record["total"] if record else 0

        logger.info("Deleted document %s with %d chunks", document_id, count)
        return count

    def delete_all(self) -> int:
        """Delete all documents and chunks. Returns chunk count deleted."""
        with self._driver.session() as session:
            result = session.run(
                f"""
                MATCH (c:{NODE_LABEL})
                WITH collect(c) AS chunks
                FOREACH (c IN chunks | DETACH DELETE c)
                WITH size(chunks) AS total
                OPTIONAL MATCH (d:{DOCUMENT_LABEL})
                DETACH DELETE d
                RETURN DISTINCT total
                """
            )
            record = result.single()
            count = record["total"] if record else 0

        logger.info("Deleted %d chunks from store", count)
        return count

    def count(self) -> int:
        """Return total number of chunks."""
        with self._driver.session() as session:
            result = session.run(f"MATCH (c:{NODE_LABEL}) RETURN count(c) AS total")
            record = result.single()
            return record["total"] if record else 0


def _chunk_metadata(item: EmbeddedChunk) -> dict[str, Any]:
    meta = item.chunk.metadata
    return {
        "start_pos": meta.start_pos,
        "end_pos": meta.end_pos,
        "token_estimate": meta.token_estimate,
        "char_count": meta.char_count,
        "has_overlap": meta.has_overlap,
        "chunk_index": item.chunk.index,
        **meta.custom,
    }


def _row_from_record(record: Any) -> StoreRow:
    metadata = record["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata) if metadata else {}

    uploaded_at = record["uploaded_at"]
    if isinstance(uploaded_at, str):
        uploaded_at = datetime.fromisoformat(uploaded_at)
    elif uploaded_at is not None and hasattr(uploaded_at, "to_native"):
        uploaded_at = uploaded_at.to_native()

    row: dict[str, Any] = {
        "chunk_id": record["chunk_id"],
        "document_id": record["document_id"] or "",
        "content": record["content"] or "",
        "chunk_metadata": metadata or {},
        "file_name": record["file_name"] or "",
        "file_type": record["file_type"] or "",
        "tags": list(record["tags"] or []),
        "score": float(record["score"]),
    }
    if uploaded_at is not None:
        row["uploaded_at"] = uploaded_at
    return StoreRow(**row)
