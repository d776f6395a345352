"""Unit tests for the in-memory chunk store."""

from __future__ import annotations

import pytest

from core.models import (
    CanonicalDocument,
    Chunk,
    ChunkMetadata,
    DocumentMetadata,
    EmbeddedChunk,
    ScopeFilter,
)
from storage.memory_store import InMemoryChunkStore, cosine_similarity, tokenize


def _document(file_name: str) -> CanonicalDocument:
    return CanonicalDocument(
        content="",
        raw_content="",
        metadata=DocumentMetadata(file_name=file_name, file_type="txt"),
    )


def _embedded(
    chunk_id: str,
    content: str,
    vector: list[float],
    document_id: str = "doc-1",
    user_id: str = "u1",
    company_id: str | None = None,
    session_id: str | None = None,
) -> EmbeddedChunk:
    return EmbeddedChunk(
        chunk_id=chunk_id,
        document_id=document_id,
        chunk=Chunk(
            content=content,
            metadata=ChunkMetadata(
                start_pos=0,
                end_pos=len(content),
                token_estimate=1,
                char_count=len(content),
            ),
        ),
        vector=vector,
        dimensions=len(vector),
        user_id=user_id,
        company_id=company_id,
        session_id=session_id,
    )


@pytest.fixture
def store():
    store = InMemoryChunkStore()
    store.add_document("doc-1", _document("one.txt"), ScopeFilter(user_id="u1"), tags=["a"])
    store.add_document("doc-2", _document("two.txt"), ScopeFilter(user_id="u1"))
    store.add_chunks(
        [
            _embedded("c1", "revenue grew in the third quarter", [1.0, 0.0], company_id="acme"),
            _embedded("c2", "costs fell while revenue grew", [0.6, 0.8], company_id="acme"),
            _embedded("c3", "unrelated text about weather", [-1.0, 0.0], document_id="doc-2"),
            _embedded("c4", "revenue for another tenant", [1.0, 0.0], user_id="u2"),
            _embedded("c5", "revenue small model", [1.0, 0.0, 0.0], session_id="s9"),
        ]
    )
    return store


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.5)

    def test_opposite(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.5


class TestSimilaritySearch:
    def test_orders_by_similarity(self, store):
        rows = store.similarity_search([1.0, 0.0], ScopeFilter(user_id="u1", dimensions=2), 10, 0.0)
        assert [r.chunk_id for r in rows] == ["c1", "c2", "c3"]
        assert rows[0].score == pytest.approx(1.0)
        assert rows[1].score == pytest.approx(0.8)
        assert rows[0].file_name == "one.txt"
        assert rows[0].tags == ["a"]

    def test_min_similarity_and_limit(self, store):
        scope = ScopeFilter(user_id="u1", dimensions=2)
        assert [r.chunk_id for r in store.similarity_search([1.0, 0.0], scope, 10, 0.9)] == ["c1"]
        assert len(store.similarity_search([1.0, 0.0], scope, 1, 0.0)) == 1

    def test_dimension_mismatch_never_compared(self, store):
        rows = store.similarity_search([1.0, 0.0, 0.0], ScopeFilter(user_id="u1", dimensions=3), 10, 0.0)
        assert [r.chunk_id for r in rows] == ["c5"]

    def test_scope_filters(self, store):
        scope = ScopeFilter(user_id="u1", company_id="acme", dimensions=2)
        assert {r.chunk_id for r in store.similarity_search([1.0, 0.0], scope, 10, 0.0)} == {"c1", "c2"}

        scope = ScopeFilter(user_id="u1", document_ids=("doc-2",), dimensions=2)
        assert [r.chunk_id for r in store.similarity_search([1.0, 0.0], scope, 10, 0.0)] == ["c3"]

        scope = ScopeFilter(user_id="u2", dimensions=2)
        assert [r.chunk_id for r in store.similarity_search([1.0, 0.0], scope, 10, 0.0)] == ["c4"]

    def test_session_filter(self, store):
        scope = ScopeFilter(user_id="u1", session_id="s9")
        assert [r.chunk_id for r in store.similarity_search([1.0, 0.0, 0.0], scope, 10, 0.0)] == ["c5"]


class TestKeywordSearch:
    def test_tokenize(self):
        assert tokenize("Revenue, GROWTH!") == ["revenue", "growth"]

    def test_all_terms_required(self, store):
        rows = store.keyword_search("revenue grew", ScopeFilter(user_id="u1"), 10)
        assert {r.chunk_id for r in rows} == {"c1", "c2"}

    def test_ignores_dimensions(self, store):
        rows = store.keyword_search("revenue", ScopeFilter(user_id="u1", dimensions=2), 10)
        assert {r.chunk_id for r in rows} == {"c1", "c2", "c5"}

    def test_shorter_chunk_ranks_higher(self, store):
        rows = store.keyword_search("revenue", ScopeFilter(user_id="u1"), 10)
        assert rows[0].chunk_id == "c5"
        assert rows[0].score > rows[-1].score

    def test_no_terms(self, store):
        assert store.keyword_search("!!", ScopeFilter(user_id="u1"), 10) == []


class TestMutation:
    def test_add_chunk_to_unknown_document(self):
        store = InMemoryChunkStore()
        with pytest.raises(KeyError):
            store.add_chunks([_embedded("c1", "text", [1.0], document_id="missing")])

    def test_delete_document(self, store):
        assert store.count() == 5
        assert store.delete_document("doc-1") == 4
        assert store.count() == 1
        assert store.delete_document("doc-1") == 0

    def test_delete_during_search_skips_removed_document(self, store, monkeypatch):
        """A document deleted after the scope snapshot is left out of the rows."""
        snapshot = store._in_scope

        def snapshot_then_delete(scope):
            items = snapshot(scope)
            store.delete_document("doc-1")
            return items

        monkeypatch.setattr(store, "_in_scope", snapshot_then_delete)

        rows = store.similarity_search([1.0, 0.0], ScopeFilter(user_id="u1", dimensions=2), 10, 0.0)
        assert [r.chunk_id for r in rows] == ["c3"]

        store.add_document("doc-1", _document("one.txt"), ScopeFilter(user_id="u1"))
        store.add_chunks([_embedded("c1", "revenue grew", [1.0, 0.0])])
        rows = store.keyword_search("revenue", ScopeFilter(user_id="u1"), 10)
        assert rows == []
