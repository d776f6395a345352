"""Unit tests for ingestion (loader, embedder, indexing pipeline)."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock, patch

import pytest

from core.models import ChunkOptions, EmbeddingResult, ProviderInfo, ScopeFilter
from ingestion.embedder import OpenAIEmbedder
from ingestion.loader import load_file
from ingestion.pipeline import index_document
from storage.memory_store import InMemoryChunkStore


def _embedding(vector: list[float]) -> EmbeddingResult:
    return EmbeddingResult(
        vector=vector,
        provider=ProviderInfo(name="fake"),
        dimensions=len(vector),
        cost=0.001,
    )


class TestLoader:
    """Tests for document loader."""

    def test_load_file_txt(self, tmp_path):
        """Test loading TXT file (no Docling needed)."""
        txt_file = tmp_path / "test.txt"
        txt_file.write_text("Test content\nLine 2", encoding="utf-8")

        result = load_file(str(txt_file))
        assert result.text == "Test content\nLine 2"
        assert result.file_name == "test.txt"
        assert result.file_type == "txt"
        assert result.file_size == txt_file.stat().st_size

    def test_load_file_markdown(self, tmp_path):
        md_file = tmp_path / "notes.md"
        md_file.write_text("# Title", encoding="utf-8")

        result = load_file(str(md_file))
        assert result.text == "# Title"
        assert result.file_type == "md"

    def test_load_file_not_found(self):
        """Test FileNotFoundError for missing file."""
        with pytest.raises(FileNotFoundError):
            load_file("/nonexistent/file.txt")

    @patch("docling.document_converter.DocumentConverter")
    def test_load_file_docling(self, mock_converter_class, tmp_path):
        """Test loading PDF/DOCX via Docling."""
        pdf_file = tmp_path / "test.pdf"
        pdf_file.write_bytes(b"fake pdf content")

        mock_result = Mock()
        mock_result.document.export_to_markdown.return_value = "# PDF Content"

        mock_converter = Mock()
        mock_converter.convert.return_value = mock_result
        mock_converter_class.return_value = mock_converter

        result = load_file(str(pdf_file))

        assert result.text == "# PDF Content"
        assert result.file_type == "pdf"
        mock_converter.convert.assert_called_once_with(str(pdf_file))


class TestOpenAIEmbedder:
    """Tests for the OpenAI embedding client."""

    @pytest.fixture
    def mock_client(self):
        client = MagicMock()
        client.embeddings.create.return_value = Mock(
            data=[Mock(embedding=[0.1, 0.2, 0.3])]
        )
        return client

    def test_embed_returns_vector_and_dimensions(self, mock_client):
        embedder = OpenAIEmbedder(openai_client=mock_client, model="test-model")

        result = embedder.embed("Hello world", "user-1")

        assert result.vector == [0.1, 0.2, 0.3]
        assert result.dimensions == 3
        assert result.provider.name == "openai"
        call_kwargs = mock_client.embeddings.create.call_args.kwargs
        assert call_kwargs["model"] == "test-model"
        assert call_kwargs["input"] == "Hello world"
        assert call_kwargs["user"] == "user-1"
        assert "dimensions" not in call_kwargs

    def test_model_override_and_dimensions(self, mock_client):
        embedder = OpenAIEmbedder(openai_client=mock_client, model="default", dimensions=3)

        embedder.embed("text", "user-1", model="other")

        call_kwargs = mock_client.embeddings.create.call_args.kwargs
        assert call_kwargs["model"] == "other"
        assert call_kwargs["dimensions"] == 3

    def test_cost_from_token_estimate(self, mock_client):
        embedder = OpenAIEmbedder(openai_client=mock_client)

        result = embedder.embed("x" * 4000, "user-1")

        assert result.cost == pytest.approx(1000 / 1000 * 0.00002)

    def test_errors_propagate(self, mock_client):
        mock_client.embeddings.create.side_effect = RuntimeError("rate limited")
        embedder = OpenAIEmbedder(openai_client=mock_client)

        with pytest.raises(RuntimeError):
            embedder.embed("text", "user-1")

    @patch("openai.OpenAI")
    def test_default_client(self, mock_openai_class):
        embedder = OpenAIEmbedder()
        assert embedder.openai_client is mock_openai_class.return_value


class TestIndexDocument:
    """Tests for the preprocess -> chunk -> embed -> store pipeline."""

    @pytest.fixture
    def store(self):
        return InMemoryChunkStore()

    @pytest.fixture
    def scope(self):
        return ScopeFilter(user_id="u1", company_id="c1", session_id="s1")

    def test_indexes_all_chunks(self, store, scope):
        embedder = MagicMock()
        embedder.embed.return_value = _embedding([1.0, 0.0])

        report = index_document(
            "ABCDEFGHIJKLMNOPQRSTUVWXYZ",
            "alphabet.txt",
            "txt",
            26,
            scope=scope,
            store=store,
            embedder=embedder,
            chunk_options=ChunkOptions(strategy="fixed", chunk_size=10, chunk_overlap=3),
            document_id="doc-1",
        )

        assert report.document_id == "doc-1"
        assert report.chunk_count == 4
        assert report.failed_chunks == 0
        assert report.dimensions == 2
        assert store.count() == 4
        assert all(call.args[1] == "u1" for call in embedder.embed.call_args_list)

    def test_failed_embedding_is_skipped(self, store, scope):
        embedder = MagicMock()
        embedder.embed.side_effect = [
            _embedding([1.0, 0.0]),
            RuntimeError("provider down"),
            _embedding([0.0, 1.0]),
            _embedding([0.5, 0.5]),
        ]

        report = index_document(
            "ABCDEFGHIJKLMNOPQRSTUVWXYZ",
            "alphabet.txt",
            "txt",
            26,
            scope=scope,
            store=store,
            embedder=embedder,
            chunk_options=ChunkOptions(strategy="fixed", chunk_size=10, chunk_overlap=3),
        )

        assert report.chunk_count == 3
        assert report.failed_chunks == 1
        assert store.count() == 3

    def test_all_embeddings_fail(self, store, scope):
        embedder = MagicMock()
        embedder.embed.side_effect = RuntimeError("provider down")

        report = index_document(
            "Short text", "a.txt", "txt", 10, scope=scope, store=store, embedder=embedder
        )

        assert report.chunk_count == 0
        assert report.failed_chunks == 1
        assert report.dimensions is None
        assert store.count() == 0

    def test_chunks_carry_scope(self, store, scope):
        embedder = MagicMock()
        embedder.embed.return_value = _embedding([1.0, 0.0])

        index_document(
            "Some content", "a.txt", "txt", 12, scope=scope, store=store, embedder=embedder
        )

        other_user = ScopeFilter(user_id="u2")
        assert store.similarity_search([1.0, 0.0], other_user, 10, 0.0) == []
        rows = store.similarity_search([1.0, 0.0], ScopeFilter(user_id="u1"), 10, 0.0)
        assert len(rows) == 1
        assert rows[0].file_name == "a.txt"

    def test_tracks_upload_event(self, store, scope):
        embedder = MagicMock()
        embedder.embed.return_value = _embedding([1.0, 0.0])
        analytics = MagicMock()

        report = index_document(
            "Some content",
            "a.txt",
            "txt",
            12,
            scope=scope,
            store=store,
            embedder=embedder,
            tags=["finance"],
            analytics=analytics,
        )

        analytics.record.assert_called_once()
        event = analytics.record.call_args.args[0]
        assert event.event_type == "document_upload"
        assert event.document_id == report.document_id
        assert event.user_id == "u1"
        assert event.metadata["chunk_count"] == 1

    def test_analytics_failure_does_not_break_indexing(self, store, scope):
        embedder = MagicMock()
        embedder.embed.return_value = _embedding([1.0, 0.0])
        analytics = MagicMock()
        analytics.record.side_effect = RuntimeError("analytics down")

        report = index_document(
            "Some content",
            "a.txt",
            "txt",
            12,
            scope=scope,
            store=store,
            embedder=embedder,
            analytics=analytics,
        )

        assert report.chunk_count == 1
