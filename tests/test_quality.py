"""Unit tests for the retrieval quality score."""

from __future__ import annotations

from core.models import DocumentInfo, RAGInjectionResult, SearchResult
from generation.context import NO_CONTEXT_FOUND, format_context
from generation.quality import (
    calculate_quality_from_results,
    calculate_rag_quality_score,
    extract_source_metadata,
)


def _result(chunk_id: str, similarity: float, content: str = "body") -> SearchResult:
    return SearchResult(
        chunk_id=chunk_id,
        document_id="doc",
        content=content,
        similarity=similarity,
        document=DocumentInfo(file_name=f"{chunk_id}.pdf", file_type="pdf"),
    )


def _injection(rag_context: str, sources_count: int, rag_used: bool = True) -> RAGInjectionResult:
    return RAGInjectionResult(
        question="q",
        enriched_context=rag_context,
        rag_context=rag_context,
        rag_used=rag_used,
        sources_count=sources_count,
    )


class TestExtractSourceMetadata:
    def test_parses_rendered_context(self):
        text = format_context([_result("annual report", 0.853), _result("b", 0.7)])

        sources = extract_source_metadata(text)

        assert [(s.document_name, s.similarity) for s in sources] == [
            ("annual report.pdf", 85.3),
            ("b.pdf", 70.0),
        ]

    def test_sentinel_and_empty(self):
        assert extract_source_metadata(NO_CONTEXT_FOUND) == []
        assert extract_source_metadata("") == []


class TestQualityScore:
    """Tests for the 50/30/20 weighted score."""

    def test_unused_retrieval_scores_zero(self):
        text = "[1] a.txt (similarity: 90.0%)\nbody"
        assert calculate_rag_quality_score(_injection(text, 1, rag_used=False)) == 0

    def test_zero_sources_scores_zero(self):
        assert calculate_rag_quality_score(_injection("", 0)) == 0

    def test_unparseable_context_scores_zero(self):
        assert calculate_rag_quality_score(_injection("free text", 3)) == 0

    def test_single_source(self):
        # 50 * 0.5 + 20 * 0.3 + (34 / 2000 * 100) * 0.2 = 31.34
        text = "[1] a.txt (similarity: 50.0%)\nbody"
        assert len(text) == 34
        assert calculate_rag_quality_score(_injection(text, 1)) == 31

    def test_rounds_half_up(self):
        # 48 * 0.5 + 20 * 0.3 + 2.5 * 0.2 = 30.5
        text = "[1] a.txt (similarity: 48.0%)\n" + "x" * 20
        assert len(text) == 50
        assert calculate_rag_quality_score(_injection(text, 1)) == 31

    def test_maximum_score(self):
        results = [_result(f"r{i}", 1.0, content="x" * 500) for i in range(5)]
        text = format_context(results)
        assert len(text) >= 2000
        assert calculate_rag_quality_score(_injection(text, 5)) == 100

    def test_sources_saturate_at_five(self):
        results = [_result(f"r{i}", 0.6) for i in range(8)]
        text = format_context(results)
        score = calculate_rag_quality_score(_injection(text, 8))
        assert score == calculate_quality_from_results(results, len(text))
        assert 0 <= score <= 100


class TestStructuredPath:
    def test_matches_text_path(self):
        results = [_result("a", 0.8567), _result("b", 0.61234), _result("c", 0.5)]
        text = format_context(results)

        from_text = calculate_rag_quality_score(_injection(text, len(results)))
        from_results = calculate_quality_from_results(results, len(text))

        assert from_text == from_results
        assert from_text > 0

    def test_empty_results(self):
        assert calculate_quality_from_results([], 1000) == 0
