"""Confidence score (0-100) for an assembled retrieval context.

The score is computed from the rendered context text, not from the ranked
result objects, so it also works for callers that only kept the string. Any
change to ``generation.context.format_context`` must keep
``SOURCE_PATTERN`` matching.
"""

from __future__ import annotations

import math
import re

from core.models import RAGInjectionResult, SearchResult, SourceInfo
from generation.context import NO_CONTEXT_FOUND, format_similarity

# "[1] report.pdf (similarity: 85.3%)"
SOURCE_PATTERN = re.compile(r"\[(\d+)\]\s+([^(]+?)\s+\(similarity:\s+([\d.]+)%\)")

SIMILARITY_WEIGHT = 0.5
SOURCE_WEIGHT = 0.3
LENGTH_WEIGHT = 0.2
TARGET_SOURCES = 5
TARGET_CONTEXT_LENGTH = 2000


def extract_source_metadata(rag_context: str) -> list[SourceInfo]:
    """Parse (document name, similarity %) pairs out of a rendered context."""
    if not rag_context or rag_context == NO_CONTEXT_FOUND:
        return []

    return [
        SourceInfo(document_name=match.group(2).strip(), similarity=float(match.group(3)))
        for match in SOURCE_PATTERN.finditer(rag_context)
    ]


def calculate_rag_quality_score(result: RAGInjectionResult) -> int:
    """Score the retrieved context of an injection result.

    - 50% average similarity of the rendered sources
    - 30% source count, saturating at 5
    - 20% context length, saturating at 2000 characters

    Returns 0 when retrieval was not used or found nothing.
    """
    if not result.rag_used or result.sources_count == 0:
        return 0

    sources = extract_source_metadata(result.rag_context)
    if not sources:
        return 0

    return _score(
        [s.similarity for s in sources], result.sources_count, len(result.rag_context)
    )


def calculate_quality_from_results(
    results: list[SearchResult], context_length: int
) -> int:
    """Same score from ranked results; matches the text path for the same context.

    ``context_length`` is the length of the rendered context.
    """
    if not results:
        return 0
    percentages = [float(format_similarity(r.similarity)) for r in results]
    return _score(percentages, len(results), context_length)


def _score(similarity_percentages: list[float], sources_count: int, context_length: int) -> int:
    avg_similarity = sum(similarity_percentages) / len(similarity_percentages)
    source_score = min(sources_count / TARGET_SOURCES, 1) * 100
    length_score = min(context_length / TARGET_CONTEXT_LENGTH, 1) * 100

    score = (
        avg_similarity * SIMILARITY_WEIGHT
        + source_score * SOURCE_WEIGHT
        + length_score * LENGTH_WEIGHT
    )
    # Round half up, clamped to the documented range
    return max(0, min(100, math.floor(score + 0.5)))
