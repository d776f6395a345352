"""Reciprocal Rank Fusion of independently ranked result lists."""

from __future__ import annotations

from core.models import SearchResult

# Must stay fixed so fused scores are comparable across the system
RRF_K = 60


def reciprocal_rank_fusion(
    *ranked_lists: list[SearchResult], k: int = RRF_K
) -> list[SearchResult]:
    """Merge ranked lists with RRF.

    A result at 1-based rank ``r`` in a list contributes ``1 / (k + r)``;
    contributions for the same ``chunk_id`` are summed. The merged list is
    sorted by combined score, descending, ties keeping first-seen order, and
    each result's ``similarity`` is replaced by its fusion score.
    """
    scores: dict[str, float] = {}
    first_seen: dict[str, SearchResult] = {}

    for results in ranked_lists:
        for rank, result in enumerate(results, start=1):
            scores[result.chunk_id] = scores.get(result.chunk_id, 0.0) + 1.0 / (k + rank)
            first_seen.setdefault(result.chunk_id, result)

    ordered = sorted(scores, key=lambda chunk_id: scores[chunk_id], reverse=True)
    return [
        first_seen[chunk_id].model_copy(update={"similarity": scores[chunk_id]})
        for chunk_id in ordered
    ]
