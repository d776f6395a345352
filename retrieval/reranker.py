"""Re-ranking extension point for search results."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from core.config import settings
from core.models import SearchResult

logger = logging.getLogger(__name__)


class Reranker(ABC):
    """Reorders (and may rescore) results for a query."""

    @abstractmethod
    def rerank(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """Return results in their new order."""


class PassthroughReranker(Reranker):
    """Keeps the input order. Callers must not assume any reordering."""

    def rerank(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        logger.info(
            "Re-ranking not implemented, returning %d results in original order",
            len(results),
        )
        return list(results)


def get_reranker(method: str | None = None) -> Reranker:
    """Reranker for ``method`` (default: settings.rerank_method).

    Only "none" exists today; unknown methods fall back to it.
    """
    if method is None:
        method = settings.rerank_method

    if method != "none":
        logger.warning("Unknown rerank method '%s', using passthrough", method)
    return PassthroughReranker()
