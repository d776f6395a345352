"""Exception hierarchy for chunking, search and analytics failures."""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for every error raised by the retrieval engine."""


class InvalidChunkOptions(RetrievalError, ValueError):
    """Chunking options violate the size/overlap constraints."""


class SearchFailed(RetrievalError):
    """A search could not be completed; no partial results are returned."""


class EmbeddingFailure(SearchFailed):
    """The embedding provider was unreachable or rejected the input."""


class StoreQueryFailure(SearchFailed):
    """The chunk store was unavailable or rejected the query."""


class AnalyticsFailure(RetrievalError):
    """An analytics sink could not record a usage event."""
