"""Embedding client interface and the OpenAI implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from core.config import settings
from core.models import EmbeddingResult, ProviderInfo
from ingestion.chunker import estimate_tokens

if TYPE_CHECKING:
    from openai import OpenAI

logger = logging.getLogger(__name__)


class EmbeddingClient(ABC):
    """Turns text into a fixed-length vector.

    Implementations must be deterministic for identical
    (text, provider, model) within the lifetime of a model version.
    """

    @abstractmethod
    def embed(
        self,
        text: str,
        user_id: str,
        provider: str | None = None,
        model: str | None = None,
    ) -> EmbeddingResult:
        """Embed ``text`` on behalf of ``user_id``."""


class OpenAIEmbedder(EmbeddingClient):
    """Embeddings via the OpenAI embeddings API."""

    provider_name = "openai"

    def __init__(
        self,
        openai_client: OpenAI | None = None,
        model: str | None = None,
        dimensions: int | None = None,
    ):
        if openai_client is None:
            from openai import OpenAI

            self.openai_client = OpenAI(api_key=settings.openai_api_key)
        else:
            self.openai_client = openai_client

        self.model = model or settings.embedding_model
        self.dimensions = dimensions

    def embed(
        self,
        text: str,
        user_id: str,
        provider: str | None = None,
        model: str | None = None,
    ) -> EmbeddingResult:
        if provider and provider != self.provider_name:
            logger.warning(
                "Provider '%s' not available, using '%s'", provider, self.provider_name
            )

        kwargs: dict = {"model": model or self.model, "input": text, "user": user_id}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions

        response = self.openai_client.embeddings.create(**kwargs)
        vector = list(response.data[0].embedding)

        cost = estimate_tokens(text) / 1000 * settings.embedding_cost_per_1k_tokens
        logger.debug(
            "Embedded %d characters with %s (%d dimensions)",
            len(text),
            kwargs["model"],
            len(vector),
        )
        return EmbeddingResult(
            vector=vector,
            provider=ProviderInfo(name=self.provider_name),
            dimensions=len(vector),
            cost=cost,
        )
