"""Retrieval engine configuration via Pydantic settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenAI embeddings
    openai_api_key: str = ""
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_cost_per_1k_tokens: float = 0.00002

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "neo4j"
    fulltext_analyzer: str = "english"

    # Chunking
    chunk_strategy: str = "recursive"  # "recursive", "semantic" or "fixed"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_chunk_size: int | None = None

    # Search
    search_limit: int = 10
    min_similarity: float = 0.5
    hybrid_mode: bool = True
    rerank_method: str = "none"

    # Context injection
    rag_limit: int = 5
    rag_min_similarity: float = 0.5

    # Query embedding cache (0 disables)
    embedding_cache_ttl_seconds: float = 0.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
