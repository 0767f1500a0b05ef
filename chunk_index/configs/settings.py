"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.

Dependencies: All config modules
System role: Central configuration aggregator for the application
"""

from functools import lru_cache

from pydantic import Field

from chunk_index.configs.base import BaseSettings
from chunk_index.configs.chunking import ChunkingSettings
from chunk_index.configs.database import DatabaseSettings
from chunk_index.configs.embedding import EmbeddingSettings
from chunk_index.configs.retrieval import RetrievalSettings


class Settings(BaseSettings):
    """Unified application settings aggregating all config modules."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Environment variables are loaded once and cached.

    Returns:
        Settings: Application settings instance

    Usage:
        from chunk_index.configs import get_settings
        settings = get_settings()
    """
    return Settings()
