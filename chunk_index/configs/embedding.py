"""
Multi-scale embedding configuration.

Model selection, vector dimensionality, worker-pool size, retry policy and
input-construction knobs for the four embedding types.

Dependencies: pydantic, pydantic_settings
System role: Embedding generation configuration
"""

from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict

from chunk_index.configs.base import BaseSettings
from chunk_index.models.embedding import EmbeddingType


class EmbeddingSettings(BaseSettings):
    """Configuration for the multi-scale embedding generator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="EMBEDDING_",
        case_sensitive=False,
        extra="ignore",
    )

    model_id: str = Field(
        default="models/gemini-embedding-001",
        description="Default embedding model for every type",
    )
    type_model_ids: dict[str, str] = Field(
        default_factory=dict,
        description="Per-type model overrides, keyed by embedding type name",
    )
    dimension: int = Field(default=3072, gt=0, description="Expected vector length")
    enabled_types: list[EmbeddingType] = Field(
        default_factory=lambda: list(EmbeddingType),
        description="Embedding types generated for each chunk",
    )

    max_concurrency: int = Field(default=8, ge=1, description="Embedding worker count")
    max_retries: int = Field(default=3, ge=1, description="Attempts per call, first included")
    retry_initial_seconds: float = Field(default=1.0, ge=0)
    retry_max_seconds: float = Field(default=20.0, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-call timeout")

    context_window_chars: int = Field(
        default=500,
        ge=0,
        description="Neighbor characters included in contextual inputs",
    )
    domain_keywords: list[str] = Field(
        default_factory=list,
        description="Domain terms surfaced as hints in semantic inputs",
    )
    max_keywords: int = Field(default=8, ge=0)
    cache_size: int = Field(default=1000, ge=0, description="LRU cache entries; 0 disables")

    @field_validator("type_model_ids")
    @classmethod
    def check_type_names(cls, value: dict[str, str]) -> dict[str, str]:
        """Reject overrides for embedding types that do not exist."""
        allowed = {t.value for t in EmbeddingType}
        unknown = set(value) - allowed
        if unknown:
            raise ValueError(f"Unknown embedding types in overrides: {sorted(unknown)}")
        return value

    def model_for(self, embedding_type: EmbeddingType) -> str:
        """Model id used for a given embedding type."""
        return self.type_model_ids.get(embedding_type.value, self.model_id)
