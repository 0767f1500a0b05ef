"""
Retrieval configuration settings.

Defaults for similarity threshold, result limits, quality weighting and
the context-expansion and redundancy knobs.

Dependencies: pydantic, pydantic_settings
System role: Retrieval engine defaults
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from chunk_index.configs.base import BaseSettings


class RetrievalSettings(BaseSettings):
    """Retrieval engine configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RETRIEVAL_",
        case_sensitive=False,
        extra="ignore",
    )

    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_results: int = Field(default=10, ge=1, le=100)
    max_results_cap: int = Field(default=100, ge=1, description="Hard ceiling on max_results")
    quality_weighted: bool = Field(default=False)

    context_parent_factor: float = Field(default=0.8, ge=0.0, le=1.0)
    context_child_factor: float = Field(default=0.9, ge=0.0, le=1.0)
    redundancy_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
