"""
Hierarchical chunking configuration.

Per-scale token bounds and overlap for the document, section, paragraph
and sentence scales, plus version tags stamped on every emitted chunk.

Environment variables use the CHUNKING_ prefix with "__" as the nested
delimiter, e.g. CHUNKING_PARAGRAPH__MAX_TOKENS=400.

Dependencies: pydantic, pydantic_settings
System role: Chunk size and overlap policy for the hierarchical chunker
"""

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import SettingsConfigDict

from chunk_index.configs.base import BaseSettings
from chunk_index.core.exceptions import ConfigurationError
from chunk_index.models.chunk import Scale


class ScaleSettings(BaseModel):
    """Token bounds and overlap for a single scale."""

    max_tokens: int = Field(gt=0, description="Upper token bound for one chunk")
    min_tokens: int = Field(ge=0, description="Chunks below this are merged forward")
    overlap_tokens: int = Field(
        default=0,
        ge=0,
        description="Trailing tokens copied from the previous sibling",
    )

    @model_validator(mode="after")
    def check_bounds(self) -> "ScaleSettings":
        """Reject inverted bounds and overlaps as large as a whole chunk."""
        if self.min_tokens > self.max_tokens:
            raise ValueError(
                f"min_tokens ({self.min_tokens}) exceeds max_tokens ({self.max_tokens})"
            )
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError(
                f"overlap_tokens ({self.overlap_tokens}) must be below max_tokens ({self.max_tokens})"
            )
        return self


class ChunkingSettings(BaseSettings):
    """Configuration for the boundary detector and hierarchical chunker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHUNKING_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    document: ScaleSettings = Field(
        default=ScaleSettings(max_tokens=8000, min_tokens=4000, overlap_tokens=500),
    )
    section: ScaleSettings = Field(
        default=ScaleSettings(max_tokens=2000, min_tokens=20, overlap_tokens=100),
    )
    paragraph: ScaleSettings = Field(
        default=ScaleSettings(max_tokens=500, min_tokens=20, overlap_tokens=50),
    )
    sentence: ScaleSettings = Field(
        default=ScaleSettings(max_tokens=150, min_tokens=5, overlap_tokens=10),
    )

    emit_sentence_chunks: bool = Field(
        default=False,
        description="Also emit sentence chunks beneath multi-sentence paragraphs",
    )
    version_id: str = Field(default="v1", description="Chunk version tag")
    processing_pipeline: str = Field(
        default="hierarchical-v1",
        description="Pipeline tag recorded on every chunk",
    )

    def for_scale(self, scale: Scale | str) -> ScaleSettings:
        """
        Look up the bounds for a scale.

        Args:
            scale: Scale enum member or its name

        Returns:
            ScaleSettings: Bounds configured for that scale

        Raises:
            ConfigurationError: If the scale name is unknown
        """
        try:
            scale = Scale(scale)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown scale: {scale}",
                setting="scale",
                details={"allowed": [s.value for s in Scale]},
            ) from e
        return getattr(self, scale.value)

    def as_dict(self) -> dict:
        """Serializable snapshot recorded with each processing run."""
        return self.model_dump(
            include={"document", "section", "paragraph", "sentence", "emit_sentence_chunks",
                     "version_id", "processing_pipeline"},
        )
