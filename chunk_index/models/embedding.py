"""
Embedding domain models.

The embedding type enum, per-embedding quality records, the neighbor and
hierarchy context used to build embedding inputs, and the per-chunk and
per-batch generation results.

Dependencies: pydantic
System role: Data structures for multi-scale embedding generation
"""

import enum

from pydantic import BaseModel, Field


class EmbeddingType(str, enum.Enum):
    """
    Purpose-specific embedding variants generated for each chunk.

    CONTENT: Chunk text only
    CONTEXTUAL: Chunk text with a window of neighboring chunk text
    HIERARCHICAL: Chunk text annotated with scale and ancestor headings
    SEMANTIC: Chunk text with keyword hints
    """

    CONTENT = "content"
    CONTEXTUAL = "contextual"
    HIERARCHICAL = "hierarchical"
    SEMANTIC = "semantic"


class ValidationStatus(str, enum.Enum):
    """
    Outcome of validating one returned vector.

    VALID: Accepted and stored
    MIGRATED: Imported from a legacy single-vector record
    REJECTED: Discarded (wrong dimension, non-finite or zero vector)
    """

    VALID = "valid"
    MIGRATED = "migrated"
    REJECTED = "rejected"


class EmbeddingQuality(BaseModel):
    """Quality record stored alongside each (chunk, embedding type)."""

    chunk_id: str
    embedding_type: EmbeddingType
    quality_score: float = Field(ge=0.0, le=1.0)
    dimensionality: int = Field(ge=0)
    norm_value: float | None = None
    sparsity_ratio: float | None = Field(default=None, ge=0.0, le=1.0)
    validation_status: ValidationStatus
    validation_metadata: dict = Field(default_factory=dict)


class EmbeddingContext(BaseModel):
    """Neighbor text and hierarchy information used to build embedding inputs."""

    document_title: str | None = None
    previous_content: str | None = None
    next_content: str | None = None
    hierarchy_path: list[str] = Field(default_factory=list)
    ancestor_headings: list[str] = Field(default_factory=list)
    has_children: bool = False


class ChunkEmbeddings(BaseModel):
    """Embeddings produced for one chunk; every type is independently optional."""

    chunk_id: str
    vectors: dict[EmbeddingType, list[float]] = Field(default_factory=dict)
    quality: dict[EmbeddingType, EmbeddingQuality] = Field(default_factory=dict)
    failures: dict[EmbeddingType, str] = Field(
        default_factory=dict,
        description="Reason per embedding type that is absent",
    )

    @property
    def present_types(self) -> list[EmbeddingType]:
        return [t for t in EmbeddingType if t in self.vectors]


class EmbeddingBatchResult(BaseModel):
    """Outcome of embedding a batch of chunks."""

    chunks: dict[str, ChunkEmbeddings] = Field(default_factory=dict)
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cache_hits: int = 0
    cancelled: bool = False
