"""
Chunk domain model.

Represents one retrievable segment of a document at a given scale, with its
position in the hierarchy, lexical statistics, quality scores and the
optional per-type embeddings.

Dependencies: pydantic
System role: Core data structure flowing from chunker to retrieval
"""

import enum
from datetime import datetime

from pydantic import BaseModel, Field

from chunk_index.models.embedding import EmbeddingQuality, EmbeddingType


class Scale(str, enum.Enum):
    """
    Chunk granularity, coarsest first.

    DOCUMENT: Whole document (or a part of one when it exceeds the bound)
    SECTION: Text under a heading
    PARAGRAPH: Blank-line separated block or list item
    SENTENCE: Single sentence or a packed run of sentences
    """

    DOCUMENT = "document"
    SECTION = "section"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"

    @property
    def order(self) -> int:
        """Position in the coarse-to-fine ordering (document = 0)."""
        return _SCALE_ORDER[self]


_SCALE_ORDER = {
    Scale.DOCUMENT: 0,
    Scale.SECTION: 1,
    Scale.PARAGRAPH: 2,
    Scale.SENTENCE: 3,
}


class Chunk(BaseModel):
    """Hierarchical chunk with derived relationship views and embeddings."""

    chunk_id: str = Field(description="Stable identifier derived from node_id")
    document_id: str = Field(description="Owning document")
    node_id: str = Field(description="Unique within the document; encodes scale and position")

    content: str = Field(default="", description="Chunk text including any overlap prefix")
    content_hash: str = Field(default="", description="SHA-256 of content")
    token_count: int = Field(default=0, ge=0)
    character_count: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)

    scale: Scale
    hierarchy_level: int = Field(default=0, ge=0, description="Tree depth, 0 = root")
    sequence_order: int = Field(default=0, ge=0, description="Position within the level")
    hierarchy_path: list[str] = Field(
        default_factory=list,
        description="Ancestor chunk ids from root to self",
    )
    heading: str | None = Field(default=None, description="Own or nearest enclosing heading")
    start_offset: int = Field(default=0, ge=0, description="Start of the span in the source text")
    end_offset: int = Field(default=0, ge=0, description="End of the span in the source text")

    parent_chunk_id: str | None = Field(default=None)
    child_chunk_ids: list[str] = Field(
        default_factory=list,
        description="Derived from child edges, never stored on the chunk",
    )
    sibling_chunk_ids: list[str] = Field(
        default_factory=list,
        description="Derived from sibling edges, never stored on the chunk",
    )

    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    coherence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    chunk_statistics: dict = Field(default_factory=dict)

    embeddings: dict[EmbeddingType, list[float]] = Field(default_factory=dict)
    embedding_quality: dict[EmbeddingType, EmbeddingQuality] = Field(default_factory=dict)

    version_id: str = Field(default="v1")
    processing_pipeline: str = Field(default="hierarchical-v1")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_chunk_id is None
