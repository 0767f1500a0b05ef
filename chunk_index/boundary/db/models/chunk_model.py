"""
Chunk ORM model.

Stores one chunk per row. parent_chunk_id is the single authoritative
relationship field; child and sibling sets are read from the
chunk_relationships table. Embedding vectors live in chunk_embeddings,
one row per embedding type.

parent_chunk_id deliberately has no foreign key: dangling references must
remain observable so the consistency pass can report them.

Dependencies: sqlalchemy, chunk_index.boundary.db.base
System role: Chunk persistence
"""

from sqlalchemy import JSON, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chunk_index.boundary.db.base import Base, TimestampMixin
from chunk_index.models.chunk import Chunk, Scale


class ChunkModel(Base, TimestampMixin):
    """
    Chunk ORM model.

    Attributes:
        chunk_id: Stable id (UUIDv5 of node_id)
        document_id: Owning document (cascade delete)
        node_id: Unique within the document
        scale: document, section, paragraph or sentence
        hierarchy_level: Tree depth, 0 for roots
        sequence_order: Position among chunks of the same level
        hierarchy_path: Ancestor ids from root to self
        parent_chunk_id: Authoritative parent link, nullable
        content_hash: SHA-256 of content, recomputed on every content change
        quality_score: Lexical quality in [0, 1]
        coherence_score: Lexical coherence in [0, 1]

    Constraints:
        (document_id, node_id): UNIQUE
    """

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "node_id", name="uq_chunks_document_node"),
        Index("ix_chunks_document_level", "document_id", "hierarchy_level", "sequence_order"),
    )

    chunk_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    document_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_id: Mapped[str] = mapped_column(String(255), nullable=False)

    scale: Mapped[Scale] = mapped_column(Enum(Scale, native_enum=False), nullable=False)
    hierarchy_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hierarchy_path: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    parent_chunk_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    heading: Mapped[str | None] = mapped_column(String(512), nullable=True)
    start_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    end_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    character_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quality_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    coherence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    chunk_statistics: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    version_id: Mapped[str] = mapped_column(String(64), nullable=False, default="v1")
    processing_pipeline: Mapped[str] = mapped_column(String(128), nullable=False, default="hierarchical-v1")

    def to_chunk(self) -> Chunk:
        """Domain view of the row; child/sibling ids and embeddings are filled by callers."""
        return Chunk(
            chunk_id=self.chunk_id,
            document_id=self.document_id,
            node_id=self.node_id,
            content=self.content,
            content_hash=self.content_hash,
            token_count=self.token_count,
            character_count=self.character_count,
            word_count=self.word_count,
            scale=self.scale,
            hierarchy_level=self.hierarchy_level,
            sequence_order=self.sequence_order,
            hierarchy_path=list(self.hierarchy_path or []),
            heading=self.heading,
            start_offset=self.start_offset,
            end_offset=self.end_offset,
            parent_chunk_id=self.parent_chunk_id,
            quality_score=self.quality_score,
            coherence_score=self.coherence_score,
            chunk_statistics=dict(self.chunk_statistics or {}),
            version_id=self.version_id,
            processing_pipeline=self.processing_pipeline,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
