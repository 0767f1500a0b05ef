"""
Embedding ORM models.

chunk_embeddings holds one vector per (chunk, embedding type); a missing
row means that embedding is absent. embedding_quality_metrics holds the
matching quality record, including rejected attempts that have no vector.

Dependencies: sqlalchemy, chunk_index.boundary.db.base
System role: Vector and embedding-quality persistence
"""

from sqlalchemy import JSON, Enum, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chunk_index.boundary.db.base import Base, TimestampMixin, UUIDMixin
from chunk_index.models.embedding import EmbeddingType, ValidationStatus


class ChunkEmbeddingModel(Base, UUIDMixin, TimestampMixin):
    """
    One embedding vector of one type for one chunk.

    Constraints:
        (chunk_id, embedding_type): UNIQUE
    """

    __tablename__ = "chunk_embeddings"
    __table_args__ = (
        UniqueConstraint("chunk_id", "embedding_type", name="uq_chunk_embeddings_type"),
    )

    chunk_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("chunks.chunk_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    embedding_type: Mapped[EmbeddingType] = mapped_column(
        Enum(EmbeddingType, native_enum=False),
        nullable=False,
        index=True,
    )
    vector: Mapped[list] = mapped_column(JSON, nullable=False)
    dimensionality: Mapped[int] = mapped_column(Integer, nullable=False)
    model_id: Mapped[str | None] = mapped_column(String(255), nullable=True)


class EmbeddingQualityModel(Base, UUIDMixin, TimestampMixin):
    """
    Quality record per (chunk, embedding type).

    Constraints:
        (chunk_id, embedding_type): UNIQUE
    """

    __tablename__ = "embedding_quality_metrics"
    __table_args__ = (
        UniqueConstraint("chunk_id", "embedding_type", name="uq_embedding_quality_type"),
    )

    chunk_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("chunks.chunk_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    embedding_type: Mapped[EmbeddingType] = mapped_column(
        Enum(EmbeddingType, native_enum=False),
        nullable=False,
    )
    quality_score: Mapped[float] = mapped_column(Float, nullable=False)
    dimensionality: Mapped[int] = mapped_column(Integer, nullable=False)
    norm_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    sparsity_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    validation_status: Mapped[ValidationStatus] = mapped_column(
        Enum(ValidationStatus, native_enum=False),
        nullable=False,
        default=ValidationStatus.VALID,
    )
    validation_metadata: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
