"""
Chunk relationship ORM model.

Directed, typed, weighted edges between chunks. Maintained explicitly by
the relationship manager; rows also cascade away with either endpoint.

Dependencies: sqlalchemy, chunk_index.boundary.db.base
System role: Edge table behind child and sibling views
"""

from sqlalchemy import Enum, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chunk_index.boundary.db.base import Base, TimestampMixin, UUIDMixin
from chunk_index.models.relationship import RelationshipType


class ChunkRelationshipModel(Base, UUIDMixin, TimestampMixin):
    """
    Relationship edge ORM model.

    Constraints:
        (source_chunk_id, target_chunk_id, relationship_type): UNIQUE
        source/target: Foreign keys ON DELETE CASCADE to chunks.chunk_id
    """

    __tablename__ = "chunk_relationships"
    __table_args__ = (
        UniqueConstraint(
            "source_chunk_id", "target_chunk_id", "relationship_type",
            name="uq_chunk_relationships_edge",
        ),
    )

    source_chunk_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("chunks.chunk_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_chunk_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("chunks.chunk_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    relationship_type: Mapped[RelationshipType] = mapped_column(
        Enum(RelationshipType, native_enum=False),
        nullable=False,
    )
    relationship_strength: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
