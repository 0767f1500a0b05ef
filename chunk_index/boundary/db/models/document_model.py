"""
Document ORM model.

One row per ingested document. chunk_count, total_tokens, average_quality
and average_coherence are aggregates recomputed from the chunk table after
each batch of chunk writes; nothing else writes them.

Dependencies: sqlalchemy, chunk_index.boundary.db.base
System role: Document persistence and ingestion status tracking
"""

from sqlalchemy import JSON, Enum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chunk_index.boundary.db.base import Base, TimestampMixin
from chunk_index.models.document import DocumentStatus


class DocumentModel(Base, TimestampMixin):
    """
    Document ORM model tracking ingestion state and chunk aggregates.

    Lifecycle: registered (PENDING) → ingestion (PROCESSING) → COMPLETED or
    FAILED. A cancelled ingestion leaves the row in PROCESSING so a re-run can
    resume against the deterministic chunk ids.

    Attributes:
        id: Caller-supplied document identifier
        title: Optional title used as the root of hierarchical embedding inputs
        status: Current processing state
        chunk_count: Number of chunks (derived)
        total_tokens: Sum of chunk token counts (derived)
        average_quality: Mean quality over scored chunks (derived)
        average_coherence: Mean coherence over scored chunks (derived)
        version_id: Chunking version used for the last ingestion
        error_message: Null unless FAILED
        doc_metadata: Free-form caller metadata
    """

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    title: Mapped[str | None] = mapped_column(String(512), nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False),
        nullable=False,
        default=DocumentStatus.PENDING,
    )

    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_quality: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    average_coherence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    version_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    error_message: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
        doc="Error details if processing failed",
    )

    doc_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
