"""
Processing run ORM model.

One row per ingestion or backfill pass over a document, recording the
configuration used, counts and timing.

Dependencies: sqlalchemy, chunk_index.boundary.db.base
System role: Processing history for ingestion runs
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chunk_index.boundary.db.base import Base, TimestampMixin, UUIDMixin


class RunStatus(str, enum.Enum):
    """
    Processing run states.

    RUNNING: Pass in progress
    COMPLETED: Pass finished; counts populated
    FAILED: Pass aborted; result holds error details
    CANCELLED: Stopped at a chunk boundary on request
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunKind(str, enum.Enum):
    """INGESTION: full chunk-score-embed pass. BACKFILL: fill missing scores and embeddings."""

    INGESTION = "ingestion"
    BACKFILL = "backfill"


class ProcessingRunModel(Base, UUIDMixin, TimestampMixin):
    """
    Processing run ORM model.

    Attributes:
        document_id: Document processed (cascade delete)
        kind: Ingestion or backfill
        status: RUNNING → COMPLETED / FAILED / CANCELLED
        processing_version: Chunking version tag
        processing_config: Snapshot of chunking settings
        chunks_generated: Chunks produced by the chunker
        embeddings_generated: Vectors stored
        embeddings_failed: (chunk, type) pairs left absent
        processing_time_ms: Wall-clock duration
        quality_score: Document average quality at completion
        error_count / warnings_count: Failure tallies
        result: Summary on success, error details on failure
    """

    __tablename__ = "document_processing_runs"

    document_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[RunKind] = mapped_column(
        Enum(RunKind, native_enum=False),
        nullable=False,
        default=RunKind.INGESTION,
    )
    status: Mapped[RunStatus] = mapped_column(
        Enum(RunStatus, native_enum=False),
        nullable=False,
        default=RunStatus.RUNNING,
    )
    processing_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    processing_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    chunks_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embeddings_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embeddings_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warnings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    result: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
