"""
Declarative base and column mixins for the chunk store tables.

Dependencies: sqlalchemy
System role: Metadata registry used by create_tables
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Registry for every table of the index (documents, chunks, edges, vectors, runs)."""

    pass


class UUIDMixin:
    """
    Surrogate UUID key for rows without a natural id.

    Edges, vectors, quality records and processing runs use it; chunks and
    documents are keyed by their own string ids. Uuid maps to a native UUID
    on PostgreSQL and CHAR(32) on SQLite.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """UTC created_at/updated_at; updated_at is bumped by ORM updates."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )
