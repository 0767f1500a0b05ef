"""
Document domain models.

Dependencies: pydantic
System role: Ingestion input and derived document aggregates
"""

import enum

from pydantic import BaseModel, Field


class DocumentStatus(str, enum.Enum):
    """
    Document processing lifecycle states.

    PENDING: Registered, not yet ingested
    PROCESSING: Ingestion running, or cancelled part-way and awaiting a re-run
    COMPLETED: All chunks persisted and statistics recomputed
    FAILED: Ingestion failed; error_message holds details
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentInput(BaseModel):
    """Plain-text document submitted for ingestion."""

    document_id: str = Field(min_length=1, max_length=64)
    title: str | None = Field(default=None)
    content: str = Field(default="")
    metadata: dict = Field(default_factory=dict)


class DocumentStats(BaseModel):
    """Aggregates recomputed from the authoritative chunk set."""

    chunk_count: int = 0
    total_tokens: int = 0
    average_quality: float = 0.0
    average_coherence: float = 0.0
