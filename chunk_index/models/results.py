"""
Result structures returned by the core components and services.

Quality assessments, consistency findings, ingestion summaries and search
results. Services return these instead of emitting events.

Dependencies: pydantic
System role: Explicit return values for batch and validation operations
"""

import enum

from pydantic import BaseModel, Field

from chunk_index.models.chunk import Chunk
from chunk_index.models.document import DocumentStats, DocumentStatus


class QualityAssessment(BaseModel):
    """Scores and lexical statistics for one chunk's content."""

    quality_score: float = Field(ge=0.0, le=1.0)
    coherence_score: float = Field(ge=0.0, le=1.0)
    statistics: dict = Field(default_factory=dict)


class FindingKind(str, enum.Enum):
    """Categories of hierarchy inconsistencies reported by validation."""

    ORPHANED_PARENT = "orphaned_parent"
    CYCLE = "cycle"
    DEPTH_EXCEEDED = "depth_exceeded"
    MISSING_PARENT_EDGE = "missing_parent_edge"
    MISSING_CHILD_EDGE = "missing_child_edge"
    ASYMMETRIC_EDGE = "asymmetric_edge"
    LEVEL_VIOLATION = "level_violation"
    CROSS_DOCUMENT_PARENT = "cross_document_parent"
    PATH_MISMATCH = "path_mismatch"
    HASH_MISMATCH = "hash_mismatch"
    SCORE_OUT_OF_RANGE = "score_out_of_range"
    DIMENSION_MISMATCH = "dimension_mismatch"


class ConsistencyFinding(BaseModel):
    """One detected inconsistency. Findings are reported, never repaired."""

    kind: FindingKind
    chunk_id: str
    document_id: str | None = None
    related_chunk_id: str | None = None
    message: str
    details: dict = Field(default_factory=dict)


class ConsistencyReport(BaseModel):
    """Structured outcome of a consistency validation pass."""

    document_id: str | None = None
    chunks_checked: int = 0
    edges_checked: int = 0
    findings: list[ConsistencyFinding] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.findings

    def count(self, kind: FindingKind) -> int:
        return sum(1 for f in self.findings if f.kind == kind)


class IngestionResult(BaseModel):
    """Outcome of ingesting one document."""

    document_id: str
    status: DocumentStatus
    chunks_created: int = 0
    chunks_updated: int = 0
    chunks_unchanged: int = 0
    chunks_removed: int = 0
    sibling_edges: int = 0
    embeddings_succeeded: int = 0
    embeddings_failed: int = 0
    stats: DocumentStats = Field(default_factory=DocumentStats)
    processing_time_ms: int = 0
    cancelled: bool = False
    error: str | None = None


class BatchIngestionSummary(BaseModel):
    """Counts across a batch of documents; per-document failures do not abort the batch."""

    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    results: list[IngestionResult] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.cancelled


class SearchResult(BaseModel):
    """A ranked chunk with its raw and ranking scores."""

    chunk: Chunk
    similarity: float = Field(description="Raw cosine similarity")
    score: float = Field(description="Ranking score (similarity, weighted or context-scaled)")
    via_context: bool = Field(
        default=False,
        description="Added by hierarchical context expansion rather than direct match",
    )
