"""
Per-embedding validation and quality metrics.

Validates a returned vector against the configured dimensionality and
computes norm and sparsity. Wrong-sized, non-finite and all-zero vectors
are rejected; rejected vectors are never stored, only their record is.

Dependencies: numpy
System role: Gatekeeper between the remote model and vector persistence
"""

import math
from typing import Sequence

import numpy as np

from chunk_index.models.embedding import EmbeddingQuality, EmbeddingType, ValidationStatus

SPARSITY_EPSILON = 1e-6
MIGRATED_QUALITY = 0.8


def vector_metrics(vector: Sequence[float]) -> tuple[float, float]:
    """L2 norm and fraction of near-zero components."""
    array = np.asarray(vector, dtype=float)
    if array.size == 0:
        return 0.0, 1.0
    norm = float(np.linalg.norm(array))
    sparsity = float(np.mean(np.abs(array) < SPARSITY_EPSILON))
    return norm, sparsity


def assess_embedding(
    chunk_id: str,
    embedding_type: EmbeddingType,
    vector: Sequence[float],
    expected_dimension: int,
    input_text: str = "",
    ancestor_count: int = 0,
    model_id: str | None = None,
) -> EmbeddingQuality:
    """
    Validate a vector and score it.

    Score: 0.5 base, plus up to 0.3 for density (1 - sparsity), 0.1 when the
    input was longer than 50 characters and 0.1 when the chunk has ancestors.

    Args:
        chunk_id: Owning chunk
        embedding_type: Embedding variant
        vector: Returned vector
        expected_dimension: Configured dimensionality
        input_text: Text that was embedded
        ancestor_count: Number of ancestors of the chunk
        model_id: Model that produced the vector

    Returns:
        EmbeddingQuality: VALID with a score, or REJECTED with score 0 and a reason
    """
    metadata = {"model_id": model_id, "input_chars": len(input_text)}
    dimensionality = len(vector)

    reason = None
    norm, sparsity = (0.0, 1.0)
    if dimensionality != expected_dimension:
        reason = f"dimension {dimensionality} != {expected_dimension}"
    else:
        norm, sparsity = vector_metrics(vector)
        if not math.isfinite(norm):
            reason = "non-finite components"
        elif norm == 0.0:
            reason = "zero vector"

    if reason is not None:
        return EmbeddingQuality(
            chunk_id=chunk_id,
            embedding_type=embedding_type,
            quality_score=0.0,
            dimensionality=dimensionality,
            norm_value=norm if math.isfinite(norm) else None,
            sparsity_ratio=sparsity,
            validation_status=ValidationStatus.REJECTED,
            validation_metadata={**metadata, "reason": reason},
        )

    score = 0.5 + 0.3 * (1.0 - sparsity)
    if len(input_text) > 50:
        score += 0.1
    if ancestor_count > 0:
        score += 0.1
    return EmbeddingQuality(
        chunk_id=chunk_id,
        embedding_type=embedding_type,
        quality_score=round(min(1.0, max(0.0, score)), 4),
        dimensionality=dimensionality,
        norm_value=round(norm, 6),
        sparsity_ratio=round(sparsity, 6),
        validation_status=ValidationStatus.VALID,
        validation_metadata=metadata,
    )


def migrated_record(chunk_id: str, vector: Sequence[float], source: str) -> EmbeddingQuality:
    """Quality record for a legacy vector imported as the content embedding."""
    norm, sparsity = vector_metrics(vector)
    return EmbeddingQuality(
        chunk_id=chunk_id,
        embedding_type=EmbeddingType.CONTENT,
        quality_score=MIGRATED_QUALITY,
        dimensionality=len(vector),
        norm_value=round(norm, 6),
        sparsity_ratio=round(sparsity, 6),
        validation_status=ValidationStatus.MIGRATED,
        validation_metadata={"source": source},
    )
