"""
Result ranking.

Candidates below the similarity threshold are dropped first, always on raw
cosine similarity. The ranking score is the similarity itself, or the
similarity times the chunk's quality score when quality weighting is on.

Order: score descending; scores equal after rounding to SCORE_PRECISION
places are tie-broken by higher quality, then lower hierarchy level
(coarser chunk first), then chunk_id so the order is total.

Dependencies: chunk_index.models
System role: Deterministic ordering of search results
"""

from typing import Iterable, Sequence

from chunk_index.models.chunk import Chunk
from chunk_index.models.results import SearchResult

SCORE_PRECISION = 6


def ranking_key(result: SearchResult) -> tuple:
    chunk = result.chunk
    return (
        -round(result.score, SCORE_PRECISION),
        -chunk.quality_score,
        chunk.hierarchy_level,
        chunk.chunk_id,
    )


def sort_results(results: Iterable[SearchResult]) -> list[SearchResult]:
    return sorted(results, key=ranking_key)


def score_candidates(
    candidates: Sequence[tuple[Chunk, float]],
    similarity_threshold: float,
    quality_weighted: bool = False,
) -> list[SearchResult]:
    """
    Turn (chunk, similarity) pairs into scored results.

    Args:
        candidates: Chunks with their raw cosine similarity
        similarity_threshold: Minimum raw similarity to keep
        quality_weighted: Multiply similarity by quality_score for the ranking score

    Returns:
        list[SearchResult]: Unordered results passing the threshold
    """
    results = []
    for chunk, similarity in candidates:
        if similarity < similarity_threshold:
            continue
        score = similarity * chunk.quality_score if quality_weighted else similarity
        results.append(SearchResult(chunk=chunk, similarity=similarity, score=score))
    return results


def rank_candidates(
    candidates: Sequence[tuple[Chunk, float]],
    similarity_threshold: float,
    max_results: int,
    quality_weighted: bool = False,
) -> list[SearchResult]:
    """Threshold, score, order and truncate candidates."""
    scored = score_candidates(candidates, similarity_threshold, quality_weighted)
    return sort_results(scored)[:max_results]
