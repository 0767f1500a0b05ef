"""
Hierarchical context expansion and redundancy reduction.

Expansion adds the parent and children of each hit with a damped score
(parent x parent_factor, child x child_factor). A chunk reached several
ways keeps its highest score. Redundancy reduction walks results in rank
order and drops any whose word set overlaps an already kept result by more
than the Jaccard threshold.

Dependencies: chunk_index.core.retrieval.ranking
System role: Post-processing of ranked results
"""

import re
from typing import Mapping, Sequence

from chunk_index.core.retrieval.ranking import sort_results
from chunk_index.models.chunk import Chunk
from chunk_index.models.results import SearchResult

_WORD_RE = re.compile(r"\w+")


def word_set(text: str) -> set[str]:
    return {w.lower() for w in _WORD_RE.findall(text)}


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def merge_context(
    results: Sequence[SearchResult],
    parents: Mapping[str, Chunk],
    children: Mapping[str, Sequence[Chunk]],
    parent_factor: float,
    child_factor: float,
    max_results: int | None = None,
) -> list[SearchResult]:
    """
    Add hierarchical neighbors of each hit and re-rank.

    Args:
        results: Direct hits
        parents: Parent chunk per hit chunk_id (hits without a parent are absent)
        children: Child chunks per hit chunk_id
        parent_factor: Score multiplier for a parent
        child_factor: Score multiplier for a child
        max_results: Truncate after re-ranking when given

    Returns:
        list[SearchResult]: Deduplicated, re-ranked results
    """
    merged: dict[str, SearchResult] = {}

    def offer(candidate: SearchResult) -> None:
        current = merged.get(candidate.chunk.chunk_id)
        if current is None or candidate.score > current.score:
            merged[candidate.chunk.chunk_id] = candidate

    for hit in results:
        offer(hit)
    for hit in results:
        parent = parents.get(hit.chunk.chunk_id)
        if parent is not None:
            offer(
                SearchResult(
                    chunk=parent,
                    similarity=hit.similarity,
                    score=hit.score * parent_factor,
                    via_context=True,
                )
            )
        for child in children.get(hit.chunk.chunk_id, ()):
            offer(
                SearchResult(
                    chunk=child,
                    similarity=hit.similarity,
                    score=hit.score * child_factor,
                    via_context=True,
                )
            )

    ranked = sort_results(merged.values())
    return ranked if max_results is None else ranked[:max_results]


def reduce_redundancy(results: Sequence[SearchResult], threshold: float) -> list[SearchResult]:
    """Keep results in order, dropping near-duplicates of higher-ranked ones."""
    kept: list[SearchResult] = []
    kept_words: list[set[str]] = []
    for result in results:
        words = word_set(result.chunk.content)
        if any(jaccard_similarity(words, other) > threshold for other in kept_words):
            continue
        kept.append(result)
        kept_words.append(words)
    return kept
