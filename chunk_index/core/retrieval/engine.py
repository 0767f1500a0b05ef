"""
Retrieval engine.

Ranks chunks by cosine similarity between a query vector and each chunk's
stored vector of one embedding type. Search is read-only and keeps no state
between calls, so any number of callers may search concurrently.

A malformed query (no vector, unknown embedding type, wrong dimension) is a
caller error and raises QueryValidationError before any lookup. No match
above the threshold is a normal, empty result.

Dependencies: sqlalchemy, numpy, chunk_index.boundary.vdb, chunk_index.core.retrieval
System role: Similarity search over the chunk index
"""

import logging
import math
from typing import Sequence

import numpy as np
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.chunk_crud import ChunkCRUD, chunk_crud
from chunk_index.boundary.vdb.vector_index import VectorIndex
from chunk_index.configs.retrieval import RetrievalSettings
from chunk_index.core.exceptions import QueryValidationError, RetrievalError
from chunk_index.core.hierarchy.relationship_manager import RelationshipManager
from chunk_index.core.retrieval.context import merge_context, reduce_redundancy
from chunk_index.core.retrieval.ranking import rank_candidates, sort_results
from chunk_index.models.chunk import Chunk, Scale
from chunk_index.models.embedding import EmbeddingType
from chunk_index.models.results import SearchResult

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Similarity search with quality weighting and hierarchical context."""

    def __init__(
        self,
        settings: RetrievalSettings | None = None,
        expected_dimension: int | None = None,
        vector_index: VectorIndex | None = None,
        chunks: ChunkCRUD = chunk_crud,
        relationships: RelationshipManager | None = None,
    ) -> None:
        """
        Args:
            settings: Retrieval defaults
            expected_dimension: Required query length; unchecked when None
            vector_index: Similarity lookup over stored vectors
            chunks: Chunk CRUD used for context expansion
            relationships: Derived child views used for context expansion
        """
        self.settings = settings or RetrievalSettings()
        self.expected_dimension = expected_dimension
        self.vector_index = vector_index or VectorIndex()
        self.chunks = chunks
        self.relationships = relationships or RelationshipManager(chunks=chunks)

    async def search(
        self,
        session: AsyncSession,
        query_embedding: Sequence[float] | None,
        embedding_type: EmbeddingType | str,
        similarity_threshold: float | None = None,
        max_results: int | None = None,
        quality_weighted: bool | None = None,
        document_id: str | None = None,
        scales: Sequence[Scale] | None = None,
    ) -> list[SearchResult]:
        """
        Rank chunks against a query vector.

        Args:
            session: Async database session
            query_embedding: Query vector
            embedding_type: Stored vector type to compare against
            similarity_threshold: Minimum raw cosine similarity (settings default when None)
            max_results: Result limit, capped at max_results_cap
            quality_weighted: Rank by similarity x quality_score
            document_id: Restrict to one document
            scales: Restrict to these scales

        Returns:
            list[SearchResult]: Ordered results, possibly empty

        Raises:
            QueryValidationError: Malformed query
            RetrievalError: Storage failure during the lookup
        """
        embedding_type = self._validate_type(embedding_type)
        vector = self._validate_vector(query_embedding)
        threshold = self._resolve_threshold(similarity_threshold)
        limit = self._resolve_limit(max_results)
        weighted = self.settings.quality_weighted if quality_weighted is None else quality_weighted

        try:
            candidates = await self.vector_index.query(
                session,
                vector,
                embedding_type,
                threshold,
                limit=None,
                document_id=document_id,
                scales=scales,
            )
        except SQLAlchemyError as e:
            logger.error(f"{__name__}:search - Vector lookup failed: {e}", exc_info=True)
            raise RetrievalError(
                "Vector lookup failed",
                {"embedding_type": embedding_type.value, "error": str(e)},
            ) from e

        results = rank_candidates(candidates, threshold, limit, weighted)
        logger.info(
            f"{__name__}:search - type={embedding_type.value} threshold={threshold} "
            f"weighted={weighted} candidates={len(candidates)} returned={len(results)}"
        )
        return results

    async def search_multi_scale(
        self,
        session: AsyncSession,
        query_embedding: Sequence[float] | None,
        embedding_type: EmbeddingType | str,
        scales: Sequence[Scale] | None = None,
        similarity_threshold: float | None = None,
        max_results: int | None = None,
        quality_weighted: bool | None = None,
        document_id: str | None = None,
    ) -> list[SearchResult]:
        """
        Search each scale with an equal quota, then merge and re-rank.

        Each scale contributes at most ceil(max_results / len(scales)) results,
        so a dense scale cannot crowd out the others before the final cut.
        """
        scales = list(scales or list(Scale))
        limit = self._resolve_limit(max_results)
        quota = math.ceil(limit / len(scales))

        merged: list[SearchResult] = []
        for scale in scales:
            merged.extend(
                await self.search(
                    session,
                    query_embedding,
                    embedding_type,
                    similarity_threshold=similarity_threshold,
                    max_results=quota,
                    quality_weighted=quality_weighted,
                    document_id=document_id,
                    scales=[scale],
                )
            )
        return sort_results(merged)[:limit]

    async def expand_context(
        self,
        session: AsyncSession,
        results: Sequence[SearchResult],
        max_results: int | None = None,
    ) -> list[SearchResult]:
        """
        Add each hit's parent and children with damped scores.

        Args:
            session: Async database session
            results: Ranked direct hits
            max_results: Truncate the merged ranking (capped like search)

        Returns:
            list[SearchResult]: Hits plus context chunks, deduplicated and re-ranked
        """
        if not results:
            return []
        limit = self._resolve_limit(max_results)
        hit_ids = [r.chunk.chunk_id for r in results]
        parent_ids = {r.chunk.parent_chunk_id for r in results if r.chunk.parent_chunk_id}

        child_ids = await self.relationships.child_ids(session, hit_ids)
        wanted = set(parent_ids)
        for ids in child_ids.values():
            wanted.update(ids)
        models = await self.chunks.get_by_ids(session, list(wanted))
        loaded: dict[str, Chunk] = {chunk_id: model.to_chunk() for chunk_id, model in models.items()}

        parents = {
            r.chunk.chunk_id: loaded[r.chunk.parent_chunk_id]
            for r in results
            if r.chunk.parent_chunk_id in loaded
        }
        children = {
            chunk_id: [loaded[c] for c in ids if c in loaded]
            for chunk_id, ids in child_ids.items()
        }
        return merge_context(
            results,
            parents,
            children,
            self.settings.context_parent_factor,
            self.settings.context_child_factor,
            limit,
        )

    def reduce_redundancy(
        self,
        results: Sequence[SearchResult],
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Drop results that near-duplicate a higher-ranked one."""
        if threshold is None:
            threshold = self.settings.redundancy_threshold
        return reduce_redundancy(results, threshold)

    def _validate_type(self, embedding_type: EmbeddingType | str) -> EmbeddingType:
        try:
            return EmbeddingType(embedding_type)
        except ValueError as e:
            raise QueryValidationError(
                f"Unknown embedding type: {embedding_type}",
                field="embedding_type",
                details={"allowed": [t.value for t in EmbeddingType]},
            ) from e

    def _validate_vector(self, query_embedding: Sequence[float] | None) -> list[float]:
        if query_embedding is None or len(query_embedding) == 0:
            raise QueryValidationError("Query embedding is required", field="query_embedding")
        vector = np.asarray(query_embedding, dtype=float)
        if vector.ndim != 1 or not np.all(np.isfinite(vector)):
            raise QueryValidationError(
                "Query embedding must be a flat vector of finite numbers",
                field="query_embedding",
            )
        if self.expected_dimension is not None and len(vector) != self.expected_dimension:
            raise QueryValidationError(
                f"Query embedding has {len(vector)} components, expected {self.expected_dimension}",
                field="query_embedding",
                details={"expected": self.expected_dimension, "actual": len(vector)},
            )
        return vector.tolist()

    def _resolve_threshold(self, similarity_threshold: float | None) -> float:
        if similarity_threshold is None:
            return self.settings.similarity_threshold
        if not -1.0 <= similarity_threshold <= 1.0:
            raise QueryValidationError(
                f"Similarity threshold must be within [-1, 1], got {similarity_threshold}",
                field="similarity_threshold",
            )
        return similarity_threshold

    def _resolve_limit(self, max_results: int | None) -> int:
        if max_results is None:
            return self.settings.max_results
        if max_results < 1:
            raise QueryValidationError(
                f"max_results must be positive, got {max_results}",
                field="max_results",
            )
        return min(max_results, self.settings.max_results_cap)
