"""
Exact cosine vector index over the chunk_embeddings table.

Loads the stored vectors of one embedding type (optionally filtered by
document and scale) and scores them against the query with numpy. Exposes
the nearest-neighbor contract query(vector, type, threshold, limit) so an
approximate index can replace it without touching the retrieval engine.

Dependencies: numpy, sqlalchemy, chunk_index.boundary.db.CRUD
System role: Read-only similarity lookup for retrieval
"""

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.embedding_crud import EmbeddingCRUD, embedding_crud
from chunk_index.core.retrieval.similarity import cosine_similarities
from chunk_index.models.chunk import Chunk, Scale
from chunk_index.models.embedding import EmbeddingType

logger = logging.getLogger(__name__)


class VectorIndex:
    """Brute-force cosine index backed by the relational store."""

    def __init__(self, embeddings: EmbeddingCRUD = embedding_crud) -> None:
        self.embeddings = embeddings

    async def query(
        self,
        session: AsyncSession,
        vector: Sequence[float],
        embedding_type: EmbeddingType,
        threshold: float,
        limit: int | None = None,
        document_id: str | None = None,
        scales: Sequence[Scale] | None = None,
    ) -> list[tuple[Chunk, float]]:
        """
        Chunks whose stored vector of the given type is similar to the query.

        Args:
            session: Async database session
            vector: Query vector
            embedding_type: Which stored vector to compare against
            threshold: Minimum raw cosine similarity
            limit: Keep at most this many, by similarity (all when None)
            document_id: Restrict to one document
            scales: Restrict to these scales

        Returns:
            list of (Chunk, similarity), highest similarity first
        """
        rows = await self.embeddings.get_candidates(session, embedding_type, document_id, scales)
        # Vectors of a stale dimensionality never match the query.
        rows = [(model, stored) for model, stored in rows if len(stored) == len(vector)]
        if not rows:
            return []

        similarities = cosine_similarities(vector, [stored for _, stored in rows])
        matches = [
            (model.to_chunk(), float(similarity))
            for (model, _), similarity in zip(rows, similarities)
            if similarity >= threshold
        ]
        matches.sort(key=lambda pair: (-pair[1], pair[0].chunk_id))

        logger.debug(
            f"{__name__}:query - type={embedding_type.value} scanned={len(rows)} "
            f"matched={len(matches)} limit={limit}"
        )
        return matches if limit is None else matches[:limit]
