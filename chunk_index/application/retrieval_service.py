"""
Retrieval service orchestrator.

Opens a read session per search and delegates ranking to RetrievalEngine.
search_text embeds the query text first (the plain content construction,
with the model configured for the requested embedding type) and can
optionally expand hierarchical context and drop near-duplicates.

Dependencies: sqlalchemy, chunk_index.core.retrieval, chunk_index.core.embeddings
System role: Query entry point for downstream question answering
"""

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chunk_index.application.unit_of_work import unit_of_work
from chunk_index.configs.settings import Settings, get_settings
from chunk_index.core.embeddings.remote import EmbeddingFunction, build_embedding_function, classify_error, coerce_vector
from chunk_index.core.exceptions import ChunkIndexError, QueryValidationError, RetrievalError
from chunk_index.core.retrieval.engine import RetrievalEngine
from chunk_index.models.chunk import Scale
from chunk_index.models.embedding import EmbeddingType
from chunk_index.models.results import SearchResult

logger = logging.getLogger(__name__)


class RetrievalService:
    """Retrieval service orchestrator."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        engine: RetrievalEngine | None = None,
        embedding_function: EmbeddingFunction | None = None,
    ) -> None:
        """
        Initialize retrieval service.

        Args:
            session_factory: Factory for read sessions
            settings: Application settings (cached settings if None)
            engine: Optional retrieval engine
            embedding_function: Query embedder for search_text (Gemini adapter if None)
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.engine = engine or RetrievalEngine(
            self.settings.retrieval,
            expected_dimension=self.settings.embedding.dimension,
        )
        self._embedding_function = embedding_function

    @property
    def embedding_function(self) -> EmbeddingFunction:
        """Lazy-load the remote client, only search_text needs it."""
        if self._embedding_function is None:
            self._embedding_function = build_embedding_function(self.settings.embedding)
        return self._embedding_function

    async def search(
        self,
        query_embedding: Sequence[float] | None,
        embedding_type: EmbeddingType | str = EmbeddingType.CONTENT,
        similarity_threshold: float | None = None,
        max_results: int | None = None,
        quality_weighted: bool | None = None,
        document_id: str | None = None,
        scales: Sequence[Scale] | None = None,
    ) -> list[SearchResult]:
        """See RetrievalEngine.search."""
        async with unit_of_work(self.session_factory, "search") as session:
            return await self.engine.search(
                session,
                query_embedding,
                embedding_type,
                similarity_threshold=similarity_threshold,
                max_results=max_results,
                quality_weighted=quality_weighted,
                document_id=document_id,
                scales=scales,
            )

    async def search_multi_scale(
        self,
        query_embedding: Sequence[float] | None,
        embedding_type: EmbeddingType | str = EmbeddingType.CONTENT,
        scales: Sequence[Scale] | None = None,
        similarity_threshold: float | None = None,
        max_results: int | None = None,
        quality_weighted: bool | None = None,
        document_id: str | None = None,
    ) -> list[SearchResult]:
        async with unit_of_work(self.session_factory, "search_multi_scale") as session:
            return await self.engine.search_multi_scale(
                session,
                query_embedding,
                embedding_type,
                scales=scales,
                similarity_threshold=similarity_threshold,
                max_results=max_results,
                quality_weighted=quality_weighted,
                document_id=document_id,
            )

    async def search_text(
        self,
        query_text: str,
        embedding_type: EmbeddingType | str = EmbeddingType.CONTENT,
        similarity_threshold: float | None = None,
        max_results: int | None = None,
        quality_weighted: bool | None = None,
        document_id: str | None = None,
        scales: Sequence[Scale] | None = None,
        expand_context: bool = False,
        reduce_redundancy: bool = False,
    ) -> list[SearchResult]:
        """
        Embed a text query and search.

        Args:
            query_text: Natural-language query
            embedding_type: Stored vector type to compare against
            similarity_threshold: Minimum raw cosine similarity
            max_results: Result limit
            quality_weighted: Rank by similarity x quality_score
            document_id: Restrict to one document
            scales: Restrict to these scales
            expand_context: Add parents and children of each hit
            reduce_redundancy: Drop near-duplicate results

        Returns:
            list[SearchResult]: Ordered results

        Raises:
            QueryValidationError: Empty query or malformed parameters
            RetrievalError: The query could not be embedded or searched
        """
        if not query_text or not query_text.strip():
            raise QueryValidationError("Query text is required", field="query_text")
        try:
            embedding_type = EmbeddingType(embedding_type)
        except ValueError as e:
            raise QueryValidationError(
                f"Unknown embedding type: {embedding_type}",
                field="embedding_type",
            ) from e

        query_embedding = await self._embed_query(query_text.strip(), embedding_type)
        async with unit_of_work(self.session_factory, "search_text") as session:
            results = await self.engine.search(
                session,
                query_embedding,
                embedding_type,
                similarity_threshold=similarity_threshold,
                max_results=max_results,
                quality_weighted=quality_weighted,
                document_id=document_id,
                scales=scales,
            )
            if expand_context:
                results = await self.engine.expand_context(session, results, max_results)
        if reduce_redundancy:
            results = self.engine.reduce_redundancy(results)
        return results

    async def _embed_query(self, query_text: str, embedding_type: EmbeddingType) -> list[float]:
        model_id = self.settings.embedding.model_for(embedding_type)
        try:
            return coerce_vector(await self.embedding_function.embed(query_text, model_id))
        except Exception as e:
            error = e if isinstance(e, ChunkIndexError) else classify_error(e, model_id)
            logger.error(f"{__name__}:_embed_query - Query embedding failed: {error}")
            raise RetrievalError(
                "Query embedding failed",
                {"model_id": model_id, "error": str(error)},
            ) from e
