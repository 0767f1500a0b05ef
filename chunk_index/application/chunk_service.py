"""
Chunk service orchestrator.

Single-chunk reads and mutations with explicit invariant maintenance. Every
mutation runs in one transaction: the chunk write, its edge updates and its
stale-vector cleanup commit together. Document statistics are recomputed
afterwards from the stored chunk set.

Dependencies: sqlalchemy, chunk_index.core.hierarchy, chunk_index.boundary.db
System role: Chunk mutation and hierarchy navigation
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chunk_index.application.unit_of_work import unit_of_work
from chunk_index.boundary.db.CRUD.chunk_crud import chunk_crud
from chunk_index.boundary.db.CRUD.document_crud import document_crud
from chunk_index.boundary.db.CRUD.embedding_crud import embedding_crud, embedding_quality_crud
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.configs.settings import Settings, get_settings
from chunk_index.core.exceptions import ChunkNotFoundError, DocumentNotFoundError
from chunk_index.core.hierarchy.consistency import ConsistencyValidator
from chunk_index.core.hierarchy.quality_scorer import QualityScorer
from chunk_index.core.hierarchy.relationship_manager import RelationshipManager
from chunk_index.models.chunk import Chunk
from chunk_index.models.results import ConsistencyReport

logger = logging.getLogger(__name__)


class ChunkService:
    """
    Chunk service orchestrator.

    Wraps RelationshipManager and ChunkCRUD so callers never touch edges or
    derived fields directly.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        scorer: QualityScorer | None = None,
        relationships: RelationshipManager | None = None,
        validator: ConsistencyValidator | None = None,
    ) -> None:
        """
        Initialize chunk service.

        Args:
            session_factory: Factory for per-transaction sessions
            settings: Application settings (cached settings if None)
            scorer: Optional quality scorer
            relationships: Optional relationship manager
            validator: Optional consistency validator
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.scorer = scorer or QualityScorer()
        self.relationships = relationships or RelationshipManager()
        self.validator = validator or ConsistencyValidator(
            expected_dimension=self.settings.embedding.dimension,
        )

    async def get_chunk(self, chunk_id: str, include_embeddings: bool = True) -> Chunk:
        """
        Load a chunk with its derived child/sibling views.

        Args:
            chunk_id: Chunk to load
            include_embeddings: Also attach vectors and quality records

        Returns:
            Chunk: Hydrated domain chunk

        Raises:
            ChunkNotFoundError: Unknown chunk
        """
        async with unit_of_work(self.session_factory, "get_chunk") as session:
            model = await self._require(session, chunk_id)
            return await self._hydrate(session, model, include_embeddings)

    async def get_document_chunks(self, document_id: str) -> list[Chunk]:
        """All chunks of a document in document order, with derived views."""
        async with unit_of_work(self.session_factory, "get_document_chunks") as session:
            if not await document_crud.exists(session, document_id):
                raise DocumentNotFoundError(document_id)
            chunks = [m.to_chunk() for m in await chunk_crud.get_by_document_id(session, document_id)]
            return await self.relationships.hydrate(session, chunks)

    async def set_parent(self, chunk_id: str, parent_chunk_id: str | None) -> Chunk:
        """
        Move a chunk under a new parent (or make it a root).

        Parent/child edges, the moved subtree's levels and paths, and the
        document's sibling edges are all updated in one transaction.

        Raises:
            ChunkNotFoundError: Unknown chunk or parent
            HierarchyError: Self-parenting, cross-document parent or cycle
        """
        async with unit_of_work(self.session_factory, "set_parent") as session:
            model = await self._require(session, chunk_id)
            changed = await self.relationships.set_parent(session, model, parent_chunk_id)
            if changed:
                await self.relationships.rebuild_sibling_edges(session, model.document_id)
            return await self._hydrate(session, model, include_embeddings=False)

    async def replace_content(self, chunk_id: str, content: str) -> Chunk:
        """
        Replace a chunk's text.

        Hash and counts are recomputed, the chunk is re-scored, and its
        embeddings and quality records are dropped until the next backfill.

        Raises:
            ChunkNotFoundError: Unknown chunk
        """
        async with unit_of_work(self.session_factory, "replace_content") as session:
            model = await self._require(session, chunk_id)
            await chunk_crud.replace_content(session, model, content)
            assessment = self.scorer.score(model.content, model.token_count)
            await chunk_crud.set_scores(
                session, model, assessment.quality_score, assessment.coherence_score, assessment.statistics,
            )
            await embedding_crud.delete_for_chunk(session, chunk_id)
            await embedding_quality_crud.delete_for_chunk(session, chunk_id)
            document_id = model.document_id

        await self._refresh_statistics(document_id)
        logger.info(f"{__name__}:replace_content - chunk_id={chunk_id} quality={assessment.quality_score}")
        return await self.get_chunk(chunk_id)

    async def delete_chunk(self, chunk_id: str) -> None:
        """
        Delete a chunk with every edge and vector that references it.

        Children keep their parent_chunk_id; the consistency report lists
        them as orphans until they are re-parented.

        Raises:
            ChunkNotFoundError: Unknown chunk
        """
        async with unit_of_work(self.session_factory, "delete_chunk") as session:
            model = await self._require(session, chunk_id)
            document_id = model.document_id
            await self.relationships.remove_chunk_edges(session, chunk_id)
            await embedding_crud.delete_for_chunk(session, chunk_id)
            await embedding_quality_crud.delete_for_chunk(session, chunk_id)
            await chunk_crud.delete_by_id(session, chunk_id)
            await self.relationships.rebuild_sibling_edges(session, document_id)

        await self._refresh_statistics(document_id)
        logger.info(f"{__name__}:delete_chunk - chunk_id={chunk_id} document_id={document_id}")

    async def get_hierarchy_path(self, chunk_id: str) -> list[Chunk]:
        """
        Ancestors from the root down to the chunk itself.

        Raises:
            ChunkNotFoundError: Unknown chunk or dangling parent reference
            HierarchyError: Cycle, or chain deeper than the maximum depth
        """
        async with unit_of_work(self.session_factory, "get_hierarchy_path") as session:
            model = await self._require(session, chunk_id)
            ancestors = await self.relationships.get_ancestors(session, model)
            return [a.to_chunk() for a in ancestors] + [model.to_chunk()]

    async def validate_document(self, document_id: str) -> ConsistencyReport:
        """Consistency report for one document; never repairs."""
        async with unit_of_work(self.session_factory, "validate_document") as session:
            report = await self.validator.validate_document(session, document_id)
        if not report.is_consistent:
            logger.warning(
                f"{__name__}:validate_document - document_id={document_id} "
                f"findings={len(report.findings)}"
            )
        return report

    async def validate_all(self) -> ConsistencyReport:
        async with unit_of_work(self.session_factory, "validate_all") as session:
            return await self.validator.validate_all(session)

    async def _require(self, session: AsyncSession, chunk_id: str) -> ChunkModel:
        model = await chunk_crud.get_by_id(session, chunk_id)
        if model is None:
            raise ChunkNotFoundError(chunk_id)
        return model

    async def _hydrate(self, session: AsyncSession, model: ChunkModel, include_embeddings: bool) -> Chunk:
        chunk = model.to_chunk()
        await self.relationships.hydrate(session, [chunk])
        if include_embeddings:
            chunk.embeddings = await embedding_crud.get_vectors(session, chunk.chunk_id)
            chunk.embedding_quality = await embedding_quality_crud.get_for_chunk(session, chunk.chunk_id)
        return chunk

    async def _refresh_statistics(self, document_id: str) -> None:
        async with unit_of_work(self.session_factory, "update_statistics") as session:
            stats = await chunk_crud.compute_document_stats(session, document_id)
            await document_crud.update_statistics(session, document_id, stats)
