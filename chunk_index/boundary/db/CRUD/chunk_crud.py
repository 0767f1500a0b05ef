"""
Chunk CRUD operations.

Adds document-scoped queries, aggregate computation and the explicit
content and score writers. Every content write recomputes content_hash
and counts; every score write is range-checked before it reaches the row.

Dependencies: sqlalchemy, chunk_index.boundary.db.models.chunk_model
System role: Chunk persistence operations
"""

from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.base_crud import BaseCRUD
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.core.exceptions import ValidationError
from chunk_index.core.hierarchy.text_utils import content_metrics
from chunk_index.models.chunk import Chunk
from chunk_index.models.document import DocumentStats


def validate_score(value: float, field: str) -> float:
    """
    Reject scores outside [0, 1].

    Raises:
        ValidationError: If the value is out of range or not a number
    """
    if value is None or not (0.0 <= value <= 1.0):
        raise ValidationError(f"{field} must be within [0, 1], got {value}", field=field)
    return value


class ChunkCRUD(BaseCRUD[ChunkModel]):
    """
    CRUD operations for ChunkModel.

    Extends BaseCRUD with document-scoped lookups and invariant-preserving
    writers for content and scores.
    """

    def __init__(self) -> None:
        """Initialize ChunkCRUD with ChunkModel."""
        super().__init__(ChunkModel)

    async def create_from_chunk(self, session: AsyncSession, chunk: Chunk) -> ChunkModel:
        """
        Insert a chunk row from a domain chunk.

        Derived content fields are recomputed rather than copied.

        Args:
            session: Async database session
            chunk: Domain chunk (relationship views are ignored)

        Returns:
            Created ChunkModel

        Raises:
            ValidationError: If a score is outside [0, 1]
        """
        validate_score(chunk.quality_score, "quality_score")
        validate_score(chunk.coherence_score, "coherence_score")
        return await self.create(
            session,
            chunk_id=chunk.chunk_id,
            document_id=chunk.document_id,
            node_id=chunk.node_id,
            scale=chunk.scale,
            hierarchy_level=chunk.hierarchy_level,
            sequence_order=chunk.sequence_order,
            hierarchy_path=list(chunk.hierarchy_path),
            parent_chunk_id=chunk.parent_chunk_id,
            heading=chunk.heading,
            start_offset=chunk.start_offset,
            end_offset=chunk.end_offset,
            content=chunk.content,
            **content_metrics(chunk.content),
            quality_score=chunk.quality_score,
            coherence_score=chunk.coherence_score,
            chunk_statistics=dict(chunk.chunk_statistics),
            version_id=chunk.version_id,
            processing_pipeline=chunk.processing_pipeline,
        )

    async def update_structure(self, session: AsyncSession, model: ChunkModel, chunk: Chunk) -> ChunkModel:
        """
        Copy positional fields from a re-chunked domain chunk.

        parent_chunk_id is not touched here; parent changes go through the
        relationship manager so edges stay in step.
        """
        model.scale = chunk.scale
        model.hierarchy_level = chunk.hierarchy_level
        model.sequence_order = chunk.sequence_order
        model.hierarchy_path = list(chunk.hierarchy_path)
        model.heading = chunk.heading
        model.start_offset = chunk.start_offset
        model.end_offset = chunk.end_offset
        model.version_id = chunk.version_id
        model.processing_pipeline = chunk.processing_pipeline
        await session.flush()
        return model

    async def replace_content(self, session: AsyncSession, model: ChunkModel, content: str) -> ChunkModel:
        """
        Replace chunk content and recompute every derived content field.

        Scores are reset to 0 until the chunk is re-scored.

        Args:
            session: Async database session
            model: Chunk row to modify
            content: New text

        Returns:
            The updated ChunkModel
        """
        model.content = content
        for key, value in content_metrics(content).items():
            setattr(model, key, value)
        model.quality_score = 0.0
        model.coherence_score = 0.0
        await session.flush()
        return model

    async def set_scores(
        self,
        session: AsyncSession,
        model: ChunkModel,
        quality_score: float,
        coherence_score: float,
        statistics: dict | None = None,
    ) -> ChunkModel:
        """
        Store quality and coherence scores after range validation.

        Raises:
            ValidationError: If either score is outside [0, 1]
        """
        model.quality_score = validate_score(quality_score, "quality_score")
        model.coherence_score = validate_score(coherence_score, "coherence_score")
        if statistics is not None:
            model.chunk_statistics = {**(model.chunk_statistics or {}), **statistics}
        await session.flush()
        return model

    async def get_by_document_id(self, session: AsyncSession, document_id: str) -> Sequence[ChunkModel]:
        """
        Retrieve all chunks of a document in document order.

        Args:
            session: Async database session
            document_id: Owning document id

        Returns:
            ChunkModels ordered by start offset, coarser first on ties
        """
        stmt = (
            select(ChunkModel)
            .where(ChunkModel.document_id == document_id)
            .order_by(ChunkModel.start_offset, ChunkModel.hierarchy_level, ChunkModel.sequence_order)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_by_parent_id(self, session: AsyncSession, parent_chunk_id: str) -> Sequence[ChunkModel]:
        """Chunks whose authoritative parent is ``parent_chunk_id``, in sequence order."""
        stmt = (
            select(ChunkModel)
            .where(ChunkModel.parent_chunk_id == parent_chunk_id)
            .order_by(ChunkModel.sequence_order)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_ids_by_document_id(self, session: AsyncSession, document_id: str) -> list[str]:
        stmt = select(ChunkModel.chunk_id).where(ChunkModel.document_id == document_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_document_ids(self, session: AsyncSession) -> list[str]:
        stmt = select(ChunkModel.document_id).distinct()
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def compute_document_stats(self, session: AsyncSession, document_id: str) -> DocumentStats:
        """
        Aggregate statistics from the authoritative chunk set.

        Averages only cover chunks that have been scored (score > 0).

        Args:
            session: Async database session
            document_id: Document to aggregate

        Returns:
            DocumentStats with rounded averages
        """
        totals = await session.execute(
            select(func.count(ChunkModel.chunk_id), func.coalesce(func.sum(ChunkModel.token_count), 0))
            .where(ChunkModel.document_id == document_id)
        )
        chunk_count, total_tokens = totals.one()

        quality = await session.execute(
            select(func.avg(ChunkModel.quality_score))
            .where(ChunkModel.document_id == document_id, ChunkModel.quality_score > 0)
        )
        coherence = await session.execute(
            select(func.avg(ChunkModel.coherence_score))
            .where(ChunkModel.document_id == document_id, ChunkModel.coherence_score > 0)
        )
        return DocumentStats(
            chunk_count=int(chunk_count or 0),
            total_tokens=int(total_tokens or 0),
            average_quality=round(float(quality.scalar() or 0.0), 4),
            average_coherence=round(float(coherence.scalar() or 0.0), 4),
        )

    async def delete_by_document_id(self, session: AsyncSession, document_id: str) -> int:
        stmt = delete(ChunkModel).where(ChunkModel.document_id == document_id)
        result = await session.execute(stmt)
        return result.rowcount


chunk_crud = ChunkCRUD()
