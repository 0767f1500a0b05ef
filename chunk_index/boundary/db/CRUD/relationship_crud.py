"""
Relationship edge CRUD operations.

Idempotent edge insertion, targeted deletion and the lookups behind the
derived child and sibling views.

Dependencies: sqlalchemy, chunk_index.boundary.db.models.relationship_model
System role: Edge persistence for the relationship manager
"""

from collections import defaultdict
from typing import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.base_crud import BaseCRUD
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.boundary.db.models.relationship_model import ChunkRelationshipModel
from chunk_index.models.relationship import RelationshipType


class RelationshipCRUD(BaseCRUD[ChunkRelationshipModel]):
    """CRUD operations for ChunkRelationshipModel."""

    def __init__(self) -> None:
        """Initialize RelationshipCRUD with ChunkRelationshipModel."""
        super().__init__(ChunkRelationshipModel)

    async def get_edge(
        self,
        session: AsyncSession,
        source_chunk_id: str,
        target_chunk_id: str,
        relationship_type: RelationshipType,
    ) -> ChunkRelationshipModel | None:
        stmt = select(ChunkRelationshipModel).where(
            ChunkRelationshipModel.source_chunk_id == source_chunk_id,
            ChunkRelationshipModel.target_chunk_id == target_chunk_id,
            ChunkRelationshipModel.relationship_type == relationship_type,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_edge(
        self,
        session: AsyncSession,
        source_chunk_id: str,
        target_chunk_id: str,
        relationship_type: RelationshipType,
        strength: float,
    ) -> bool:
        """
        Insert an edge unless the same (source, target, type) already exists.

        Args:
            session: Async database session
            source_chunk_id: Edge source
            target_chunk_id: Edge target
            relationship_type: parent, child or sibling
            strength: Edge weight in [0, 1]

        Returns:
            True if a row was inserted, False if it already existed
        """
        existing = await self.get_edge(session, source_chunk_id, target_chunk_id, relationship_type)
        if existing is not None:
            return False
        session.add(ChunkRelationshipModel(
            source_chunk_id=source_chunk_id,
            target_chunk_id=target_chunk_id,
            relationship_type=relationship_type,
            relationship_strength=strength,
        ))
        await session.flush()
        return True

    async def delete_edge(
        self,
        session: AsyncSession,
        source_chunk_id: str,
        target_chunk_id: str,
        relationship_type: RelationshipType,
    ) -> int:
        stmt = delete(ChunkRelationshipModel).where(
            ChunkRelationshipModel.source_chunk_id == source_chunk_id,
            ChunkRelationshipModel.target_chunk_id == target_chunk_id,
            ChunkRelationshipModel.relationship_type == relationship_type,
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def delete_for_chunk(self, session: AsyncSession, chunk_id: str) -> int:
        """Delete every edge that has ``chunk_id`` as source or target."""
        stmt = delete(ChunkRelationshipModel).where(
            or_(
                ChunkRelationshipModel.source_chunk_id == chunk_id,
                ChunkRelationshipModel.target_chunk_id == chunk_id,
            )
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def delete_by_type_for_document(
        self,
        session: AsyncSession,
        document_id: str,
        relationship_type: RelationshipType,
    ) -> int:
        document_chunks = select(ChunkModel.chunk_id).where(ChunkModel.document_id == document_id)
        stmt = delete(ChunkRelationshipModel).where(
            ChunkRelationshipModel.relationship_type == relationship_type,
            ChunkRelationshipModel.source_chunk_id.in_(document_chunks),
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def get_by_document_id(
        self,
        session: AsyncSession,
        document_id: str,
    ) -> Sequence[ChunkRelationshipModel]:
        """Edges whose source chunk belongs to the document."""
        stmt = (
            select(ChunkRelationshipModel)
            .join(ChunkModel, ChunkModel.chunk_id == ChunkRelationshipModel.source_chunk_id)
            .where(ChunkModel.document_id == document_id)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_targets(
        self,
        session: AsyncSession,
        source_chunk_ids: Sequence[str],
        relationship_type: RelationshipType,
    ) -> dict[str, list[str]]:
        """
        Targets of edges of one type, grouped by source.

        Targets are ordered by their sequence_order so child and sibling
        views come back in reading order.

        Args:
            session: Async database session
            source_chunk_ids: Sources to look up
            relationship_type: Edge type to follow

        Returns:
            dict: source chunk id → ordered target ids (missing sources map to nothing)
        """
        if not source_chunk_ids:
            return {}
        stmt = (
            select(ChunkRelationshipModel.source_chunk_id, ChunkRelationshipModel.target_chunk_id)
            .join(ChunkModel, ChunkModel.chunk_id == ChunkRelationshipModel.target_chunk_id)
            .where(
                ChunkRelationshipModel.relationship_type == relationship_type,
                ChunkRelationshipModel.source_chunk_id.in_(list(source_chunk_ids)),
            )
            .order_by(ChunkModel.sequence_order)
        )
        result = await session.execute(stmt)
        grouped: dict[str, list[str]] = defaultdict(list)
        for source, target in result.all():
            grouped[source].append(target)
        return dict(grouped)


relationship_crud = RelationshipCRUD()
