"""
Embedding and embedding-quality CRUD operations.

Vectors are dimension-checked here, at the last step before persistence;
a wrong-sized or non-finite vector never reaches the table.

Dependencies: sqlalchemy, numpy, chunk_index.boundary.db.models.embedding_model
System role: Vector and quality record persistence
"""

from collections import defaultdict
from typing import Sequence

import numpy as np
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.base_crud import BaseCRUD
from chunk_index.boundary.db.CRUD.chunk_crud import validate_score
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.boundary.db.models.embedding_model import ChunkEmbeddingModel, EmbeddingQualityModel
from chunk_index.core.exceptions import ValidationError
from chunk_index.models.chunk import Scale
from chunk_index.models.embedding import EmbeddingQuality, EmbeddingType


class EmbeddingCRUD(BaseCRUD[ChunkEmbeddingModel]):
    """CRUD operations for ChunkEmbeddingModel."""

    def __init__(self) -> None:
        """Initialize EmbeddingCRUD with ChunkEmbeddingModel."""
        super().__init__(ChunkEmbeddingModel)

    async def upsert_vector(
        self,
        session: AsyncSession,
        chunk_id: str,
        embedding_type: EmbeddingType,
        vector: Sequence[float],
        expected_dimension: int,
        model_id: str | None = None,
    ) -> ChunkEmbeddingModel:
        """
        Store or replace the vector of one type for a chunk.

        Args:
            session: Async database session
            chunk_id: Owning chunk
            embedding_type: Embedding variant
            vector: Vector components
            expected_dimension: Configured dimensionality
            model_id: Model that produced the vector

        Returns:
            The stored ChunkEmbeddingModel

        Raises:
            ValidationError: If the vector length differs from expected_dimension
                or any component is not finite
        """
        if len(vector) != expected_dimension:
            raise ValidationError(
                f"Vector has {len(vector)} components, expected {expected_dimension}",
                field="vector",
                details={"chunk_id": chunk_id, "embedding_type": embedding_type.value},
            )
        if not np.all(np.isfinite(np.asarray(vector, dtype=float))):
            raise ValidationError(
                "Vector contains non-finite components",
                field="vector",
                details={"chunk_id": chunk_id, "embedding_type": embedding_type.value},
            )

        values = [float(v) for v in vector]
        existing = await self._get(session, chunk_id, embedding_type)
        if existing is not None:
            existing.vector = values
            existing.dimensionality = len(values)
            existing.model_id = model_id
            await session.flush()
            return existing
        return await self.create(
            session,
            chunk_id=chunk_id,
            embedding_type=embedding_type,
            vector=values,
            dimensionality=len(values),
            model_id=model_id,
        )

    async def _get(
        self,
        session: AsyncSession,
        chunk_id: str,
        embedding_type: EmbeddingType,
    ) -> ChunkEmbeddingModel | None:
        stmt = select(ChunkEmbeddingModel).where(
            ChunkEmbeddingModel.chunk_id == chunk_id,
            ChunkEmbeddingModel.embedding_type == embedding_type,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_vectors(self, session: AsyncSession, chunk_id: str) -> dict[EmbeddingType, list[float]]:
        stmt = select(ChunkEmbeddingModel).where(ChunkEmbeddingModel.chunk_id == chunk_id)
        result = await session.execute(stmt)
        return {row.embedding_type: list(row.vector) for row in result.scalars().all()}

    async def get_present_types(
        self,
        session: AsyncSession,
        chunk_ids: Sequence[str],
    ) -> dict[str, set[EmbeddingType]]:
        """Embedding types stored per chunk, for finding gaps to backfill."""
        if not chunk_ids:
            return {}
        stmt = select(ChunkEmbeddingModel.chunk_id, ChunkEmbeddingModel.embedding_type).where(
            ChunkEmbeddingModel.chunk_id.in_(list(chunk_ids))
        )
        result = await session.execute(stmt)
        present: dict[str, set[EmbeddingType]] = defaultdict(set)
        for chunk_id, embedding_type in result.all():
            present[chunk_id].add(embedding_type)
        return dict(present)

    async def get_candidates(
        self,
        session: AsyncSession,
        embedding_type: EmbeddingType,
        document_id: str | None = None,
        scales: Sequence[Scale] | None = None,
    ) -> list[tuple[ChunkModel, list[float]]]:
        """
        Chunks holding a vector of the requested type, with that vector.

        Args:
            session: Async database session
            embedding_type: Embedding variant to load
            document_id: Restrict to one document
            scales: Restrict to these scales

        Returns:
            list of (ChunkModel, vector) pairs
        """
        stmt = (
            select(ChunkModel, ChunkEmbeddingModel.vector)
            .join(ChunkEmbeddingModel, ChunkEmbeddingModel.chunk_id == ChunkModel.chunk_id)
            .where(ChunkEmbeddingModel.embedding_type == embedding_type)
        )
        if document_id is not None:
            stmt = stmt.where(ChunkModel.document_id == document_id)
        if scales:
            stmt = stmt.where(ChunkModel.scale.in_(list(scales)))
        result = await session.execute(stmt)
        return [(chunk, list(vector)) for chunk, vector in result.all()]

    async def get_by_chunk_ids(
        self,
        session: AsyncSession,
        chunk_ids: Sequence[str],
    ) -> Sequence[ChunkEmbeddingModel]:
        if not chunk_ids:
            return []
        stmt = select(ChunkEmbeddingModel).where(ChunkEmbeddingModel.chunk_id.in_(list(chunk_ids)))
        result = await session.execute(stmt)
        return result.scalars().all()

    async def delete_for_chunk(
        self,
        session: AsyncSession,
        chunk_id: str,
        embedding_types: Sequence[EmbeddingType] | None = None,
    ) -> int:
        stmt = delete(ChunkEmbeddingModel).where(ChunkEmbeddingModel.chunk_id == chunk_id)
        if embedding_types:
            stmt = stmt.where(ChunkEmbeddingModel.embedding_type.in_(list(embedding_types)))
        result = await session.execute(stmt)
        return result.rowcount


class EmbeddingQualityCRUD(BaseCRUD[EmbeddingQualityModel]):
    """CRUD operations for EmbeddingQualityModel."""

    def __init__(self) -> None:
        """Initialize EmbeddingQualityCRUD with EmbeddingQualityModel."""
        super().__init__(EmbeddingQualityModel)

    async def upsert(self, session: AsyncSession, record: EmbeddingQuality) -> EmbeddingQualityModel:
        """
        Store or replace the quality record for one (chunk, embedding type).

        Raises:
            ValidationError: If the quality score is outside [0, 1]
        """
        validate_score(record.quality_score, "embedding_quality_score")
        stmt = select(EmbeddingQualityModel).where(
            EmbeddingQualityModel.chunk_id == record.chunk_id,
            EmbeddingQualityModel.embedding_type == record.embedding_type,
        )
        existing = (await session.execute(stmt)).scalar_one_or_none()
        fields = {
            "quality_score": record.quality_score,
            "dimensionality": record.dimensionality,
            "norm_value": record.norm_value,
            "sparsity_ratio": record.sparsity_ratio,
            "validation_status": record.validation_status,
            "validation_metadata": dict(record.validation_metadata),
        }
        if existing is None:
            return await self.create(
                session,
                chunk_id=record.chunk_id,
                embedding_type=record.embedding_type,
                **fields,
            )
        for key, value in fields.items():
            setattr(existing, key, value)
        await session.flush()
        return existing

    async def get_for_chunk(self, session: AsyncSession, chunk_id: str) -> dict[EmbeddingType, EmbeddingQuality]:
        stmt = select(EmbeddingQualityModel).where(EmbeddingQualityModel.chunk_id == chunk_id)
        result = await session.execute(stmt)
        return {
            row.embedding_type: EmbeddingQuality(
                chunk_id=row.chunk_id,
                embedding_type=row.embedding_type,
                quality_score=row.quality_score,
                dimensionality=row.dimensionality,
                norm_value=row.norm_value,
                sparsity_ratio=row.sparsity_ratio,
                validation_status=row.validation_status,
                validation_metadata=row.validation_metadata or {},
            )
            for row in result.scalars().all()
        }

    async def delete_for_chunk(
        self,
        session: AsyncSession,
        chunk_id: str,
        embedding_types: Sequence[EmbeddingType] | None = None,
    ) -> int:
        stmt = delete(EmbeddingQualityModel).where(EmbeddingQualityModel.chunk_id == chunk_id)
        if embedding_types:
            stmt = stmt.where(EmbeddingQualityModel.embedding_type.in_(list(embedding_types)))
        result = await session.execute(stmt)
        return result.rowcount


embedding_crud = EmbeddingCRUD()
embedding_quality_crud = EmbeddingQualityCRUD()
