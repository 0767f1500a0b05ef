"""
Processing run CRUD operations.

Start / complete / fail / cancel transitions for ingestion and backfill
runs, plus history lookups per document.

Dependencies: sqlalchemy, chunk_index.boundary.db.models.processing_run_model
System role: Processing history persistence
"""

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.base_crud import BaseCRUD
from chunk_index.boundary.db.models.processing_run_model import ProcessingRunModel, RunKind, RunStatus


class ProcessingRunCRUD(BaseCRUD[ProcessingRunModel]):
    """
    CRUD operations for ProcessingRunModel.

    Extends BaseCRUD with run lifecycle transitions.
    """

    def __init__(self) -> None:
        """Initialize ProcessingRunCRUD with ProcessingRunModel."""
        super().__init__(ProcessingRunModel)

    async def start_run(
        self,
        session: AsyncSession,
        document_id: str,
        kind: RunKind = RunKind.INGESTION,
        processing_version: str | None = None,
        processing_config: dict | None = None,
    ) -> ProcessingRunModel:
        """
        Create a RUNNING run for a document.

        Args:
            session: Async database session
            document_id: Document being processed
            kind: Ingestion or backfill
            processing_version: Chunking version tag
            processing_config: Settings snapshot

        Returns:
            Created ProcessingRunModel
        """
        return await self.create(
            session,
            document_id=document_id,
            kind=kind,
            status=RunStatus.RUNNING,
            processing_version=processing_version,
            processing_config=processing_config or {},
            started_at=datetime.now(timezone.utc),
        )

    async def get_by_document_id(
        self,
        session: AsyncSession,
        document_id: str,
    ) -> Sequence[ProcessingRunModel]:
        """Runs for a document, most recent first."""
        stmt = (
            select(ProcessingRunModel)
            .where(ProcessingRunModel.document_id == document_id)
            .order_by(ProcessingRunModel.created_at.desc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_by_status(self, session: AsyncSession, status: RunStatus) -> Sequence[ProcessingRunModel]:
        stmt = select(ProcessingRunModel).where(ProcessingRunModel.status == status)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def finish(
        self,
        session: AsyncSession,
        id: UUID,
        status: RunStatus,
        **fields,
    ) -> ProcessingRunModel | None:
        """
        Move a run to a terminal status.

        Args:
            session: Async database session
            id: Run UUID
            status: COMPLETED, FAILED or CANCELLED
            **fields: Counts, timing and result payload

        Returns:
            Updated ProcessingRunModel if found, None otherwise
        """
        return await self.update_by_id(
            session,
            id,
            status=status,
            completed_at=datetime.now(timezone.utc),
            **fields,
        )

    async def mark_completed(self, session: AsyncSession, id: UUID, **fields) -> ProcessingRunModel | None:
        return await self.finish(session, id, RunStatus.COMPLETED, **fields)

    async def mark_cancelled(self, session: AsyncSession, id: UUID, **fields) -> ProcessingRunModel | None:
        return await self.finish(session, id, RunStatus.CANCELLED, **fields)

    async def mark_failed(
        self,
        session: AsyncSession,
        id: UUID,
        error_details: dict,
        **fields,
    ) -> ProcessingRunModel | None:
        """
        Mark run as failed with error details.

        Args:
            session: Async database session
            id: Run UUID
            error_details: Error information dict
            **fields: Counts gathered before the failure

        Returns:
            Updated ProcessingRunModel if found, None otherwise
        """
        return await self.finish(session, id, RunStatus.FAILED, result=error_details, **fields)


processing_run_crud = ProcessingRunCRUD()
