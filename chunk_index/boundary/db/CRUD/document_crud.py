"""
Document CRUD operations.

Provides Create, Read, Update, Delete operations for DocumentModel
with status transitions and the single writer for derived statistics.

Dependencies: sqlalchemy, chunk_index.boundary.db.models.document_model
System role: Document persistence operations
"""

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.base_crud import BaseCRUD
from chunk_index.boundary.db.models.document_model import DocumentModel
from chunk_index.models.document import DocumentInput, DocumentStats, DocumentStatus


class DocumentCRUD(BaseCRUD[DocumentModel]):
    """
    CRUD operations for DocumentModel.

    Extends BaseCRUD with status transitions and statistics updates.
    """

    def __init__(self) -> None:
        """Initialize DocumentCRUD with DocumentModel."""
        super().__init__(DocumentModel)

    async def upsert_from_input(
        self,
        session: AsyncSession,
        document: DocumentInput,
        version_id: str | None = None,
    ) -> DocumentModel:
        """
        Create the document row, or refresh title and metadata on re-ingestion.

        Args:
            session: Async database session
            document: Ingestion input
            version_id: Chunking version tag

        Returns:
            DocumentModel in PROCESSING state
        """
        existing = await self.get_by_id(session, document.document_id)
        if existing is None:
            return await self.create(
                session,
                id=document.document_id,
                title=document.title,
                status=DocumentStatus.PROCESSING,
                version_id=version_id,
                doc_metadata=dict(document.metadata),
            )
        existing.title = document.title
        existing.doc_metadata = dict(document.metadata)
        existing.version_id = version_id
        existing.status = DocumentStatus.PROCESSING
        existing.error_message = None
        await session.flush()
        return existing

    async def get_by_status(
        self,
        session: AsyncSession,
        status: DocumentStatus,
        limit: int | None = None,
    ) -> Sequence[DocumentModel]:
        """
        Retrieve documents by processing status.

        Args:
            session: Async database session
            status: Document processing status to filter by
            limit: Maximum number of documents to return

        Returns:
            Sequence of DocumentModels with matching status
        """
        stmt = select(DocumentModel).where(DocumentModel.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def update_status(
        self,
        session: AsyncSession,
        id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> DocumentModel | None:
        """
        Update document processing status.

        Args:
            session: Async database session
            id: Document id
            status: New processing status
            error_message: Error details if status is FAILED

        Returns:
            Updated DocumentModel if found, None otherwise
        """
        update_fields = {"status": status}
        if error_message is not None:
            update_fields["error_message"] = error_message[:2048]
        return await self.update_by_id(session, id, **update_fields)

    async def mark_completed(self, session: AsyncSession, id: str) -> DocumentModel | None:
        return await self.update_status(session, id, DocumentStatus.COMPLETED)

    async def mark_failed(
        self,
        session: AsyncSession,
        id: str,
        error_message: str,
    ) -> DocumentModel | None:
        """
        Mark document as failed with error details.

        Args:
            session: Async database session
            id: Document id
            error_message: Human-readable error description

        Returns:
            Updated DocumentModel if found, None otherwise
        """
        return await self.update_status(session, id, DocumentStatus.FAILED, error_message)

    async def update_statistics(
        self,
        session: AsyncSession,
        id: str,
        stats: DocumentStats,
    ) -> DocumentModel | None:
        """Write recomputed aggregates; the only writer of these columns."""
        return await self.update_by_id(
            session,
            id,
            chunk_count=stats.chunk_count,
            total_tokens=stats.total_tokens,
            average_quality=stats.average_quality,
            average_coherence=stats.average_coherence,
        )


document_crud = DocumentCRUD()
