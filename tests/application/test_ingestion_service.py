"""
Test suite for IngestionService.

Runs the full chunk, score, persist and embed pipeline against in-memory
SQLite with a deterministic fake embedding function.

System role: Verification of ingestion, re-runs, cancellation, backfill and deletion
"""

import asyncio
import time

import pytest
from sqlalchemy import update

from chunk_index.application.ingestion_service import IngestionService
from chunk_index.boundary.db.CRUD.chunk_crud import chunk_crud
from chunk_index.boundary.db.CRUD.document_crud import document_crud
from chunk_index.boundary.db.CRUD.embedding_crud import embedding_crud, embedding_quality_crud
from chunk_index.boundary.db.CRUD.processing_run_crud import processing_run_crud
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.boundary.db.models.processing_run_model import RunKind, RunStatus
from chunk_index.core.exceptions import (
    ChunkNotFoundError,
    DocumentNotFoundError,
    DocumentProcessingError,
    StorageError,
    ValidationError,
)
from chunk_index.core.hierarchy.chunker import HierarchicalChunker
from chunk_index.models.document import DocumentInput, DocumentStatus
from chunk_index.models.embedding import EmbeddingType, ValidationStatus
from tests.conftest import TEST_DIMENSION, FakeEmbeddingFunction, axis_vector

FIRST_PARAGRAPH = (
    "The first paragraph explains how hierarchical chunking splits long documents "
    "into nested sections and paragraphs for retrieval systems today."
)
SECOND_PARAGRAPH = (
    "The second paragraph describes how each chunk keeps a parent link so that "
    "readers can navigate between levels easily."
)
REVISED_PARAGRAPH = (
    "The revised second paragraph now explains how embeddings are regenerated "
    "only for chunks whose content actually changed."
)


def _document(document_id: str = "doc-1", second: str = SECOND_PARAGRAPH) -> DocumentInput:
    return DocumentInput(
        document_id=document_id,
        title="Chunking Guide",
        content=f"# Intro\n\n{FIRST_PARAGRAPH}\n\n{second}",
    )


class FailingChunker(HierarchicalChunker):
    """Chunker that rejects one document id."""

    def __init__(self, settings, failing_document_id: str) -> None:
        super().__init__(settings)
        self.failing_document_id = failing_document_id

    def chunk(self, document: DocumentInput):
        if document.document_id == self.failing_document_id:
            raise ValidationError("Document text could not be segmented", field="content")
        return super().chunk(document)


class SlowChunker(HierarchicalChunker):
    """Chunker that holds its thread the way a very large document does."""

    def chunk(self, document: DocumentInput):
        time.sleep(0.4)
        return super().chunk(document)


class StorageFailingService(IngestionService):
    """Service whose ingest fails on one document and is slow on the rest."""

    def __init__(self, *args, failing_document_id: str, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failing_document_id = failing_document_id
        self.finished: list[str] = []

    async def ingest_document(self, document, cancel_event=None):
        if document.document_id == self.failing_document_id:
            raise StorageError("Storage failure during register_document", operation="register_document")
        await asyncio.sleep(0.2)
        self.finished.append(document.document_id)


@pytest.fixture
def service(session_factory, test_settings, fake_embedding_function) -> IngestionService:
    return IngestionService(session_factory, fake_embedding_function, settings=test_settings)


@pytest.fixture
def expected_chunks(test_settings):
    return HierarchicalChunker(test_settings.chunking).chunk(_document())


class TestIngestDocument:
    """End-to-end ingestion of one document."""

    @pytest.mark.asyncio
    async def test_ingest_persists_chunks_embeddings_and_statistics(
        self, service: IngestionService, session_factory, expected_chunks
    ) -> None:
        """Test every chunk is stored with all four embedding types."""
        # Act
        result = await service.ingest_document(_document())

        # Assert
        chunk_count = len(expected_chunks)
        assert result.status == DocumentStatus.COMPLETED
        assert result.chunks_created == chunk_count
        assert result.embeddings_succeeded == chunk_count * len(EmbeddingType)
        assert result.embeddings_failed == 0
        assert result.stats.chunk_count == chunk_count

        async with session_factory() as session:
            document = await document_crud.get_by_id(session, "doc-1")
            stored = await chunk_crud.get_by_document_id(session, "doc-1")
            present = await embedding_crud.get_present_types(session, [c.chunk_id for c in stored])
            runs = await processing_run_crud.get_by_document_id(session, "doc-1")

        assert document.status == DocumentStatus.COMPLETED
        assert document.chunk_count == chunk_count
        assert [c.chunk_id for c in stored] == [c.chunk_id for c in expected_chunks]
        assert all(c.quality_score > 0 for c in stored)
        assert all(present[c.chunk_id] == set(EmbeddingType) for c in stored)
        assert [(r.kind, r.status) for r in runs] == [(RunKind.INGESTION, RunStatus.COMPLETED)]
        assert runs[0].chunks_generated == chunk_count

    @pytest.mark.asyncio
    async def test_contextual_model_uses_its_own_model_id(
        self, service: IngestionService, fake_embedding_function: FakeEmbeddingFunction, expected_chunks
    ) -> None:
        # Act
        await service.ingest_document(_document())

        # Assert
        contextual_calls = [m for _, m in fake_embedding_function.calls if m == "test-contextual-model"]
        assert len(contextual_calls) == len(expected_chunks)

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(
        self, service: IngestionService, fake_embedding_function: FakeEmbeddingFunction, session_factory
    ) -> None:
        """Test unchanged content keeps ids and skips embedding calls."""
        # Arrange
        first_run = await service.ingest_document(_document())
        async with session_factory() as session:
            ids_before = await chunk_crud.get_ids_by_document_id(session, "doc-1")
        calls_before = len(fake_embedding_function.calls)

        # Act
        second_run = await service.ingest_document(_document())

        # Assert
        async with session_factory() as session:
            ids_after = await chunk_crud.get_ids_by_document_id(session, "doc-1")
        assert sorted(ids_after) == sorted(ids_before)
        assert second_run.chunks_created == 0
        assert second_run.chunks_unchanged == first_run.chunks_created
        assert second_run.embeddings_succeeded == 0
        assert len(fake_embedding_function.calls) == calls_before
        assert second_run.stats == first_run.stats

    @pytest.mark.asyncio
    async def test_changed_content_re_embeds_only_changed_chunks(
        self, service: IngestionService, test_settings, expected_chunks
    ) -> None:
        # Arrange
        await service.ingest_document(_document())
        revised = HierarchicalChunker(test_settings.chunking).chunk(_document(second=REVISED_PARAGRAPH))
        before = {c.chunk_id: c.content_hash for c in expected_chunks}
        changed = [c for c in revised if before.get(c.chunk_id) != c.content_hash]

        # Act
        result = await service.ingest_document(_document(second=REVISED_PARAGRAPH))

        # Assert
        assert changed
        assert result.chunks_updated == len(changed)
        assert result.chunks_unchanged == len(revised) - len(changed)
        assert result.embeddings_succeeded == len(changed) * len(EmbeddingType)

    @pytest.mark.asyncio
    async def test_cancelled_before_first_chunk(self, service: IngestionService, session_factory) -> None:
        """Test a set cancel event closes the run and leaves the document PROCESSING."""
        # Arrange
        cancel_event = asyncio.Event()
        cancel_event.set()

        # Act
        result = await service.ingest_document(_document(), cancel_event)

        # Assert
        assert result.cancelled is True
        assert result.chunks_created == 0
        async with session_factory() as session:
            document = await document_crud.get_by_id(session, "doc-1")
            runs = await processing_run_crud.get_by_document_id(session, "doc-1")
        assert document.status == DocumentStatus.PROCESSING
        assert runs[0].status == RunStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_failed_embedding_type_does_not_fail_document(
        self, session_factory, test_settings, expected_chunks
    ) -> None:
        # Arrange
        embedder = FakeEmbeddingFunction(failing_models={"test-contextual-model"})
        service = IngestionService(session_factory, embedder, settings=test_settings)

        # Act
        result = await service.ingest_document(_document())

        # Assert
        chunk_count = len(expected_chunks)
        assert result.status == DocumentStatus.COMPLETED
        assert result.embeddings_failed == chunk_count
        assert result.embeddings_succeeded == chunk_count * (len(EmbeddingType) - 1)
        async with session_factory() as session:
            present = await embedding_crud.get_present_types(session, [c.chunk_id for c in expected_chunks])
        assert all(EmbeddingType.CONTEXTUAL not in types for types in present.values())

    @pytest.mark.asyncio
    async def test_chunking_failure_marks_document_failed(self, session_factory, test_settings) -> None:
        # Arrange
        service = IngestionService(
            session_factory,
            FakeEmbeddingFunction(),
            settings=test_settings,
            chunker=FailingChunker(test_settings.chunking, "doc-1"),
        )

        # Act
        with pytest.raises(DocumentProcessingError) as exc_info:
            await service.ingest_document(_document())

        # Assert
        assert exc_info.value.details["error_type"] == "ValidationError"
        async with session_factory() as session:
            document = await document_crud.get_by_id(session, "doc-1")
            runs = await processing_run_crud.get_by_document_id(session, "doc-1")
        assert document.status == DocumentStatus.FAILED
        assert "could not be segmented" in document.error_message
        assert runs[0].status == RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_chunking_does_not_block_the_event_loop(self, session_factory, test_settings) -> None:
        """Test other coroutines keep running while a document is chunked."""
        # Arrange
        service = IngestionService(
            session_factory,
            FakeEmbeddingFunction(),
            settings=test_settings,
            chunker=SlowChunker(test_settings.chunking),
        )
        ticks: list[float] = []

        async def ticker() -> None:
            while True:
                ticks.append(time.perf_counter())
                await asyncio.sleep(0.01)

        # Act
        ticking = asyncio.create_task(ticker())
        result = await service.ingest_document(_document())
        ticking.cancel()

        # Assert
        assert result.status == DocumentStatus.COMPLETED
        gaps = [b - a for a, b in zip(ticks, ticks[1:])]
        assert max(gaps) < 0.2


class TestIngestDocuments:
    @pytest.mark.asyncio
    async def test_batch_records_failures_and_continues(self, session_factory, test_settings) -> None:
        """Test one failing document does not abort the batch."""
        # Arrange
        service = IngestionService(
            session_factory,
            FakeEmbeddingFunction(),
            settings=test_settings,
            chunker=FailingChunker(test_settings.chunking, "doc-bad"),
        )
        documents = [_document("doc-1"), _document("doc-bad"), _document("doc-2")]

        # Act
        summary = await service.ingest_documents(documents, max_concurrent_documents=1)

        # Assert
        assert summary.total == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert list(summary.errors) == ["doc-bad"]
        assert [r.document_id for r in summary.results] == ["doc-1", "doc-2"]

    @pytest.mark.asyncio
    async def test_storage_error_cancels_documents_in_flight(self, session_factory, test_settings) -> None:
        """Test no document keeps ingesting after a fatal error aborts the batch."""
        # Arrange
        service = StorageFailingService(
            session_factory,
            FakeEmbeddingFunction(),
            settings=test_settings,
            failing_document_id="doc-bad",
        )
        documents = [_document("doc-1"), _document("doc-bad"), _document("doc-2")]

        # Act
        with pytest.raises(StorageError):
            await service.ingest_documents(documents, max_concurrent_documents=3)
        await asyncio.sleep(0.3)

        # Assert
        assert service.finished == []


class TestBackfill:
    @pytest.mark.asyncio
    async def test_backfill_fills_missing_types(self, session_factory, test_settings, expected_chunks) -> None:
        # Arrange
        failing = IngestionService(
            session_factory,
            FakeEmbeddingFunction(failing_models={"test-contextual-model"}),
            settings=test_settings,
        )
        await failing.ingest_document(_document())
        healthy = FakeEmbeddingFunction()
        service = IngestionService(session_factory, healthy, settings=test_settings)

        # Act
        result = await service.backfill_document("doc-1")

        # Assert
        assert result.embeddings_succeeded == len(expected_chunks)
        assert {m for _, m in healthy.calls} == {"test-contextual-model"}
        assert result.chunks_unchanged == len(expected_chunks)
        async with session_factory() as session:
            document = await document_crud.get_by_id(session, "doc-1")
            runs = await processing_run_crud.get_by_document_id(session, "doc-1")
        assert document.status == DocumentStatus.COMPLETED
        assert {r.kind for r in runs} == {RunKind.INGESTION, RunKind.BACKFILL}

    @pytest.mark.asyncio
    async def test_backfill_rescores_stale_hash(
        self, service: IngestionService, session_factory, expected_chunks
    ) -> None:
        """Test a chunk whose stored hash is stale is re-scored and re-embedded."""
        # Arrange
        await service.ingest_document(_document())
        stale_id = expected_chunks[-1].chunk_id
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(ChunkModel).where(ChunkModel.chunk_id == stale_id).values(content_hash="0" * 64)
                )

        # Act
        result = await service.backfill_document("doc-1")

        # Assert
        assert result.chunks_updated == 1
        assert result.embeddings_succeeded == len(EmbeddingType)
        async with session_factory() as session:
            model = await chunk_crud.get_by_id(session, stale_id)
        assert model.content_hash == expected_chunks[-1].content_hash

    @pytest.mark.asyncio
    async def test_backfill_unknown_document(self, service: IngestionService) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.backfill_document("missing")


class TestDeleteDocument:
    @pytest.mark.asyncio
    async def test_delete_removes_everything(
        self, service: IngestionService, session_factory, expected_chunks
    ) -> None:
        # Arrange
        await service.ingest_document(_document())

        # Act
        deleted = await service.delete_document("doc-1")

        # Assert
        assert deleted == len(expected_chunks)
        async with session_factory() as session:
            assert await document_crud.get_by_id(session, "doc-1") is None
            assert await chunk_crud.get_ids_by_document_id(session, "doc-1") == []
            present = await embedding_crud.get_present_types(session, [c.chunk_id for c in expected_chunks])
            runs = await processing_run_crud.get_by_document_id(session, "doc-1")
        assert not any(present.values())
        assert list(runs) == []

    @pytest.mark.asyncio
    async def test_delete_unknown_document(self, service: IngestionService) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document("missing")


class TestImportLegacyEmbedding:
    @pytest.mark.asyncio
    async def test_import_marks_record_migrated(
        self, service: IngestionService, session_factory, expected_chunks
    ) -> None:
        # Arrange
        await service.ingest_document(_document())
        chunk_id = expected_chunks[0].chunk_id

        # Act
        record = await service.import_legacy_embedding(chunk_id, axis_vector(), source="legacy-v1")

        # Assert
        assert record.validation_status == ValidationStatus.MIGRATED
        assert record.quality_score == pytest.approx(0.8)
        async with session_factory() as session:
            vectors = await embedding_crud.get_vectors(session, chunk_id)
            quality = await embedding_quality_crud.get_for_chunk(session, chunk_id)
        assert vectors[EmbeddingType.CONTENT] == axis_vector()
        assert quality[EmbeddingType.CONTENT].validation_status == ValidationStatus.MIGRATED

    @pytest.mark.asyncio
    async def test_import_unknown_chunk(self, service: IngestionService) -> None:
        with pytest.raises(ChunkNotFoundError):
            await service.import_legacy_embedding("missing", axis_vector())

    @pytest.mark.asyncio
    async def test_import_wrong_dimension(
        self, service: IngestionService, expected_chunks
    ) -> None:
        # Arrange
        await service.ingest_document(_document())

        # Act / Assert
        with pytest.raises(ValidationError):
            await service.import_legacy_embedding(expected_chunks[0].chunk_id, [1.0] * (TEST_DIMENSION + 1))
