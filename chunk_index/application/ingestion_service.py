"""
Ingestion service orchestrator.

Runs the chunk → score → persist → embed → aggregate pipeline for documents.

Steps per document:
1. Register the document (PROCESSING) and open a processing run
2. Chunk and score (CPU only, no I/O)
3. Persist each chunk with its parent/child edges in its own transaction
4. Remove chunks left over from a previous run, rebuild sibling edges
5. Embed the types each chunk is missing, persist vectors and quality records
6. Recompute document statistics from the stored chunks, mark COMPLETED

Re-runs are idempotent: chunk ids derive from node ids, and chunks whose
content hash is unchanged keep their scores and embeddings. Cancellation is
checked between chunks; a cancelled document stays PROCESSING and can be
re-run.

Dependencies: asyncio, sqlalchemy, chunk_index.core, chunk_index.boundary.db
System role: Document ingestion orchestration
"""

import asyncio
import logging
import time
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chunk_index.application.unit_of_work import unit_of_work
from chunk_index.boundary.db.CRUD.chunk_crud import chunk_crud
from chunk_index.boundary.db.CRUD.document_crud import document_crud
from chunk_index.boundary.db.CRUD.embedding_crud import embedding_crud, embedding_quality_crud
from chunk_index.boundary.db.CRUD.processing_run_crud import processing_run_crud
from chunk_index.boundary.db.CRUD.relationship_crud import relationship_crud
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.boundary.db.models.processing_run_model import RunKind
from chunk_index.configs.settings import Settings, get_settings
from chunk_index.core.embeddings.generator import MultiScaleEmbeddingGenerator
from chunk_index.core.embeddings.input_builders import build_contexts
from chunk_index.core.embeddings.quality import migrated_record
from chunk_index.core.embeddings.remote import EmbeddingFunction, build_embedding_function
from chunk_index.core.exceptions import (
    ChunkIndexError,
    ChunkNotFoundError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentProcessingError,
    StorageError,
)
from chunk_index.core.hierarchy.chunker import HierarchicalChunker
from chunk_index.core.hierarchy.quality_scorer import QualityScorer
from chunk_index.core.hierarchy.relationship_manager import RelationshipManager
from chunk_index.core.hierarchy.text_utils import compute_content_hash
from chunk_index.models.chunk import Chunk
from chunk_index.models.document import DocumentInput, DocumentStats, DocumentStatus
from chunk_index.models.embedding import EmbeddingBatchResult, EmbeddingQuality, EmbeddingType
from chunk_index.models.results import BatchIngestionSummary, IngestionResult
from chunk_index.observability.log_utils import log_exception_with_context, log_with_context

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_DOCUMENTS = 4


class _Cancelled(Exception):
    """Internal signal: the cancel event was set between chunks."""


class IngestionService:
    """
    Ingestion service orchestrator.

    Holds no per-document state, so one instance can ingest many documents
    concurrently. Storage and configuration errors abort; any other failure
    marks only the affected document FAILED.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_function: EmbeddingFunction | None = None,
        settings: Settings | None = None,
        chunker: HierarchicalChunker | None = None,
        scorer: QualityScorer | None = None,
        generator: MultiScaleEmbeddingGenerator | None = None,
        relationships: RelationshipManager | None = None,
    ) -> None:
        """
        Initialize ingestion service.

        Args:
            session_factory: Factory for per-transaction sessions
            embedding_function: Remote embedding function (Gemini adapter if None)
            settings: Application settings (cached settings if None)
            chunker: Optional chunker (built from chunking settings if None)
            scorer: Optional quality scorer
            generator: Optional embedding generator (created lazily if None)
            relationships: Optional relationship manager
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.chunker = chunker or HierarchicalChunker(self.settings.chunking)
        self.scorer = scorer or QualityScorer()
        self.relationships = relationships or RelationshipManager()
        self._embedding_function = embedding_function
        self._generator = generator

    @property
    def generator(self) -> MultiScaleEmbeddingGenerator:
        """Lazy-load the generator so the remote client is only built when needed."""
        if self._generator is None:
            embedding_function = self._embedding_function or build_embedding_function(self.settings.embedding)
            self._generator = MultiScaleEmbeddingGenerator(embedding_function, self.settings.embedding)
        return self._generator

    async def ingest_document(
        self,
        document: DocumentInput,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestionResult:
        """
        Ingest one document end to end.

        Args:
            document: Document to ingest
            cancel_event: Checked between chunks and before each embedding call

        Returns:
            IngestionResult: Counts, statistics and final status

        Raises:
            StorageError: Storage failure (fatal)
            ConfigurationError: Invalid configuration (fatal)
            DocumentProcessingError: Any other failure; the document is marked FAILED
        """
        started = time.perf_counter()
        document_id = document.document_id
        chunking = self.settings.chunking
        result = IngestionResult(document_id=document_id, status=DocumentStatus.PROCESSING)

        async with unit_of_work(self.session_factory, "register_document") as session:
            await document_crud.upsert_from_input(session, document, chunking.version_id)
            run = await processing_run_crud.start_run(
                session,
                document_id,
                RunKind.INGESTION,
                processing_version=chunking.version_id,
                processing_config=chunking.as_dict(),
            )
            run_id = run.id

        logger.info(f"{__name__}:ingest_document - START document_id={document_id} run_id={run_id}")

        try:
            chunks = await asyncio.to_thread(self._chunk_and_score, document)
            await self._persist_chunks(document_id, chunks, result, cancel_event)

            batch = await self._embed_missing(chunks, document.title, cancel_event)
            await self._persist_embeddings(batch)
            result.embeddings_succeeded = batch.succeeded
            result.embeddings_failed = batch.failed
            if batch.cancelled:
                raise _Cancelled()

            result.stats = await self._refresh_statistics(document_id)
        except _Cancelled:
            return await self._finish_cancelled(result, run_id, started)
        except (StorageError, ConfigurationError):
            raise
        except ChunkIndexError as e:
            await self._finish_failed(result, run_id, started, e)
            raise DocumentProcessingError(
                f"Ingestion failed: {e.message}",
                document_id=document_id,
                details={"error_type": type(e).__name__, **e.details},
            ) from e

        result.processing_time_ms = _elapsed_ms(started)
        async with unit_of_work(self.session_factory, "complete_document") as session:
            await document_crud.mark_completed(session, document_id)
            await processing_run_crud.mark_completed(
                session,
                run_id,
                chunks_generated=len(chunks),
                embeddings_generated=result.embeddings_succeeded,
                embeddings_failed=result.embeddings_failed,
                warnings_count=result.embeddings_failed,
                processing_time_ms=result.processing_time_ms,
                quality_score=result.stats.average_quality,
                result=result.model_dump(mode="json", exclude={"stats"}),
            )
        result.status = DocumentStatus.COMPLETED

        logger.info(
            f"{__name__}:ingest_document - DONE document_id={document_id} chunks={len(chunks)} "
            f"created={result.chunks_created} updated={result.chunks_updated} "
            f"unchanged={result.chunks_unchanged} removed={result.chunks_removed} "
            f"embeddings={result.embeddings_succeeded}/{result.embeddings_succeeded + result.embeddings_failed} "
            f"time_ms={result.processing_time_ms}"
        )
        return result

    async def ingest_documents(
        self,
        documents: Sequence[DocumentInput],
        max_concurrent_documents: int = DEFAULT_MAX_CONCURRENT_DOCUMENTS,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchIngestionSummary:
        """
        Ingest many documents with bounded concurrency.

        A failed document is recorded in the summary and the rest continue.
        A fatal error cancels every document still in flight before it is
        re-raised.

        Args:
            documents: Documents to ingest
            max_concurrent_documents: Documents processed at once
            cancel_event: Shared cancellation signal

        Returns:
            BatchIngestionSummary: Per-document results and failure messages

        Raises:
            StorageError: Storage failure (aborts the batch)
            ConfigurationError: Invalid configuration (aborts the batch)
        """
        semaphore = asyncio.Semaphore(max(1, max_concurrent_documents))

        async def run_one(document: DocumentInput) -> IngestionResult | DocumentProcessingError:
            async with semaphore:
                try:
                    return await self.ingest_document(document, cancel_event)
                except DocumentProcessingError as e:
                    return e

        tasks = [asyncio.create_task(run_one(document)) for document in documents]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        summary = BatchIngestionSummary()
        for document, outcome in zip(documents, outcomes):
            if isinstance(outcome, DocumentProcessingError):
                summary.failed += 1
                summary.errors[document.document_id] = str(outcome)
            elif outcome.cancelled:
                summary.cancelled += 1
                summary.results.append(outcome)
            else:
                summary.succeeded += 1
                summary.results.append(outcome)

        logger.info(
            f"{__name__}:ingest_documents - total={summary.total} succeeded={summary.succeeded} "
            f"failed={summary.failed} cancelled={summary.cancelled}"
        )
        return summary

    async def backfill_document(
        self,
        document_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestionResult:
        """
        Repair scores and fill missing embeddings without re-chunking.

        Chunks whose stored hash no longer matches their content get their
        content metrics recomputed and stale vectors dropped; those and any
        never-scored chunks are re-scored. Then every missing embedding type
        is generated and document statistics are recomputed.

        Raises:
            DocumentNotFoundError: Unknown document
            StorageError: Storage failure
        """
        started = time.perf_counter()
        async with unit_of_work(self.session_factory, "start_backfill") as session:
            document = await document_crud.get_by_id(session, document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)
            title = document.title
            status = document.status
            run = await processing_run_crud.start_run(
                session,
                document_id,
                RunKind.BACKFILL,
                processing_version=self.settings.chunking.version_id,
            )
            run_id = run.id
            chunk_ids = await chunk_crud.get_ids_by_document_id(session, document_id)

        result = IngestionResult(document_id=document_id, status=status)
        try:
            for chunk_id in chunk_ids:
                if cancel_event is not None and cancel_event.is_set():
                    raise _Cancelled()
                async with unit_of_work(self.session_factory, "backfill_chunk") as session:
                    model = await chunk_crud.get_by_id(session, chunk_id)
                    if model is None:
                        continue
                    if await self._repair_chunk(session, model):
                        result.chunks_updated += 1
                    else:
                        result.chunks_unchanged += 1

            async with unit_of_work(self.session_factory, "load_chunks") as session:
                chunks = [m.to_chunk() for m in await chunk_crud.get_by_document_id(session, document_id)]

            batch = await self._embed_missing(chunks, title, cancel_event)
            await self._persist_embeddings(batch)
            result.embeddings_succeeded = batch.succeeded
            result.embeddings_failed = batch.failed
            if batch.cancelled:
                raise _Cancelled()
            result.stats = await self._refresh_statistics(document_id)
        except _Cancelled:
            return await self._finish_cancelled(result, run_id, started)

        result.processing_time_ms = _elapsed_ms(started)
        async with unit_of_work(self.session_factory, "complete_backfill") as session:
            await processing_run_crud.mark_completed(
                session,
                run_id,
                chunks_generated=0,
                embeddings_generated=result.embeddings_succeeded,
                embeddings_failed=result.embeddings_failed,
                processing_time_ms=result.processing_time_ms,
                quality_score=result.stats.average_quality,
                result=result.model_dump(mode="json", exclude={"stats"}),
            )
        logger.info(
            f"{__name__}:backfill_document - document_id={document_id} rescored={result.chunks_updated} "
            f"embedded={result.embeddings_succeeded} failed={result.embeddings_failed}"
        )
        return result

    async def delete_document(self, document_id: str) -> int:
        """
        Delete a document with its chunks, edges, vectors and runs.

        Returns:
            int: Number of chunks deleted

        Raises:
            DocumentNotFoundError: Unknown document
        """
        async with unit_of_work(self.session_factory, "delete_document") as session:
            if not await document_crud.exists(session, document_id):
                raise DocumentNotFoundError(document_id)
            chunk_ids = await chunk_crud.get_ids_by_document_id(session, document_id)
            for chunk_id in chunk_ids:
                await self._delete_chunk_dependents(session, chunk_id)
            await chunk_crud.delete_by_document_id(session, document_id)
            # Processing runs cascade from the document row.
            await document_crud.delete_by_id(session, document_id)

        logger.info(f"{__name__}:delete_document - document_id={document_id} chunks={len(chunk_ids)}")
        return len(chunk_ids)

    async def import_legacy_embedding(
        self,
        chunk_id: str,
        vector: Sequence[float],
        source: str = "legacy",
    ) -> EmbeddingQuality:
        """
        Store a pre-existing vector as the chunk's content embedding.

        The quality record is tagged MIGRATED.

        Raises:
            ChunkNotFoundError: Unknown chunk
            ValidationError: Vector has the wrong dimension or non-finite values
        """
        record = migrated_record(chunk_id, vector, source)
        async with unit_of_work(self.session_factory, "import_legacy_embedding") as session:
            if not await chunk_crud.exists(session, chunk_id):
                raise ChunkNotFoundError(chunk_id)
            await embedding_crud.upsert_vector(
                session,
                chunk_id,
                EmbeddingType.CONTENT,
                vector,
                self.settings.embedding.dimension,
                model_id=source,
            )
            await embedding_quality_crud.upsert(session, record)
        logger.info(f"{__name__}:import_legacy_embedding - chunk_id={chunk_id} source={source}")
        return record

    def _chunk_and_score(self, document: DocumentInput) -> list[Chunk]:
        """Chunk and score one document; runs in a worker thread."""
        return [self.scorer.apply(chunk) for chunk in self.chunker.chunk(document)]

    async def _persist_chunks(
        self,
        document_id: str,
        chunks: list[Chunk],
        result: IngestionResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        """Write chunks parents-first, one transaction per chunk, then drop stale ones."""
        async with unit_of_work(self.session_factory, "load_existing_chunks") as session:
            existing_ids = set(await chunk_crud.get_ids_by_document_id(session, document_id))

        for chunk in chunks:
            if cancel_event is not None and cancel_event.is_set():
                raise _Cancelled()
            async with unit_of_work(self.session_factory, "persist_chunk") as session:
                model = None
                if chunk.chunk_id in existing_ids:
                    model = await chunk_crud.get_by_id(session, chunk.chunk_id)
                if model is None:
                    model = await chunk_crud.create_from_chunk(session, chunk)
                    await self.relationships.link_parent(session, model)
                    result.chunks_created += 1
                    continue

                if model.content_hash == chunk.content_hash:
                    result.chunks_unchanged += 1
                else:
                    await chunk_crud.replace_content(session, model, chunk.content)
                    await chunk_crud.set_scores(
                        session, model, chunk.quality_score, chunk.coherence_score, chunk.chunk_statistics,
                    )
                    await embedding_crud.delete_for_chunk(session, chunk.chunk_id)
                    await embedding_quality_crud.delete_for_chunk(session, chunk.chunk_id)
                    result.chunks_updated += 1
                await chunk_crud.update_structure(session, model, chunk)
                await self.relationships.set_parent(session, model, chunk.parent_chunk_id)

        stale_ids = existing_ids - {chunk.chunk_id for chunk in chunks}
        async with unit_of_work(self.session_factory, "finalize_relationships") as session:
            for chunk_id in stale_ids:
                await self._delete_chunk_dependents(session, chunk_id)
                await chunk_crud.delete_by_id(session, chunk_id)
            result.chunks_removed = len(stale_ids)
            result.sibling_edges = await self.relationships.rebuild_sibling_edges(session, document_id)

    async def _repair_chunk(self, session: AsyncSession, model: ChunkModel) -> bool:
        """Re-score a chunk whose hash is stale or that was never scored."""
        hash_stale = model.content_hash != compute_content_hash(model.content)
        if not hash_stale and model.quality_score > 0:
            return False
        if hash_stale:
            await chunk_crud.replace_content(session, model, model.content)
            await embedding_crud.delete_for_chunk(session, model.chunk_id)
            await embedding_quality_crud.delete_for_chunk(session, model.chunk_id)
        assessment = self.scorer.score(model.content, model.token_count)
        await chunk_crud.set_scores(
            session, model, assessment.quality_score, assessment.coherence_score, assessment.statistics,
        )
        return True

    async def _embed_missing(
        self,
        chunks: list[Chunk],
        document_title: str | None,
        cancel_event: asyncio.Event | None,
    ) -> EmbeddingBatchResult:
        """Generate only the enabled embedding types each chunk does not have yet."""
        enabled = list(self.settings.embedding.enabled_types)
        async with unit_of_work(self.session_factory, "load_present_embeddings") as session:
            present = await embedding_crud.get_present_types(session, [c.chunk_id for c in chunks])

        missing = {
            chunk.chunk_id: [t for t in enabled if t not in present.get(chunk.chunk_id, set())]
            for chunk in chunks
        }
        contexts = build_contexts(chunks, document_title)
        items = [(chunk, contexts[chunk.chunk_id]) for chunk in chunks if missing[chunk.chunk_id]]
        if not items:
            return EmbeddingBatchResult()
        return await self.generator.embed_batch(items, missing, cancel_event)

    async def _persist_embeddings(self, batch: EmbeddingBatchResult) -> None:
        """Store vectors and quality records, one transaction per chunk."""
        embedding_settings = self.settings.embedding
        for chunk_id, embeddings in batch.chunks.items():
            if not embeddings.vectors and not embeddings.quality:
                continue
            async with unit_of_work(self.session_factory, "persist_embeddings") as session:
                for embedding_type, vector in embeddings.vectors.items():
                    await embedding_crud.upsert_vector(
                        session,
                        chunk_id,
                        embedding_type,
                        vector,
                        embedding_settings.dimension,
                        model_id=embedding_settings.model_for(embedding_type),
                    )
                for record in embeddings.quality.values():
                    await embedding_quality_crud.upsert(session, record)

    async def _refresh_statistics(self, document_id: str) -> DocumentStats:
        async with unit_of_work(self.session_factory, "update_statistics") as session:
            stats = await chunk_crud.compute_document_stats(session, document_id)
            await document_crud.update_statistics(session, document_id, stats)
        return stats

    @staticmethod
    async def _delete_chunk_dependents(session: AsyncSession, chunk_id: str) -> None:
        await relationship_crud.delete_for_chunk(session, chunk_id)
        await embedding_crud.delete_for_chunk(session, chunk_id)
        await embedding_quality_crud.delete_for_chunk(session, chunk_id)

    async def _finish_cancelled(self, result: IngestionResult, run_id: UUID, started: float) -> IngestionResult:
        """Close the run as CANCELLED and leave the document status untouched."""
        result.cancelled = True
        result.processing_time_ms = _elapsed_ms(started)
        async with unit_of_work(self.session_factory, "cancel_run") as session:
            await processing_run_crud.mark_cancelled(
                session,
                run_id,
                embeddings_generated=result.embeddings_succeeded,
                embeddings_failed=result.embeddings_failed,
                processing_time_ms=result.processing_time_ms,
                result=result.model_dump(mode="json", exclude={"stats"}),
            )
        log_with_context(
            logger,
            logging.WARNING,
            f"{__name__}:_finish_cancelled - Processing cancelled",
            document_id=result.document_id,
            created=result.chunks_created,
            updated=result.chunks_updated,
        )
        return result

    async def _finish_failed(
        self,
        result: IngestionResult,
        run_id: UUID,
        started: float,
        error: ChunkIndexError,
    ) -> None:
        log_exception_with_context(
            logger,
            f"{__name__}:_finish_failed - Document ingestion failed",
            error,
            document_id=result.document_id,
        )
        result.status = DocumentStatus.FAILED
        result.error = str(error)
        async with unit_of_work(self.session_factory, "fail_document") as session:
            await document_crud.mark_failed(session, result.document_id, str(error))
            await processing_run_crud.mark_failed(
                session,
                run_id,
                {"error_type": type(error).__name__, "message": error.message, "details": error.details},
                error_count=1,
                processing_time_ms=_elapsed_ms(started),
            )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
