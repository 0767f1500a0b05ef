"""
Multi-scale embedding generator.

Requests up to four embeddings per chunk (content, contextual, hierarchical,
semantic), each built from a different input. Calls go through a fixed pool
of worker tasks fed by a job queue; results come back on a result queue.
Each (chunk, type) job is independent: a failure, timeout or rejected vector
leaves only that type absent and is logged, never raised.

Transient errors are retried with exponential backoff and jitter (tenacity).
A wrong-sized vector is a permanent failure and is not retried.

Dependencies: asyncio, tenacity, numpy (via quality), chunk_index.core.embeddings
System role: Dominant-latency stage of ingestion
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from chunk_index.configs.embedding import EmbeddingSettings
from chunk_index.core.embeddings.cache import EmbeddingCache, cache_key
from chunk_index.core.embeddings.input_builders import EmbeddingInputBuilder
from chunk_index.core.embeddings.quality import assess_embedding
from chunk_index.core.embeddings.remote import EmbeddingFunction, classify_error, coerce_vector
from chunk_index.core.exceptions import (
    ChunkIndexError,
    EmbeddingDimensionError,
    EmbeddingError,
    TransientEmbeddingError,
)
from chunk_index.models.chunk import Chunk
from chunk_index.models.embedding import (
    ChunkEmbeddings,
    EmbeddingBatchResult,
    EmbeddingContext,
    EmbeddingQuality,
    EmbeddingType,
    ValidationStatus,
)
from chunk_index.observability.log_utils import log_exception_with_context, log_with_context

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"
EMPTY_INPUT_REASON = "empty input"


@dataclass
class _Job:
    chunk: Chunk
    context: EmbeddingContext
    embedding_type: EmbeddingType
    text: str


@dataclass
class _Outcome:
    chunk_id: str
    embedding_type: EmbeddingType
    vector: list[float] | None = None
    quality: EmbeddingQuality | None = None
    error: str | None = None
    cached: bool = False
    cancelled: bool = False


class MultiScaleEmbeddingGenerator:
    """Generates per-type embeddings for chunks with bounded concurrency."""

    def __init__(
        self,
        embedding_function: EmbeddingFunction,
        settings: EmbeddingSettings | None = None,
        input_builder: EmbeddingInputBuilder | None = None,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self.embedding_function = embedding_function
        self.settings = settings or EmbeddingSettings()
        self.input_builder = input_builder or EmbeddingInputBuilder(
            context_window_chars=self.settings.context_window_chars,
            domain_keywords=self.settings.domain_keywords,
            max_keywords=self.settings.max_keywords,
        )
        self.cache = cache if cache is not None else EmbeddingCache(self.settings.cache_size)

    async def embed(
        self,
        chunk: Chunk,
        context: EmbeddingContext,
        embedding_types: Sequence[EmbeddingType] | None = None,
    ) -> ChunkEmbeddings:
        """
        Embed a single chunk.

        Args:
            chunk: Chunk to embed
            context: Neighbor text and hierarchy for the chunk
            embedding_types: Types to generate (configured types when None)

        Returns:
            ChunkEmbeddings: Present vectors, quality records and failure reasons
        """
        result = await self.embed_batch([(chunk, context)], embedding_types)
        return result.chunks[chunk.chunk_id]

    async def embed_batch(
        self,
        items: Sequence[tuple[Chunk, EmbeddingContext]],
        embedding_types: Sequence[EmbeddingType] | dict[str, Sequence[EmbeddingType]] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> EmbeddingBatchResult:
        """
        Embed many chunks through the worker pool.

        Args:
            items: (chunk, context) pairs
            embedding_types: Types for every chunk, or a mapping of chunk_id to
                the types missing for that chunk
            cancel_event: When set, jobs not yet started are skipped

        Returns:
            EmbeddingBatchResult: Per-chunk results and counters; never raises
            for remote failures
        """
        result = EmbeddingBatchResult(
            chunks={chunk.chunk_id: ChunkEmbeddings(chunk_id=chunk.chunk_id) for chunk, _ in items},
        )
        jobs: asyncio.Queue[_Job] = asyncio.Queue()
        outcomes: asyncio.Queue[_Outcome] = asyncio.Queue()

        for chunk, context in items:
            for embedding_type in self._types_for(chunk.chunk_id, embedding_types):
                text = self.input_builder.build(embedding_type, chunk, context)
                if not text:
                    result.chunks[chunk.chunk_id].failures[embedding_type] = EMPTY_INPUT_REASON
                    result.skipped += 1
                    continue
                jobs.put_nowait(_Job(chunk, context, embedding_type, text))

        job_count = jobs.qsize()
        if job_count:
            worker_count = min(self.settings.max_concurrency, job_count)
            workers = [
                asyncio.create_task(self._worker(jobs, outcomes, cancel_event))
                for _ in range(worker_count)
            ]
            try:
                await jobs.join()
            finally:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)

        while not outcomes.empty():
            self._collect(result, outcomes.get_nowait())

        result.cancelled = cancel_event is not None and cancel_event.is_set()
        logger.info(
            f"{__name__}:embed_batch - chunks={len(items)} jobs={job_count} "
            f"succeeded={result.succeeded} failed={result.failed} skipped={result.skipped} "
            f"cache_hits={result.cache_hits} cancelled={result.cancelled}"
        )
        return result

    def _types_for(
        self,
        chunk_id: str,
        embedding_types: Sequence[EmbeddingType] | dict[str, Sequence[EmbeddingType]] | None,
    ) -> list[EmbeddingType]:
        if embedding_types is None:
            return list(self.settings.enabled_types)
        if isinstance(embedding_types, dict):
            return list(embedding_types.get(chunk_id, ()))
        return list(embedding_types)

    @staticmethod
    def _collect(result: EmbeddingBatchResult, outcome: _Outcome) -> None:
        chunk_result = result.chunks[outcome.chunk_id]
        if outcome.quality is not None:
            chunk_result.quality[outcome.embedding_type] = outcome.quality
        if outcome.cancelled:
            chunk_result.failures[outcome.embedding_type] = CANCELLED_REASON
            result.skipped += 1
        elif outcome.vector is not None:
            chunk_result.vectors[outcome.embedding_type] = outcome.vector
            result.succeeded += 1
            if outcome.cached:
                result.cache_hits += 1
        else:
            chunk_result.failures[outcome.embedding_type] = outcome.error or "unknown error"
            result.failed += 1

    async def _worker(
        self,
        jobs: asyncio.Queue,
        outcomes: asyncio.Queue,
        cancel_event: asyncio.Event | None,
    ) -> None:
        while True:
            job = await jobs.get()
            try:
                if cancel_event is not None and cancel_event.is_set():
                    outcome = _Outcome(job.chunk.chunk_id, job.embedding_type, cancelled=True)
                else:
                    outcome = await self._run_job(job)
                outcomes.put_nowait(outcome)
            finally:
                jobs.task_done()

    async def _run_job(self, job: _Job) -> _Outcome:
        """Run one (chunk, type) job; every failure becomes an outcome."""
        chunk_id = job.chunk.chunk_id
        embedding_type = job.embedding_type
        model_id = self.settings.model_for(embedding_type)
        key = cache_key(model_id, embedding_type, job.text)

        vector = self.cache.get(key)
        cached = vector is not None
        if vector is None:
            try:
                vector = await self._call_with_retry(job.text, model_id, embedding_type)
            except EmbeddingError as e:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"{__name__}:_run_job - Embedding failed, type left absent",
                    chunk_id=chunk_id,
                    embedding_type=embedding_type.value,
                    error=str(e),
                )
                return _Outcome(chunk_id, embedding_type, error=str(e))
            except Exception as e:
                log_exception_with_context(
                    logger,
                    f"{__name__}:_run_job - Unexpected embedding error, type left absent",
                    e,
                    chunk_id=chunk_id,
                    embedding_type=embedding_type.value,
                )
                return _Outcome(chunk_id, embedding_type, error=f"{type(e).__name__}: {e}")

        quality = assess_embedding(
            chunk_id,
            embedding_type,
            vector,
            self.settings.dimension,
            input_text=job.text,
            ancestor_count=max(0, len(job.chunk.hierarchy_path) - 1),
            model_id=model_id,
        )
        if quality.validation_status == ValidationStatus.REJECTED:
            reason = quality.validation_metadata.get("reason", "rejected")
            if len(vector) != self.settings.dimension:
                reason = str(EmbeddingDimensionError(self.settings.dimension, len(vector), embedding_type.value))
            log_with_context(
                logger,
                logging.WARNING,
                f"{__name__}:_run_job - Vector rejected, type left absent",
                chunk_id=chunk_id,
                embedding_type=embedding_type.value,
                reason=reason,
            )
            return _Outcome(chunk_id, embedding_type, quality=quality, error=reason)

        if not cached:
            self.cache.put(key, vector)
        return _Outcome(chunk_id, embedding_type, vector=vector, quality=quality, cached=cached)

    async def _call_with_retry(self, text: str, model_id: str, embedding_type: EmbeddingType) -> list[float]:
        """
        Call the remote function with a timeout, retrying transient failures.

        Raises:
            EmbeddingError: After the last attempt, or immediately for permanent errors
        """
        timeout = self.settings.timeout_seconds
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientEmbeddingError),
            stop=stop_after_attempt(self.settings.max_retries),
            wait=wait_exponential_jitter(
                initial=self.settings.retry_initial_seconds,
                max=self.settings.retry_max_seconds,
                jitter=self.settings.retry_initial_seconds,
            ),
            before_sleep=lambda retry_state: logger.warning(
                f"{__name__}:_call_with_retry - Retry {retry_state.attempt_number}/"
                f"{self.settings.max_retries} type={embedding_type.value} model={model_id}"
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    raw = await asyncio.wait_for(
                        self.embedding_function.embed(text, model_id),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise TransientEmbeddingError(
                        f"Embedding call timed out after {timeout}s",
                        embedding_type=embedding_type.value,
                    ) from e
                except ChunkIndexError:
                    raise
                except Exception as e:
                    raise classify_error(e, model_id) from e
                return coerce_vector(raw)
        raise EmbeddingError("Retry loop exited without a result", embedding_type=embedding_type.value)
