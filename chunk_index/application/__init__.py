"""Orchestration services: ingestion, chunk mutation and retrieval."""

from chunk_index.application.chunk_service import ChunkService
from chunk_index.application.ingestion_service import IngestionService
from chunk_index.application.retrieval_service import RetrievalService

__all__ = ["ChunkService", "IngestionService", "RetrievalService"]
