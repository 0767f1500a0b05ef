"""
ORM models registered on the declarative base.

Importing this package registers every table with Base.metadata.
"""

from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.boundary.db.models.document_model import DocumentModel
from chunk_index.boundary.db.models.embedding_model import ChunkEmbeddingModel, EmbeddingQualityModel
from chunk_index.boundary.db.models.processing_run_model import ProcessingRunModel, RunKind, RunStatus
from chunk_index.boundary.db.models.relationship_model import ChunkRelationshipModel

__all__ = [
    "ChunkModel",
    "DocumentModel",
    "ChunkEmbeddingModel",
    "EmbeddingQualityModel",
    "ProcessingRunModel",
    "RunKind",
    "RunStatus",
    "ChunkRelationshipModel",
]
