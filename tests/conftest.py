"""
Shared test fixtures and configuration for entire test suite.

Provides: in-memory SQLite engine and session factory, test settings,
a deterministic fake embedding function and chunk builders.
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import hashlib
import math

import pytest

from chunk_index.configs.chunking import ChunkingSettings
from chunk_index.configs.database import DatabaseSettings
from chunk_index.configs.embedding import EmbeddingSettings
from chunk_index.configs.retrieval import RetrievalSettings
from chunk_index.configs.settings import Settings
from chunk_index.core.hierarchy.chunker import make_chunk_id, make_node_id
from chunk_index.models.chunk import Chunk, Scale

TEST_DIMENSION = 8


class FakeEmbeddingFunction:
    """
    Deterministic stand-in for the remote embedding model.

    The vector is derived from a SHA-256 of the text, so equal inputs give
    equal vectors. Failure modes are opt-in per model id.
    """

    def __init__(
        self,
        dimension: int = TEST_DIMENSION,
        failing_models: set[str] | None = None,
        transient_failures: int = 0,
        wrong_dimension_models: set[str] | None = None,
    ) -> None:
        self.dimension = dimension
        self.failing_models = failing_models or set()
        self.transient_failures = transient_failures
        self.wrong_dimension_models = wrong_dimension_models or set()
        self.calls: list[tuple[str, str]] = []

    async def embed(self, text: str, model_id: str) -> list[float]:
        self.calls.append((text, model_id))
        if model_id in self.failing_models:
            raise ValueError(f"invalid argument: model {model_id} rejected the request")
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise ConnectionError("connection reset by peer")
        dimension = self.dimension + 1 if model_id in self.wrong_dimension_models else self.dimension
        return text_vector(text, dimension)


def text_vector(text: str, dimension: int = TEST_DIMENSION) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    values = [(digest[i % len(digest)] / 255.0) - 0.5 for i in range(dimension)]
    values[0] += 1.0
    return values


def unit_vector(similarity: float, dimension: int = TEST_DIMENSION) -> list[float]:
    """Vector whose cosine similarity with axis_vector() is ``similarity``."""
    vector = [0.0] * dimension
    vector[0] = similarity
    vector[1] = math.sqrt(max(0.0, 1.0 - similarity * similarity))
    return vector


def axis_vector(dimension: int = TEST_DIMENSION) -> list[float]:
    vector = [0.0] * dimension
    vector[0] = 1.0
    return vector


def build_chunk(
    document_id: str,
    sequence: int,
    content: str = "A short test sentence about chunking.",
    scale: Scale = Scale.PARAGRAPH,
    level: int = 0,
    parent: Chunk | None = None,
    quality_score: float = 0.5,
) -> Chunk:
    """Build a domain chunk with derived id and path."""
    if parent is not None:
        level = parent.hierarchy_level + 1
    node_id = make_node_id(document_id, scale, level, sequence)
    chunk_id = make_chunk_id(node_id)
    path = [*(parent.hierarchy_path if parent else []), chunk_id]
    return Chunk(
        chunk_id=chunk_id,
        document_id=document_id,
        node_id=node_id,
        content=content,
        scale=scale,
        hierarchy_level=level,
        sequence_order=sequence,
        hierarchy_path=path,
        parent_chunk_id=parent.chunk_id if parent else None,
        quality_score=quality_score,
    )


@pytest.fixture
def embedding_settings() -> EmbeddingSettings:
    """Small vectors, no backoff delay, a separate model for contextual inputs."""
    return EmbeddingSettings(
        model_id="test-embedding-model",
        type_model_ids={"contextual": "test-contextual-model"},
        dimension=TEST_DIMENSION,
        max_concurrency=4,
        max_retries=3,
        retry_initial_seconds=0,
        retry_max_seconds=0,
        timeout_seconds=5,
    )


@pytest.fixture
def test_settings(embedding_settings: EmbeddingSettings) -> Settings:
    """Application settings pointing at in-memory SQLite."""
    return Settings(
        database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:"),
        chunking=ChunkingSettings(),
        embedding=embedding_settings,
        retrieval=RetrievalSettings(),
    )


@pytest.fixture
def fake_embedding_function() -> FakeEmbeddingFunction:
    return FakeEmbeddingFunction()


@pytest.fixture
async def test_engine(test_settings: Settings):
    """
    Create in-memory SQLite async engine with all tables.

    Yields:
        AsyncEngine: Engine shared by every session in the test (StaticPool)
    """
    from chunk_index.boundary.db.connection import create_engine_from_settings, create_tables, drop_tables

    engine = create_engine_from_settings(test_settings.database)
    await create_tables(engine)
    yield engine
    await drop_tables(engine)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    from chunk_index.boundary.db.connection import create_session_factory

    return create_session_factory(test_engine)


@pytest.fixture
async def test_async_db(session_factory):
    """
    Session on the in-memory database.

    Yields:
        AsyncSession: Test database session, rolled back afterwards
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


async def seed_document(session, document_id: str, chunks: list[Chunk], title: str | None = None) -> dict:
    """
    Insert a document row and its chunks with parent/child edges.

    Chunks must be ordered parents first. Returns chunk_id → ChunkModel.
    """
    from chunk_index.boundary.db.CRUD.chunk_crud import chunk_crud
    from chunk_index.boundary.db.CRUD.document_crud import document_crud
    from chunk_index.core.hierarchy.relationship_manager import RelationshipManager
    from chunk_index.models.document import DocumentStatus

    await document_crud.create(session, id=document_id, title=title, status=DocumentStatus.COMPLETED)
    manager = RelationshipManager()
    models = {}
    for chunk in chunks:
        model = await chunk_crud.create_from_chunk(session, chunk)
        await manager.link_parent(session, model)
        models[chunk.chunk_id] = model
    return models


def section_tree(document_id: str = "doc-1") -> tuple[Chunk, Chunk, Chunk]:
    """A section with two paragraph children."""
    section = build_chunk(document_id, 0, content="Section heading text.", scale=Scale.SECTION, quality_score=0.7)
    first = build_chunk(document_id, 0, content="First paragraph body.", parent=section, quality_score=0.9)
    second = build_chunk(document_id, 1, content="Second paragraph body.", parent=section, quality_score=0.6)
    return section, first, second
