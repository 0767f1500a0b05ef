"""
Test suite for RetrievalService.

Text queries are embedded with the fake embedding function, so a query
equal to a chunk's content matches that chunk's stored vector exactly.

System role: Verification of the query entry point
"""

import pytest

from chunk_index.application.retrieval_service import RetrievalService
from chunk_index.boundary.db.CRUD.embedding_crud import embedding_crud
from chunk_index.core.exceptions import QueryValidationError, RetrievalError
from chunk_index.models.embedding import EmbeddingType
from tests.conftest import (
    TEST_DIMENSION,
    FakeEmbeddingFunction,
    axis_vector,
    section_tree,
    seed_document,
    text_vector,
    unit_vector,
)


def _orthogonal(index: int) -> list[float]:
    vector = [0.0] * TEST_DIMENSION
    vector[index] = 1.0
    return vector


@pytest.fixture
async def indexed(session_factory):
    section, first, second = section_tree()
    stored = {
        section.chunk_id: _orthogonal(TEST_DIMENSION - 1),
        first.chunk_id: text_vector(first.content),
        second.chunk_id: _orthogonal(TEST_DIMENSION - 2),
    }
    async with session_factory() as session:
        async with session.begin():
            await seed_document(session, "doc-1", [section, first, second])
            for chunk_id, vector in stored.items():
                await embedding_crud.upsert_vector(
                    session, chunk_id, EmbeddingType.CONTENT, vector, TEST_DIMENSION,
                )
    return section, first, second


@pytest.fixture
def service(session_factory, test_settings, fake_embedding_function) -> RetrievalService:
    return RetrievalService(session_factory, test_settings, embedding_function=fake_embedding_function)


class TestSearchText:
    @pytest.mark.asyncio
    async def test_exact_text_matches_its_chunk(self, service: RetrievalService, indexed) -> None:
        # Arrange
        _, first, _ = indexed

        # Act
        results = await service.search_text(first.content)

        # Assert
        assert [r.chunk.chunk_id for r in results] == [first.chunk_id]
        assert results[0].similarity == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_expand_context_adds_parent(self, service: RetrievalService, indexed) -> None:
        # Arrange
        section, first, _ = indexed

        # Act
        results = await service.search_text(first.content, expand_context=True, reduce_redundancy=True)

        # Assert
        assert [r.chunk.chunk_id for r in results] == [first.chunk_id, section.chunk_id]
        assert results[1].via_context is True
        assert results[1].score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_query_uses_model_of_embedding_type(
        self, service: RetrievalService, fake_embedding_function: FakeEmbeddingFunction, indexed
    ) -> None:
        # Act
        results = await service.search_text("Section heading text.", embedding_type="contextual")

        # Assert
        assert results == []
        assert fake_embedding_function.calls == [("Section heading text.", "test-contextual-model")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query_text", ["", "   "])
    async def test_blank_query_is_rejected(
        self, service: RetrievalService, fake_embedding_function: FakeEmbeddingFunction, query_text: str
    ) -> None:
        # Act
        with pytest.raises(QueryValidationError):
            await service.search_text(query_text)

        # Assert
        assert fake_embedding_function.calls == []

    @pytest.mark.asyncio
    async def test_unknown_type_is_rejected(self, service: RetrievalService) -> None:
        with pytest.raises(QueryValidationError):
            await service.search_text("anything", embedding_type="summary")

    @pytest.mark.asyncio
    async def test_embedding_failure_is_retrieval_error(self, session_factory, test_settings) -> None:
        # Arrange
        service = RetrievalService(
            session_factory,
            test_settings,
            embedding_function=FakeEmbeddingFunction(failing_models={"test-embedding-model"}),
        )

        # Act
        with pytest.raises(RetrievalError) as exc_info:
            await service.search_text("anything")

        # Assert
        assert exc_info.value.details["model_id"] == "test-embedding-model"


class TestSearchVector:
    @pytest.mark.asyncio
    async def test_search_with_vector(self, service: RetrievalService, session_factory, indexed) -> None:
        # Arrange
        section, first, second = indexed
        async with session_factory() as session:
            async with session.begin():
                await embedding_crud.upsert_vector(
                    session, second.chunk_id, EmbeddingType.SEMANTIC, unit_vector(0.8), TEST_DIMENSION,
                )

        # Act
        results = await service.search(axis_vector(), EmbeddingType.SEMANTIC)
        multi = await service.search_multi_scale(axis_vector(), EmbeddingType.SEMANTIC)

        # Assert
        assert [r.chunk.chunk_id for r in results] == [second.chunk_id]
        assert [r.chunk.chunk_id for r in multi] == [second.chunk_id]

    @pytest.mark.asyncio
    async def test_wrong_dimension_query(self, service: RetrievalService, indexed) -> None:
        with pytest.raises(QueryValidationError):
            await service.search([1.0, 0.0])
