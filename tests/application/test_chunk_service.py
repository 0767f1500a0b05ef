"""
Test suite for ChunkService.

Covers hydrated reads, re-parenting, content replacement, deletion and
hierarchy navigation over a two-section document.

System role: Verification of chunk mutations and invariant maintenance
"""

import pytest

from chunk_index.application.chunk_service import ChunkService
from chunk_index.boundary.db.CRUD.document_crud import document_crud
from chunk_index.boundary.db.CRUD.embedding_crud import embedding_crud
from chunk_index.core.exceptions import ChunkNotFoundError, DocumentNotFoundError, HierarchyError
from chunk_index.core.hierarchy.relationship_manager import RelationshipManager
from chunk_index.models.chunk import Scale
from chunk_index.models.embedding import EmbeddingType
from chunk_index.models.results import FindingKind
from tests.conftest import TEST_DIMENSION, axis_vector, build_chunk, section_tree, seed_document


@pytest.fixture
def service(session_factory, test_settings) -> ChunkService:
    return ChunkService(session_factory, settings=test_settings)


@pytest.fixture
async def tree(session_factory):
    """Two sections; the first holds two paragraphs."""
    section, first, second = section_tree()
    other_section = build_chunk("doc-1", 1, content="Another heading text.", scale=Scale.SECTION, quality_score=0.8)
    async with session_factory() as session:
        async with session.begin():
            await seed_document(session, "doc-1", [section, other_section, first, second])
            await RelationshipManager().rebuild_sibling_edges(session, "doc-1")
            await embedding_crud.upsert_vector(
                session, first.chunk_id, EmbeddingType.CONTENT, axis_vector(), TEST_DIMENSION,
            )
    return section, other_section, first, second


class TestReads:
    @pytest.mark.asyncio
    async def test_get_chunk_hydrates_views(self, service: ChunkService, tree) -> None:
        # Arrange
        section, _, first, second = tree

        # Act
        parent = await service.get_chunk(section.chunk_id)
        child = await service.get_chunk(first.chunk_id)

        # Assert
        assert sorted(parent.child_chunk_ids) == sorted([first.chunk_id, second.chunk_id])
        assert child.sibling_chunk_ids == [second.chunk_id]
        assert child.embeddings[EmbeddingType.CONTENT] == axis_vector()

    @pytest.mark.asyncio
    async def test_get_chunk_without_embeddings(self, service: ChunkService, tree) -> None:
        # Arrange
        _, _, first, _ = tree

        # Act
        chunk = await service.get_chunk(first.chunk_id, include_embeddings=False)

        # Assert
        assert chunk.embeddings == {}

    @pytest.mark.asyncio
    async def test_get_unknown_chunk(self, service: ChunkService) -> None:
        with pytest.raises(ChunkNotFoundError):
            await service.get_chunk("missing")

    @pytest.mark.asyncio
    async def test_get_document_chunks_in_order(self, service: ChunkService, tree) -> None:
        # Arrange
        section, other_section, first, second = tree

        # Act
        chunks = await service.get_document_chunks("doc-1")

        # Assert
        assert [c.chunk_id for c in chunks] == [
            section.chunk_id, other_section.chunk_id, first.chunk_id, second.chunk_id,
        ]

    @pytest.mark.asyncio
    async def test_get_chunks_of_unknown_document(self, service: ChunkService) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.get_document_chunks("missing")

    @pytest.mark.asyncio
    async def test_hierarchy_path_runs_root_to_chunk(self, service: ChunkService, tree) -> None:
        # Arrange
        section, _, _, second = tree

        # Act
        path = await service.get_hierarchy_path(second.chunk_id)

        # Assert
        assert [c.chunk_id for c in path] == [section.chunk_id, second.chunk_id]


class TestSetParent:
    @pytest.mark.asyncio
    async def test_move_to_other_section(self, service: ChunkService, tree) -> None:
        """Test edges, path and sibling views follow the move."""
        # Arrange
        section, other_section, first, second = tree

        # Act
        moved = await service.set_parent(second.chunk_id, other_section.chunk_id)

        # Assert
        assert moved.parent_chunk_id == other_section.chunk_id
        assert moved.hierarchy_path == [other_section.chunk_id, second.chunk_id]
        assert moved.sibling_chunk_ids == []
        old_parent = await service.get_chunk(section.chunk_id)
        assert old_parent.child_chunk_ids == [first.chunk_id]
        report = await service.validate_document("doc-1")
        assert report.is_consistent

    @pytest.mark.asyncio
    async def test_detach_makes_root(self, service: ChunkService, tree) -> None:
        # Arrange
        _, _, first, _ = tree

        # Act
        moved = await service.set_parent(first.chunk_id, None)

        # Assert
        assert moved.parent_chunk_id is None
        assert moved.hierarchy_level == 0
        assert moved.hierarchy_path == [first.chunk_id]
        assert (await service.validate_document("doc-1")).is_consistent

    @pytest.mark.asyncio
    async def test_descendant_as_parent_is_rejected(self, service: ChunkService, tree) -> None:
        # Arrange
        section, _, first, _ = tree

        # Act / Assert
        with pytest.raises(HierarchyError):
            await service.set_parent(section.chunk_id, first.chunk_id)
        assert (await service.get_chunk(section.chunk_id)).parent_chunk_id is None


class TestReplaceContent:
    @pytest.mark.asyncio
    async def test_replace_rescores_and_drops_embeddings(self, service: ChunkService, tree) -> None:
        # Arrange
        _, _, first, _ = tree

        # Act
        chunk = await service.replace_content(first.chunk_id, "Hello world.")

        # Assert
        assert chunk.content == "Hello world."
        assert chunk.token_count == 3
        assert chunk.content_hash != first.content_hash
        assert chunk.quality_score == pytest.approx(0.6)
        assert chunk.coherence_score == pytest.approx(0.6)
        assert chunk.embeddings == {}

    @pytest.mark.asyncio
    async def test_replace_unknown_chunk(self, service: ChunkService) -> None:
        with pytest.raises(ChunkNotFoundError):
            await service.replace_content("missing", "Hello world.")


class TestDeleteChunk:
    @pytest.mark.asyncio
    async def test_children_become_orphans(self, service: ChunkService, session_factory, tree) -> None:
        """Test deleting a parent leaves its children reported as orphans."""
        # Arrange
        section, _, first, second = tree

        # Act
        await service.delete_chunk(section.chunk_id)

        # Assert
        with pytest.raises(ChunkNotFoundError):
            await service.get_chunk(section.chunk_id)
        report = await service.validate_document("doc-1")
        orphans = {f.chunk_id for f in report.findings if f.kind == FindingKind.ORPHANED_PARENT}
        assert orphans == {first.chunk_id, second.chunk_id}
        async with session_factory() as session:
            document = await document_crud.get_by_id(session, "doc-1")
        assert document.chunk_count == 3

    @pytest.mark.asyncio
    async def test_delete_leaf_keeps_document_consistent(self, service: ChunkService, tree) -> None:
        # Arrange
        section, _, first, second = tree

        # Act
        await service.delete_chunk(second.chunk_id)

        # Assert
        parent = await service.get_chunk(section.chunk_id)
        assert parent.child_chunk_ids == [first.chunk_id]
        assert (await service.get_chunk(first.chunk_id)).sibling_chunk_ids == []
        assert (await service.validate_document("doc-1")).is_consistent

    @pytest.mark.asyncio
    async def test_validate_all_covers_every_document(self, service: ChunkService, tree) -> None:
        # Act
        report = await service.validate_all()

        # Assert
        assert report.chunks_checked == 4
        assert report.is_consistent
