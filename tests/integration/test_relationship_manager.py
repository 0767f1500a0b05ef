"""
Integration tests for RelationshipManager.

Edge symmetry on link and re-parent, subtree re-derivation, sibling
rebuilds, ancestor walks and the parent-assignment errors.

System role: Verification of hierarchy invariant maintenance
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.chunk_crud import chunk_crud
from chunk_index.boundary.db.CRUD.relationship_crud import relationship_crud
from chunk_index.core.exceptions import ChunkNotFoundError, HierarchyError
from chunk_index.core.hierarchy.relationship_manager import RelationshipManager
from chunk_index.models.chunk import Scale
from chunk_index.models.relationship import RelationshipType
from tests.conftest import build_chunk, section_tree, seed_document


@pytest.fixture
def manager() -> RelationshipManager:
    return RelationshipManager()


def _two_section_tree(document_id: str = "doc-1"):
    """Sections A and B; paragraph P under A; sentence S under P."""
    section_a = build_chunk(document_id, 0, content="Section A.", scale=Scale.SECTION)
    section_b = build_chunk(document_id, 1, content="Section B.", scale=Scale.SECTION)
    paragraph = build_chunk(document_id, 0, content="Paragraph under A.", parent=section_a)
    sentence = build_chunk(document_id, 0, content="Sentence.", scale=Scale.SENTENCE, parent=paragraph)
    return section_a, section_b, paragraph, sentence


async def _edge_keys(session: AsyncSession, document_id: str) -> set:
    edges = await relationship_crud.get_by_document_id(session, document_id)
    return {(e.source_chunk_id, e.target_chunk_id, e.relationship_type) for e in edges}


class TestParentChildEdges:
    """Edges created alongside parent links."""

    @pytest.mark.asyncio
    async def test_link_creates_both_directions(self, test_async_db: AsyncSession) -> None:
        # Arrange
        section, first, second = section_tree()

        # Act
        await seed_document(test_async_db, "doc-1", [section, first, second])

        # Assert
        keys = await _edge_keys(test_async_db, "doc-1")
        for child in (first, second):
            assert (child.chunk_id, section.chunk_id, RelationshipType.PARENT) in keys
            assert (section.chunk_id, child.chunk_id, RelationshipType.CHILD) in keys
        assert len(keys) == 4

    @pytest.mark.asyncio
    async def test_link_is_idempotent(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section, first, second = section_tree()
        models = await seed_document(test_async_db, "doc-1", [section, first, second])

        # Act
        inserted = await manager.link_parent(test_async_db, models[first.chunk_id])

        # Assert
        assert inserted == 0
        assert len(await _edge_keys(test_async_db, "doc-1")) == 4

    @pytest.mark.asyncio
    async def test_hydrate_fills_children_in_sequence_order(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        # Arrange
        section, first, second = section_tree()
        models = await seed_document(test_async_db, "doc-1", [section, second, first])

        # Act
        hydrated = await manager.hydrate(test_async_db, [models[section.chunk_id].to_chunk()])

        # Assert
        assert hydrated[0].child_chunk_ids == [first.chunk_id, second.chunk_id]

    @pytest.mark.asyncio
    async def test_remove_chunk_edges(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section, first, second = section_tree()
        await seed_document(test_async_db, "doc-1", [section, first, second])

        # Act
        removed = await manager.remove_chunk_edges(test_async_db, first.chunk_id)

        # Assert
        assert removed == 2
        keys = await _edge_keys(test_async_db, "doc-1")
        assert all(first.chunk_id not in (source, target) for source, target, _ in keys)


class TestSiblingEdges:
    @pytest.mark.asyncio
    async def test_adjacent_children_become_siblings(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        """Test adjacent pairs under one parent are linked both ways; roots are not."""
        # Arrange
        section, first, second = section_tree()
        other_root = build_chunk("doc-1", 1, content="Another section.", scale=Scale.SECTION)
        await seed_document(test_async_db, "doc-1", [section, first, second, other_root])

        # Act
        written = await manager.rebuild_sibling_edges(test_async_db, "doc-1")

        # Assert
        assert written == 2
        chunks = await manager.hydrate(test_async_db, [first.model_copy(), second.model_copy(), other_root])
        assert chunks[0].sibling_chunk_ids == [second.chunk_id]
        assert chunks[1].sibling_chunk_ids == [first.chunk_id]
        assert chunks[2].sibling_chunk_ids == []

    @pytest.mark.asyncio
    async def test_rebuild_replaces_previous_sibling_edges(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        # Arrange
        section, first, second = section_tree()
        await seed_document(test_async_db, "doc-1", [section, first, second])
        await manager.rebuild_sibling_edges(test_async_db, "doc-1")

        # Act
        await manager.rebuild_sibling_edges(test_async_db, "doc-1")

        # Assert
        keys = await _edge_keys(test_async_db, "doc-1")
        assert sum(1 for *_, kind in keys if kind == RelationshipType.SIBLING) == 2


class TestSetParent:
    """Re-parenting with edge updates and subtree re-derivation."""

    @pytest.mark.asyncio
    async def test_move_updates_edges_levels_and_paths(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act
        changed = await manager.set_parent(test_async_db, models[paragraph.chunk_id], section_b.chunk_id)

        # Assert
        assert changed is True
        moved = models[paragraph.chunk_id]
        assert moved.parent_chunk_id == section_b.chunk_id
        assert moved.hierarchy_level == 1
        assert moved.hierarchy_path == [section_b.chunk_id, paragraph.chunk_id]
        child = models[sentence.chunk_id]
        assert child.hierarchy_level == 2
        assert child.hierarchy_path == [section_b.chunk_id, paragraph.chunk_id, sentence.chunk_id]

        keys = await _edge_keys(test_async_db, "doc-1")
        assert (paragraph.chunk_id, section_a.chunk_id, RelationshipType.PARENT) not in keys
        assert (section_a.chunk_id, paragraph.chunk_id, RelationshipType.CHILD) not in keys
        assert (paragraph.chunk_id, section_b.chunk_id, RelationshipType.PARENT) in keys
        assert (section_b.chunk_id, paragraph.chunk_id, RelationshipType.CHILD) in keys

    @pytest.mark.asyncio
    async def test_same_parent_is_a_no_op(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act
        changed = await manager.set_parent(test_async_db, models[paragraph.chunk_id], section_a.chunk_id)

        # Assert
        assert changed is False

    @pytest.mark.asyncio
    async def test_detach_makes_subtree_root(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act
        await manager.set_parent(test_async_db, models[paragraph.chunk_id], None)

        # Assert
        assert models[paragraph.chunk_id].hierarchy_level == 0
        assert models[paragraph.chunk_id].hierarchy_path == [paragraph.chunk_id]
        assert models[sentence.chunk_id].hierarchy_path == [paragraph.chunk_id, sentence.chunk_id]

    @pytest.mark.asyncio
    async def test_self_parent_is_rejected(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act / Assert
        with pytest.raises(HierarchyError):
            await manager.set_parent(test_async_db, models[paragraph.chunk_id], paragraph.chunk_id)

    @pytest.mark.asyncio
    async def test_descendant_parent_is_rejected(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        """Test a move that would create a cycle raises and changes nothing."""
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act
        with pytest.raises(HierarchyError) as exc_info:
            await manager.set_parent(test_async_db, models[section_a.chunk_id], sentence.chunk_id)

        # Assert
        assert exc_info.value.details["parent_chunk_id"] == sentence.chunk_id
        assert models[section_a.chunk_id].parent_chunk_id is None

    @pytest.mark.asyncio
    async def test_unknown_parent_is_not_found(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act / Assert
        with pytest.raises(ChunkNotFoundError):
            await manager.set_parent(test_async_db, models[paragraph.chunk_id], "missing-chunk")

    @pytest.mark.asyncio
    async def test_cross_document_parent_is_rejected(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])
        foreign = build_chunk("doc-2", 0, content="Other document.", scale=Scale.SECTION)
        await seed_document(test_async_db, "doc-2", [foreign])

        # Act / Assert
        with pytest.raises(HierarchyError) as exc_info:
            await manager.set_parent(test_async_db, models[paragraph.chunk_id], foreign.chunk_id)
        assert exc_info.value.details["parent_document_id"] == "doc-2"


class TestAncestors:
    """Bounded ancestor walks."""

    @pytest.mark.asyncio
    async def test_ancestors_root_first(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])

        # Act
        ancestors = await manager.get_ancestors(test_async_db, models[sentence.chunk_id])

        # Assert
        assert [a.chunk_id for a in ancestors] == [section_a.chunk_id, paragraph.chunk_id]

    @pytest.mark.asyncio
    async def test_depth_bound(self, test_async_db: AsyncSession) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])
        shallow = RelationshipManager(max_depth=1)

        # Act / Assert
        with pytest.raises(HierarchyError):
            await shallow.get_ancestors(test_async_db, models[sentence.chunk_id])

    @pytest.mark.asyncio
    async def test_stored_cycle_is_detected(self, test_async_db: AsyncSession, manager: RelationshipManager) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])
        models[section_a.chunk_id].parent_chunk_id = sentence.chunk_id
        await test_async_db.flush()

        # Act / Assert
        with pytest.raises(HierarchyError):
            await manager.get_ancestors(test_async_db, models[sentence.chunk_id])

    @pytest.mark.asyncio
    async def test_dangling_parent_is_not_found(
        self, test_async_db: AsyncSession, manager: RelationshipManager
    ) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])
        await chunk_crud.delete_by_id(test_async_db, paragraph.chunk_id)

        # Act / Assert
        with pytest.raises(ChunkNotFoundError):
            await manager.get_ancestors(test_async_db, models[sentence.chunk_id])


class TestSubtreeDepth:
    """Depth bound on the re-derived subtree."""

    @pytest.mark.asyncio
    async def test_subtree_at_depth_bound_is_repositioned(self, test_async_db: AsyncSession) -> None:
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])
        shallow = RelationshipManager(max_depth=1)

        # Act
        await shallow.set_parent(test_async_db, models[paragraph.chunk_id], section_b.chunk_id)

        # Assert
        assert models[sentence.chunk_id].hierarchy_level == 2
        assert models[sentence.chunk_id].hierarchy_path == [
            section_b.chunk_id, paragraph.chunk_id, sentence.chunk_id,
        ]

    @pytest.mark.asyncio
    async def test_subtree_deeper_than_bound_is_rejected(self, test_async_db: AsyncSession) -> None:
        """Test a move fails instead of leaving deep descendants with stale paths."""
        # Arrange
        section_a, section_b, paragraph, sentence = _two_section_tree()
        models = await seed_document(test_async_db, "doc-1", [section_a, section_b, paragraph, sentence])
        shallow = RelationshipManager(max_depth=1)

        # Act / Assert
        with pytest.raises(HierarchyError) as exc_info:
            await shallow.set_parent(test_async_db, models[section_a.chunk_id], section_b.chunk_id)
        assert exc_info.value.details["chunk_id"] == section_a.chunk_id
