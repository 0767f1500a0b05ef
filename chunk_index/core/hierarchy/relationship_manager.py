"""
Relationship maintenance for the chunk hierarchy.

Keeps the chunk_relationships edge table in step with the authoritative
parent_chunk_id field. Every method works inside the caller's session so
the chunk write and its edge updates commit or roll back together.

- Parent changes: drop the old (parent, child) edge pair, insert the new
  pair with strength 1.0, and re-derive level and path for the moved subtree
- Deletion: remove every edge touching the chunk
- Siblings: rebuilt per document as adjacent-pair edges (strength 0.8) in
  both directions, so each sibling group costs O(n) edges

Child and sibling id sets are read from edges on demand and never stored
on the chunk row.

Dependencies: sqlalchemy, chunk_index.boundary.db.CRUD
System role: Explicit invariant maintenance for parent/child/sibling symmetry
"""

import logging
from collections import defaultdict
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.chunk_crud import ChunkCRUD, chunk_crud
from chunk_index.boundary.db.CRUD.relationship_crud import RelationshipCRUD, relationship_crud
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.boundary.db.models.relationship_model import ChunkRelationshipModel
from chunk_index.core.exceptions import ChunkNotFoundError, HierarchyError
from chunk_index.models.chunk import Chunk
from chunk_index.models.relationship import (
    PARENT_CHILD_STRENGTH,
    SIBLING_STRENGTH,
    RelationshipType,
)

logger = logging.getLogger(__name__)

MAX_HIERARCHY_DEPTH = 10


class RelationshipManager:
    """Maintains edges derived from parent_chunk_id and serves the derived views."""

    def __init__(
        self,
        chunks: ChunkCRUD = chunk_crud,
        relationships: RelationshipCRUD = relationship_crud,
        max_depth: int = MAX_HIERARCHY_DEPTH,
    ) -> None:
        self.chunks = chunks
        self.relationships = relationships
        self.max_depth = max_depth

    async def link_parent(self, session: AsyncSession, chunk: ChunkModel) -> int:
        """
        Ensure the edge pair for the chunk's current parent exists.

        Used right after a chunk row is created with parent_chunk_id set.

        Returns:
            int: Number of edges inserted (0 when both already existed)
        """
        if chunk.parent_chunk_id is None:
            return 0
        return await self._insert_pair(session, chunk.chunk_id, chunk.parent_chunk_id)

    async def set_parent(
        self,
        session: AsyncSession,
        chunk: ChunkModel,
        new_parent_id: str | None,
    ) -> bool:
        """
        Change a chunk's parent and update edges in the same transaction.

        The moved chunk and its descendants get their hierarchy_level and
        hierarchy_path re-derived from the new parent.

        Args:
            session: Async database session (caller owns the transaction)
            chunk: Chunk row being re-parented
            new_parent_id: New parent chunk id, or None to make it a root

        Returns:
            bool: True if the parent changed, False if it was already set

        Raises:
            HierarchyError: If the new parent is the chunk itself, belongs to
                another document, is one of the chunk's descendants, or the moved
                subtree is deeper than max_depth
            ChunkNotFoundError: If the new parent does not exist
        """
        old_parent_id = chunk.parent_chunk_id
        new_parent = await self._validate_parent(session, chunk, new_parent_id)

        if old_parent_id == new_parent_id:
            await self.link_parent(session, chunk)
            return False

        if old_parent_id is not None:
            await self.relationships.delete_edge(
                session, chunk.chunk_id, old_parent_id, RelationshipType.PARENT,
            )
            await self.relationships.delete_edge(
                session, old_parent_id, chunk.chunk_id, RelationshipType.CHILD,
            )

        chunk.parent_chunk_id = new_parent_id
        await self._reposition_subtree(session, chunk, new_parent)
        if new_parent_id is not None:
            await self._insert_pair(session, chunk.chunk_id, new_parent_id)

        logger.info(
            f"{__name__}:set_parent - chunk_id={chunk.chunk_id} "
            f"old_parent={old_parent_id} new_parent={new_parent_id}"
        )
        return True

    async def remove_chunk_edges(self, session: AsyncSession, chunk_id: str) -> int:
        """Delete every edge with ``chunk_id`` as source or target."""
        removed = await self.relationships.delete_for_chunk(session, chunk_id)
        logger.debug(f"{__name__}:remove_chunk_edges - chunk_id={chunk_id} removed={removed}")
        return removed

    async def rebuild_sibling_edges(self, session: AsyncSession, document_id: str) -> int:
        """
        Recompute sibling edges for a whole document.

        Chunks sharing a non-null parent are ordered by sequence_order and
        each adjacent pair gets edges in both directions. Roots are not
        linked as siblings.

        Args:
            session: Async database session
            document_id: Document to rebuild

        Returns:
            int: Number of sibling edges written
        """
        await self.relationships.delete_by_type_for_document(
            session, document_id, RelationshipType.SIBLING,
        )
        chunks = await self.chunks.get_by_document_id(session, document_id)

        groups: dict[str, list[ChunkModel]] = defaultdict(list)
        for chunk in chunks:
            if chunk.parent_chunk_id is not None:
                groups[chunk.parent_chunk_id].append(chunk)

        edges: list[ChunkRelationshipModel] = []
        for siblings in groups.values():
            siblings.sort(key=lambda c: (c.sequence_order, c.start_offset))
            for left, right in zip(siblings, siblings[1:]):
                for source, target in ((left, right), (right, left)):
                    edges.append(ChunkRelationshipModel(
                        source_chunk_id=source.chunk_id,
                        target_chunk_id=target.chunk_id,
                        relationship_type=RelationshipType.SIBLING,
                        relationship_strength=SIBLING_STRENGTH,
                    ))
        session.add_all(edges)
        await session.flush()

        logger.info(
            f"{__name__}:rebuild_sibling_edges - document_id={document_id} "
            f"groups={len(groups)} edges={len(edges)}"
        )
        return len(edges)

    async def child_ids(self, session: AsyncSession, chunk_ids: Sequence[str]) -> dict[str, list[str]]:
        return await self.relationships.get_targets(session, chunk_ids, RelationshipType.CHILD)

    async def sibling_ids(self, session: AsyncSession, chunk_ids: Sequence[str]) -> dict[str, list[str]]:
        return await self.relationships.get_targets(session, chunk_ids, RelationshipType.SIBLING)

    async def hydrate(self, session: AsyncSession, chunks: list[Chunk]) -> list[Chunk]:
        """Fill child_chunk_ids and sibling_chunk_ids from the edge table."""
        ids = [c.chunk_id for c in chunks]
        children = await self.child_ids(session, ids)
        siblings = await self.sibling_ids(session, ids)
        for chunk in chunks:
            chunk.child_chunk_ids = children.get(chunk.chunk_id, [])
            chunk.sibling_chunk_ids = siblings.get(chunk.chunk_id, [])
        return chunks

    async def get_ancestors(self, session: AsyncSession, chunk: ChunkModel) -> list[ChunkModel]:
        """
        Walk parent links from the chunk up to its root.

        Args:
            session: Async database session
            chunk: Starting chunk

        Returns:
            list[ChunkModel]: Ancestors ordered root first, excluding the chunk

        Raises:
            HierarchyError: On a revisited id (cycle), or when the chain is
                deeper than max_depth
            ChunkNotFoundError: When a parent reference dangles
        """
        chain: list[ChunkModel] = []
        seen = {chunk.chunk_id}
        current = chunk
        while current.parent_chunk_id is not None:
            if len(chain) >= self.max_depth:
                raise HierarchyError(
                    f"Ancestor chain exceeds depth {self.max_depth}",
                    chunk_id=chunk.chunk_id,
                )
            if current.parent_chunk_id in seen:
                raise HierarchyError(
                    "Cycle in ancestor chain",
                    chunk_id=chunk.chunk_id,
                    parent_chunk_id=current.parent_chunk_id,
                )
            parent = await self.chunks.get_by_id(session, current.parent_chunk_id)
            if parent is None:
                raise ChunkNotFoundError(current.parent_chunk_id, {"child_chunk_id": current.chunk_id})
            seen.add(parent.chunk_id)
            chain.append(parent)
            current = parent
        chain.reverse()
        return chain

    async def _insert_pair(self, session: AsyncSession, chunk_id: str, parent_id: str) -> int:
        inserted = 0
        if await self.relationships.add_edge(
            session, chunk_id, parent_id, RelationshipType.PARENT, PARENT_CHILD_STRENGTH,
        ):
            inserted += 1
        if await self.relationships.add_edge(
            session, parent_id, chunk_id, RelationshipType.CHILD, PARENT_CHILD_STRENGTH,
        ):
            inserted += 1
        return inserted

    async def _validate_parent(
        self,
        session: AsyncSession,
        chunk: ChunkModel,
        new_parent_id: str | None,
    ) -> ChunkModel | None:
        if new_parent_id is None:
            return None
        if new_parent_id == chunk.chunk_id:
            raise HierarchyError("A chunk cannot be its own parent", chunk.chunk_id, new_parent_id)

        parent = await self.chunks.get_by_id(session, new_parent_id)
        if parent is None:
            raise ChunkNotFoundError(new_parent_id, {"child_chunk_id": chunk.chunk_id})
        if parent.document_id != chunk.document_id:
            raise HierarchyError(
                "Parent belongs to a different document",
                chunk.chunk_id,
                new_parent_id,
                {"document_id": chunk.document_id, "parent_document_id": parent.document_id},
            )

        ancestors = await self.get_ancestors(session, parent)
        if any(a.chunk_id == chunk.chunk_id for a in ancestors):
            raise HierarchyError(
                "New parent is a descendant of the chunk",
                chunk.chunk_id,
                new_parent_id,
            )
        return parent

    async def _reposition_subtree(
        self,
        session: AsyncSession,
        chunk: ChunkModel,
        parent: ChunkModel | None,
    ) -> None:
        """Re-derive level and path for a moved chunk and everything beneath it."""
        chunk.hierarchy_level = parent.hierarchy_level + 1 if parent else 0
        chunk.hierarchy_path = [*(parent.hierarchy_path if parent else []), chunk.chunk_id]

        frontier = [chunk]
        for _ in range(self.max_depth + 1):
            next_frontier: list[ChunkModel] = []
            for node in frontier:
                for child in await self.chunks.get_by_parent_id(session, node.chunk_id):
                    child.hierarchy_level = node.hierarchy_level + 1
                    child.hierarchy_path = [*node.hierarchy_path, child.chunk_id]
                    next_frontier.append(child)
            if not next_frontier:
                break
            frontier = next_frontier
        else:
            raise HierarchyError(
                f"Subtree below the moved chunk exceeds depth {self.max_depth}",
                chunk_id=chunk.chunk_id,
            )
        await session.flush()
