"""
Consistency validation for stored hierarchies.

A standalone pass, not run inline on writes. It checks parent references,
ancestor chains (bounded to a fixed depth), edge symmetry, hierarchy paths,
content hashes, score ranges and stored vector sizes, and returns every
problem as a structured finding. Nothing is repaired.

Dependencies: sqlalchemy, chunk_index.boundary.db.CRUD
System role: Detection of orphaned parents, cycles and asymmetric edges
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.CRUD.chunk_crud import ChunkCRUD, chunk_crud
from chunk_index.boundary.db.CRUD.embedding_crud import EmbeddingCRUD, embedding_crud
from chunk_index.boundary.db.CRUD.relationship_crud import RelationshipCRUD, relationship_crud
from chunk_index.boundary.db.models.chunk_model import ChunkModel
from chunk_index.core.hierarchy.relationship_manager import MAX_HIERARCHY_DEPTH
from chunk_index.core.hierarchy.text_utils import compute_content_hash
from chunk_index.models.relationship import RelationshipType
from chunk_index.models.results import ConsistencyFinding, ConsistencyReport, FindingKind

logger = logging.getLogger(__name__)


class ConsistencyValidator:
    """Reports hierarchy and relationship inconsistencies for stored documents."""

    def __init__(
        self,
        expected_dimension: int | None = None,
        max_depth: int = MAX_HIERARCHY_DEPTH,
        chunks: ChunkCRUD = chunk_crud,
        relationships: RelationshipCRUD = relationship_crud,
        embeddings: EmbeddingCRUD = embedding_crud,
    ) -> None:
        self.expected_dimension = expected_dimension
        self.max_depth = max_depth
        self.chunks = chunks
        self.relationships = relationships
        self.embeddings = embeddings

    async def validate_all(self, session: AsyncSession) -> ConsistencyReport:
        """Validate every document that has chunks and merge the reports."""
        merged = ConsistencyReport()
        for document_id in sorted(await self.chunks.get_document_ids(session)):
            report = await self.validate_document(session, document_id)
            merged.chunks_checked += report.chunks_checked
            merged.edges_checked += report.edges_checked
            merged.findings.extend(report.findings)
        return merged

    async def validate_document(self, session: AsyncSession, document_id: str) -> ConsistencyReport:
        """
        Validate one document's chunks, edges and stored vectors.

        Args:
            session: Async database session (read-only use)
            document_id: Document to check

        Returns:
            ConsistencyReport: Counts checked and every finding
        """
        rows = await self.chunks.get_by_document_id(session, document_id)
        by_id: dict[str, ChunkModel] = {row.chunk_id: row for row in rows}

        outside_ids = {
            row.parent_chunk_id for row in rows
            if row.parent_chunk_id is not None and row.parent_chunk_id not in by_id
        }
        outside = await self.chunks.get_by_ids(session, list(outside_ids))
        known = {**outside, **by_id}

        edges = await self.relationships.get_by_document_id(session, document_id)
        edge_keys = {(e.source_chunk_id, e.target_chunk_id, e.relationship_type) for e in edges}

        report = ConsistencyReport(
            document_id=document_id,
            chunks_checked=len(rows),
            edges_checked=len(edges),
        )
        for row in rows:
            report.findings.extend(self._check_chunk(row, known, edge_keys))
        report.findings.extend(self._check_edges(edges, known, edge_keys))
        if self.expected_dimension is not None:
            report.findings.extend(await self._check_vectors(session, document_id, list(by_id)))

        if report.findings:
            logger.warning(
                f"{__name__}:validate_document - document_id={document_id} "
                f"findings={len(report.findings)}"
            )
        return report

    def _check_chunk(
        self,
        row: ChunkModel,
        known: dict[str, ChunkModel],
        edge_keys: set[tuple[str, str, RelationshipType]],
    ) -> list[ConsistencyFinding]:
        findings: list[ConsistencyFinding] = []

        def add(kind: FindingKind, message: str, related: str | None = None, **details) -> None:
            findings.append(ConsistencyFinding(
                kind=kind,
                chunk_id=row.chunk_id,
                document_id=row.document_id,
                related_chunk_id=related,
                message=message,
                details=details,
            ))

        parent_id = row.parent_chunk_id
        parent = known.get(parent_id) if parent_id else None
        if parent_id is not None:
            if parent is None:
                add(FindingKind.ORPHANED_PARENT, "Parent chunk does not exist", parent_id)
            else:
                if parent.document_id != row.document_id:
                    add(
                        FindingKind.CROSS_DOCUMENT_PARENT,
                        "Parent belongs to another document",
                        parent_id,
                        parent_document_id=parent.document_id,
                    )
                if parent.hierarchy_level >= row.hierarchy_level:
                    add(
                        FindingKind.LEVEL_VIOLATION,
                        "Parent is not strictly coarser than child",
                        parent_id,
                        level=row.hierarchy_level,
                        parent_level=parent.hierarchy_level,
                    )
            if (row.chunk_id, parent_id, RelationshipType.PARENT) not in edge_keys:
                add(FindingKind.MISSING_PARENT_EDGE, "Missing parent edge to parent", parent_id)
            if (parent_id, row.chunk_id, RelationshipType.CHILD) not in edge_keys:
                add(FindingKind.MISSING_CHILD_EDGE, "Missing child edge from parent", parent_id)

        chain, problem = self._ancestor_chain(row, known)
        if problem is FindingKind.CYCLE:
            add(FindingKind.CYCLE, "Chunk is its own ancestor", chain[-1] if chain else None)
        elif problem is FindingKind.DEPTH_EXCEEDED:
            add(FindingKind.DEPTH_EXCEEDED, f"Ancestor chain deeper than {self.max_depth}")

        path = list(row.hierarchy_path or [])
        if (
            len(path) != row.hierarchy_level + 1
            or not path
            or path[-1] != row.chunk_id
            or len(set(path)) != len(path)
            or (problem is None and chain is not None and path != chain)
        ):
            add(
                FindingKind.PATH_MISMATCH,
                "hierarchy_path does not match level and ancestors",
                path=path,
                level=row.hierarchy_level,
            )

        if compute_content_hash(row.content or "") != row.content_hash:
            add(FindingKind.HASH_MISMATCH, "content_hash is stale")

        for field in ("quality_score", "coherence_score"):
            value = getattr(row, field)
            if value is None or not (0.0 <= value <= 1.0):
                add(FindingKind.SCORE_OUT_OF_RANGE, f"{field} outside [0, 1]", field=field, value=value)
        return findings

    def _ancestor_chain(
        self,
        row: ChunkModel,
        known: dict[str, ChunkModel],
    ) -> tuple[list[str] | None, FindingKind | None]:
        """
        Ids from root to ``row`` following parent links, bounded by max_depth.

        Returns the chain and None, or a partial chain and CYCLE /
        DEPTH_EXCEEDED. Returns (None, None) when the chain leaves the known
        set (an orphan, reported separately).
        """
        chain = [row.chunk_id]
        seen = {row.chunk_id}
        current = row
        for _ in range(self.max_depth + 1):
            parent_id = current.parent_chunk_id
            if parent_id is None:
                chain.reverse()
                return chain, None
            if parent_id in seen:
                return chain + [parent_id], FindingKind.CYCLE
            parent = known.get(parent_id)
            if parent is None:
                return None, None
            seen.add(parent_id)
            chain.append(parent_id)
            current = parent
        return chain, FindingKind.DEPTH_EXCEEDED

    def _check_edges(
        self,
        edges,
        known: dict[str, ChunkModel],
        edge_keys: set[tuple[str, str, RelationshipType]],
    ) -> list[ConsistencyFinding]:
        """Edges that disagree with parent_chunk_id or lack their reverse edge."""
        findings: list[ConsistencyFinding] = []
        for edge in edges:
            source, target, kind = edge.source_chunk_id, edge.target_chunk_id, edge.relationship_type
            source_row = known.get(source)
            target_row = known.get(target)
            document_id = source_row.document_id if source_row else None

            if kind == RelationshipType.PARENT:
                matches = source_row is not None and source_row.parent_chunk_id == target
                reverse = (target, source, RelationshipType.CHILD)
            elif kind == RelationshipType.CHILD:
                matches = target_row is not None and target_row.parent_chunk_id == source
                reverse = (target, source, RelationshipType.PARENT)
            else:
                matches = True
                reverse = (target, source, RelationshipType.SIBLING)

            if not matches:
                findings.append(ConsistencyFinding(
                    kind=FindingKind.ASYMMETRIC_EDGE,
                    chunk_id=source,
                    document_id=document_id,
                    related_chunk_id=target,
                    message=f"{kind.value} edge does not match parent_chunk_id",
                    details={"relationship_type": kind.value},
                ))
            elif reverse not in edge_keys and kind == RelationshipType.SIBLING:
                # Missing reverse parent/child edges were already reported per chunk.
                findings.append(ConsistencyFinding(
                    kind=FindingKind.ASYMMETRIC_EDGE,
                    chunk_id=source,
                    document_id=document_id,
                    related_chunk_id=target,
                    message="sibling edge has no reverse edge",
                    details={"relationship_type": kind.value},
                ))
        return findings

    async def _check_vectors(
        self,
        session: AsyncSession,
        document_id: str,
        chunk_ids: list[str],
    ) -> list[ConsistencyFinding]:
        findings: list[ConsistencyFinding] = []
        for row in await self.embeddings.get_by_chunk_ids(session, chunk_ids):
            actual = len(row.vector or [])
            if actual != self.expected_dimension or row.dimensionality != self.expected_dimension:
                findings.append(ConsistencyFinding(
                    kind=FindingKind.DIMENSION_MISMATCH,
                    chunk_id=row.chunk_id,
                    document_id=document_id,
                    message=f"{row.embedding_type.value} vector has {actual} components",
                    details={
                        "embedding_type": row.embedding_type.value,
                        "expected": self.expected_dimension,
                        "actual": actual,
                    },
                ))
        return findings
