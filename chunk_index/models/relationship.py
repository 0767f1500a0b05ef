"""
Relationship edge model.

Dependencies: pydantic
System role: Typed, weighted links between chunks
"""

import enum

from pydantic import BaseModel, Field


class RelationshipType(str, enum.Enum):
    """
    Edge types between chunks.

    PARENT: source is the child, target is its parent
    CHILD: source is the parent, target is its child
    SIBLING: adjacent chunks under the same parent
    """

    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"


PARENT_CHILD_STRENGTH = 1.0
SIBLING_STRENGTH = 0.8


class Relationship(BaseModel):
    """Directed edge, unique per (source, target, type)."""

    source_chunk_id: str
    target_chunk_id: str
    relationship_type: RelationshipType
    relationship_strength: float = Field(default=PARENT_CHILD_STRENGTH, ge=0.0, le=1.0)
