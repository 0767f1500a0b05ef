"""
Embedding input construction.

Each embedding type sends a differently built text to the remote model:
- content: the chunk text only
- contextual: the chunk text framed by a bounded window of neighbor text
- hierarchical: the chunk text annotated with its scale and ancestor headings
- semantic: the chunk text with keyword hints and coarse shape descriptors

Also builds the EmbeddingContext for every chunk of a document from the
chunk list itself (neighbors of the same scale, ancestor headings).

Dependencies: re (stdlib), collections.Counter
System role: Input preparation for the multi-scale embedding generator
"""

import re
from collections import Counter
from typing import Sequence

from chunk_index.models.chunk import Chunk, Scale
from chunk_index.models.embedding import EmbeddingContext, EmbeddingType

_TERM_RE = re.compile(r"[A-Za-z][A-Za-z-]{3,}")
_STOPWORDS = frozenset({
    "about", "above", "after", "again", "also", "because", "been", "before", "being",
    "between", "both", "could", "does", "doing", "down", "during", "each", "from",
    "further", "have", "having", "here", "however", "into", "itself", "just", "more",
    "most", "only", "other", "over", "same", "should", "some", "such", "than", "that",
    "their", "them", "then", "there", "these", "they", "this", "those", "through",
    "therefore", "thus", "under", "until", "very", "were", "what", "when", "where",
    "which", "while", "whom", "will", "with", "would", "your", "within", "without",
})


def extract_topic_terms(text: str, limit: int) -> list[str]:
    """Most frequent non-stopword terms, ties broken by first appearance."""
    if limit <= 0:
        return []
    terms = [t.lower() for t in _TERM_RE.findall(text)]
    counts = Counter(t for t in terms if t not in _STOPWORDS)
    first_seen = {t: i for i, t in reversed(list(enumerate(terms)))}
    ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
    return ranked[:limit]


def _length_bucket(text: str) -> str:
    if len(text) < 100:
        return "short"
    if len(text) < 500:
        return "medium"
    return "long"


def _structure(chunk: Chunk, context: EmbeddingContext) -> str:
    if context.has_children or chunk.child_chunk_ids:
        return "nested"
    if chunk.parent_chunk_id is not None:
        return "sectioned"
    return "flat"


class EmbeddingInputBuilder:
    """Builds the per-type text sent to the embedding model."""

    def __init__(
        self,
        context_window_chars: int = 500,
        domain_keywords: Sequence[str] = (),
        max_keywords: int = 8,
    ) -> None:
        self.context_window_chars = context_window_chars
        self.domain_keywords = [k for k in domain_keywords if k.strip()]
        self.max_keywords = max_keywords

    def build(self, embedding_type: EmbeddingType, chunk: Chunk, context: EmbeddingContext) -> str:
        """
        Build the input text for one embedding type.

        Args:
            embedding_type: Embedding variant
            chunk: Chunk to embed
            context: Neighbors and hierarchy for the chunk

        Returns:
            str: Input text; empty when the chunk has no content
        """
        if not chunk.content.strip():
            return ""
        builder = {
            EmbeddingType.CONTENT: self.content_input,
            EmbeddingType.CONTEXTUAL: self.contextual_input,
            EmbeddingType.HIERARCHICAL: self.hierarchical_input,
            EmbeddingType.SEMANTIC: self.semantic_input,
        }[embedding_type]
        return builder(chunk, context)

    def content_input(self, chunk: Chunk, context: EmbeddingContext) -> str:
        return chunk.content.strip()

    def contextual_input(self, chunk: Chunk, context: EmbeddingContext) -> str:
        parts: list[str] = []
        trail = [h for h in context.ancestor_headings if h]
        if chunk.scale != Scale.SECTION and chunk.heading and chunk.heading not in trail:
            trail.append(chunk.heading)
        if trail:
            parts.append(f"Context: {' > '.join(trail)}")

        window = self.context_window_chars
        if window and context.previous_content:
            parts.append(context.previous_content.strip()[-window:])
        parts.append(chunk.content.strip())
        if window and context.next_content:
            parts.append(context.next_content.strip()[:window])
        return "\n\n".join(p for p in parts if p)

    def hierarchical_input(self, chunk: Chunk, context: EmbeddingContext) -> str:
        structure = [context.document_title or chunk.document_id, *context.ancestor_headings]
        lines = [
            f"Document Structure: {' > '.join(s for s in structure if s)}",
            f"Content Level: {chunk.scale.value} (level {chunk.hierarchy_level})",
        ]
        if chunk.heading:
            lines.append(f"Section: {chunk.heading}")
        lines.append(chunk.content.strip())
        return "\n\n".join(lines)

    def semantic_input(self, chunk: Chunk, context: EmbeddingContext) -> str:
        content = chunk.content.strip()
        lowered = content.lower()
        keywords = [k for k in self.domain_keywords if k.lower() in lowered]
        for term in extract_topic_terms(content, self.max_keywords):
            if len(keywords) >= self.max_keywords:
                break
            if term not in (k.lower() for k in keywords):
                keywords.append(term)

        parts = []
        if keywords:
            parts.append(f"Key Concepts: {', '.join(keywords)}")
        parts.append(content)
        parts.append(
            f"Semantic Context: scale:{chunk.scale.value}, "
            f"length:{_length_bucket(content)}, structure:{_structure(chunk, context)}"
        )
        return "\n\n".join(parts)


def build_contexts(chunks: Sequence[Chunk], document_title: str | None = None) -> dict[str, EmbeddingContext]:
    """
    Embedding contexts for every chunk of one document.

    Neighbors are the previous and next chunk of the same scale in document
    order; ancestor headings come from section chunks on the hierarchy path.

    Args:
        chunks: All chunks of a document, in document order
        document_title: Title used as the root of the hierarchy trail

    Returns:
        dict: chunk_id → EmbeddingContext
    """
    by_id = {c.chunk_id: c for c in chunks}
    by_scale: dict[Scale, list[Chunk]] = {}
    for chunk in sorted(chunks, key=lambda c: (c.start_offset, c.hierarchy_level, c.sequence_order)):
        by_scale.setdefault(chunk.scale, []).append(chunk)

    has_children = {c.parent_chunk_id for c in chunks if c.parent_chunk_id}
    contexts: dict[str, EmbeddingContext] = {}
    for ordered in by_scale.values():
        for index, chunk in enumerate(ordered):
            previous = ordered[index - 1] if index > 0 else None
            following = ordered[index + 1] if index + 1 < len(ordered) else None
            ancestors = [by_id[a] for a in chunk.hierarchy_path[:-1] if a in by_id]
            contexts[chunk.chunk_id] = EmbeddingContext(
                document_title=document_title,
                previous_content=previous.content if previous else None,
                next_content=following.content if following else None,
                hierarchy_path=list(chunk.hierarchy_path),
                ancestor_headings=[a.heading for a in ancestors if a.scale == Scale.SECTION and a.heading],
                has_children=chunk.chunk_id in has_children,
            )
    return contexts
