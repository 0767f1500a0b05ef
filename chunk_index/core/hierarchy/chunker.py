"""
Hierarchical chunker.

Turns a document into an ordered forest of chunks at document, section,
paragraph and (for unstructured text) sentence scale. Each scale has
token bounds: oversized spans are split at the nearest finer boundary,
undersized spans are merged into the following unit under the same parent,
and each chunk is prefixed with a few trailing words of its previous
sibling.

Parent assignment walks chunks in document order: a chunk's parent is the
nearest preceding chunk of strictly coarser rank, so every parent precedes
its children and the result can never contain a cycle.

node_id is derived from (document_id, scale, hierarchy_level,
sequence_order) and chunk_id is a UUIDv5 of node_id, so re-chunking the same
text with the same settings reproduces the same ids.

Dependencies: chunk_index.core.hierarchy.boundary_detector, chunk_index.configs
System role: Builds the chunk tree consumed by scoring, relationships and embeddings
"""

import logging
import uuid
from dataclasses import dataclass

from chunk_index.configs.chunking import ChunkingSettings, ScaleSettings
from chunk_index.core.hierarchy.boundary_detector import (
    Boundary,
    BoundaryDetector,
    BoundaryKind,
)
from chunk_index.core.hierarchy.text_utils import (
    content_metrics,
    estimate_tokens,
    trailing_words,
    word_spans,
    words_for_tokens,
)
from chunk_index.models.chunk import Chunk, Scale
from chunk_index.models.document import DocumentInput

logger = logging.getLogger(__name__)

CHUNK_NAMESPACE = uuid.UUID("6f1c9b52-8a4e-5d3b-9c71-2e0f4a6d8b15")

# Ranks decide parenthood; sections take 1..N from their heading depth.
_DOCUMENT_RANK = 0
_PARAGRAPH_RANK = 100
_SENTENCE_RANK = 200


def make_node_id(document_id: str, scale: Scale, level: int, sequence: int) -> str:
    return f"{document_id}:{scale.value}:{level}.{sequence}"


def make_chunk_id(node_id: str) -> str:
    return str(uuid.uuid5(CHUNK_NAMESPACE, node_id))


@dataclass
class _Span:
    scale: Scale
    start: int
    end: int
    rank: int
    heading: str | None = None


@dataclass
class _Placed:
    span: _Span
    chunk_id: str
    level: int
    path: list[str]
    heading: str | None


class HierarchicalChunker:
    """
    Builds the chunk tree for a single document.

    Stateless apart from configuration; safe to share across documents and
    to run in worker threads.
    """

    def __init__(
        self,
        settings: ChunkingSettings | None = None,
        detector: BoundaryDetector | None = None,
    ) -> None:
        self.settings = settings or ChunkingSettings()
        self.detector = detector or BoundaryDetector()

    def chunk(self, document: DocumentInput) -> list[Chunk]:
        """
        Chunk a document.

        Never raises for empty or malformed text: text without any boundary
        becomes a single sentence-scale chunk.

        Args:
            document: Document id, optional title and plain text

        Returns:
            list[Chunk]: Chunks in document order, parents before children,
            with relationship and structure fields filled in and scores at 0
        """
        text = document.content or ""
        if not text.strip():
            return self._materialize(document, text, [_Span(Scale.SENTENCE, 0, 0, _SENTENCE_RANK)])

        boundaries = self.detector.detect(text)
        headings = [b for b in boundaries if b.kind == BoundaryKind.HEADING]
        paragraph_cuts = [b.position for b in boundaries if b.scale == Scale.PARAGRAPH]
        sentence_cuts = [b.position for b in boundaries if b.scale == Scale.SENTENCE]

        spans: list[_Span] = []
        if not headings and not paragraph_cuts:
            spans.extend(self._unit_spans(
                text, 0, len(text), sentence_cuts, Scale.SENTENCE, _SENTENCE_RANK, [],
            ))
        else:
            spans.extend(self._section_spans(text, headings, paragraph_cuts, sentence_cuts))
            for start, end in self._body_regions(text, headings):
                paragraphs = self._unit_spans(
                    text, start, end, paragraph_cuts, Scale.PARAGRAPH, _PARAGRAPH_RANK,
                    [sentence_cuts],
                )
                spans.extend(paragraphs)
                if self.settings.emit_sentence_chunks:
                    for paragraph in paragraphs:
                        inner = [c for c in sentence_cuts if paragraph.start < c < paragraph.end]
                        if inner:
                            spans.extend(self._unit_spans(
                                text, paragraph.start, paragraph.end, sentence_cuts,
                                Scale.SENTENCE, _SENTENCE_RANK, [],
                            ))

        spans.extend(self._document_spans(text, headings, paragraph_cuts, sentence_cuts))
        spans.sort(key=lambda s: (s.start, s.rank, -s.end))

        chunks = self._materialize(document, text, spans)
        logger.debug(
            f"{__name__}:chunk - document_id={document.document_id} "
            f"boundaries={len(boundaries)} chunks={len(chunks)}"
        )
        return chunks

    # Span construction

    def _document_spans(
        self,
        text: str,
        headings: list[Boundary],
        paragraph_cuts: list[int],
        sentence_cuts: list[int],
    ) -> list[_Span]:
        bounds = self.settings.document
        if estimate_tokens(text) < bounds.min_tokens:
            return []
        trimmed = _trim(text, 0, len(text))
        if trimmed is None:
            return []
        top_depth = min((h.depth for h in headings), default=1)
        section_cuts = [h.position for h in headings if h.depth == top_depth]
        pieces = self._fit(
            text, *trimmed, bounds.max_tokens, [section_cuts, paragraph_cuts, sentence_cuts],
        )
        return [_Span(Scale.DOCUMENT, a, b, _DOCUMENT_RANK) for a, b in pieces]

    def _section_spans(
        self,
        text: str,
        headings: list[Boundary],
        paragraph_cuts: list[int],
        sentence_cuts: list[int],
    ) -> list[_Span]:
        """A section runs from its heading to the next heading of equal or lower depth."""
        bounds = self.settings.section
        spans: list[_Span] = []
        i = 0
        while i < len(headings):
            heading = headings[i]
            end = self._section_end(text, headings, i)
            next_index = i + 1

            # An undersized section with no subsections absorbs the sibling right after it.
            while (
                estimate_tokens(text[heading.position:end]) < bounds.min_tokens
                and next_index < len(headings)
                and headings[next_index].depth == heading.depth
            ):
                end = self._section_end(text, headings, next_index)
                next_index += 1

            trimmed = _trim(text, heading.position, end)
            if trimmed is not None:
                inner_headings = [h.position for h in headings if trimmed[0] < h.position < trimmed[1]]
                cut_levels = [sorted(set(inner_headings) | set(paragraph_cuts)), sentence_cuts]
                for a, b in self._fit(text, *trimmed, bounds.max_tokens, cut_levels):
                    spans.append(_Span(Scale.SECTION, a, b, heading.depth, heading.heading))

            i = next_index
        return spans

    @staticmethod
    def _section_end(text: str, headings: list[Boundary], index: int) -> int:
        depth = headings[index].depth
        for later in headings[index + 1:]:
            if later.depth <= depth:
                return later.position
        return len(text)

    @staticmethod
    def _body_regions(text: str, headings: list[Boundary]) -> list[tuple[int, int]]:
        """Text owned directly by the preamble and by each heading, excluding subsections."""
        if not headings:
            return [(0, len(text))]
        regions = [(0, headings[0].position)]
        for current, following in zip(headings, headings[1:] + [None]):
            region_end = following.position if following is not None else len(text)
            regions.append((current.line_end or current.position, region_end))
        return [(a, b) for a, b in regions if a < b]

    def _unit_spans(
        self,
        text: str,
        start: int,
        end: int,
        cuts: list[int],
        scale: Scale,
        rank: int,
        finer_cuts: list[list[int]],
    ) -> list[_Span]:
        """Split a region at ``cuts``, merge small units forward, split large ones."""
        bounds = self.settings.for_scale(scale)
        edges = [start, *[c for c in cuts if start < c < end], end]
        units = [t for t in (_trim(text, a, b) for a, b in zip(edges, edges[1:])) if t]

        spans: list[_Span] = []
        for a, b in _merge_small(text, units, bounds.min_tokens):
            for piece_start, piece_end in self._fit(text, a, b, bounds.max_tokens, finer_cuts):
                spans.append(_Span(scale, piece_start, piece_end, rank))
        return spans

    def _fit(
        self,
        text: str,
        start: int,
        end: int,
        max_tokens: int,
        cut_levels: list[list[int]],
    ) -> list[tuple[int, int]]:
        """
        Split ``text[start:end]`` so every piece fits ``max_tokens``.

        Cuts are tried coarse to fine; adjacent pieces are then packed back
        together while they still fit, so pieces stay maximal.
        """
        if estimate_tokens(text[start:end]) <= max_tokens:
            return [(start, end)]

        for depth, cuts in enumerate(cut_levels):
            inner = [c for c in cuts if start < c < end]
            if inner:
                remaining = cut_levels[depth + 1:]
                break
        else:
            return _split_words(text, start, end, max_tokens)

        pieces: list[tuple[int, int]] = []
        edges = [start, *inner, end]
        for a, b in zip(edges, edges[1:]):
            trimmed = _trim(text, a, b)
            if trimmed is not None:
                pieces.extend(self._fit(text, *trimmed, max_tokens, remaining))

        packed: list[tuple[int, int]] = []
        for a, b in pieces:
            if packed and estimate_tokens(text[packed[-1][0]:b]) <= max_tokens:
                packed[-1] = (packed[-1][0], b)
            else:
                packed.append((a, b))
        return packed

    # Tree assembly

    def _materialize(self, document: DocumentInput, text: str, spans: list[_Span]) -> list[Chunk]:
        stack: list[_Placed] = []
        level_counters: dict[int, int] = {}
        last_sibling_text: dict[tuple[str | None, Scale], str] = {}
        children: dict[str, list[str]] = {}
        chunks: list[Chunk] = []

        for span in spans:
            while stack and stack[-1].span.rank >= span.rank:
                stack.pop()
            parent = stack[-1] if stack else None

            level = parent.level + 1 if parent else 0
            sequence = level_counters.get(level, 0)
            level_counters[level] = sequence + 1

            node_id = make_node_id(document.document_id, span.scale, level, sequence)
            chunk_id = make_chunk_id(node_id)
            path = [*(parent.path if parent else []), chunk_id]
            heading = span.heading if span.scale == Scale.SECTION else (parent.heading if parent else None)

            base = text[span.start:span.end].strip()
            parent_id = parent.chunk_id if parent else None
            content, overlap_words = self._with_overlap(
                base, last_sibling_text.get((parent_id, span.scale)), self.settings.for_scale(span.scale),
            )
            last_sibling_text[(parent_id, span.scale)] = base

            if parent_id:
                children[parent_id].append(chunk_id)
            children[chunk_id] = []
            stack.append(_Placed(span, chunk_id, level, path, heading))

            chunks.append(Chunk(
                chunk_id=chunk_id,
                document_id=document.document_id,
                node_id=node_id,
                content=content,
                **content_metrics(content),
                scale=span.scale,
                hierarchy_level=level,
                sequence_order=sequence,
                hierarchy_path=path,
                heading=heading,
                start_offset=span.start,
                end_offset=span.end,
                parent_chunk_id=parent_id,
                chunk_statistics={"overlap_words": overlap_words},
                version_id=self.settings.version_id,
                processing_pipeline=self.settings.processing_pipeline,
            ))

        for chunk in chunks:
            chunk.child_chunk_ids = children[chunk.chunk_id]
        return chunks

    @staticmethod
    def _with_overlap(base: str, previous: str | None, bounds: ScaleSettings) -> tuple[str, int]:
        """Prefix ``base`` with trailing words of the previous sibling."""
        if not previous or not bounds.overlap_tokens or not base:
            return base, 0
        prefix = trailing_words(previous, words_for_tokens(bounds.overlap_tokens))
        if not prefix:
            return base, 0
        return f"{prefix} {base}", len(prefix.split())


def _trim(text: str, start: int, end: int) -> tuple[int, int] | None:
    """Shrink a span to exclude surrounding whitespace; None when blank."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return (start, end) if start < end else None


def _merge_small(text: str, units: list[tuple[int, int]], min_tokens: int) -> list[tuple[int, int]]:
    """Merge each unit under ``min_tokens`` with the unit that follows it."""
    merged: list[tuple[int, int]] = []
    pending_start: int | None = None
    last_end = 0
    for start, end in units:
        if pending_start is not None:
            start = pending_start
        last_end = end
        if estimate_tokens(text[start:end]) < min_tokens:
            pending_start = start
            continue
        pending_start = None
        merged.append((start, end))
    if pending_start is not None:
        merged.append((pending_start, last_end))
    return merged


def _split_words(text: str, start: int, end: int, max_tokens: int) -> list[tuple[int, int]]:
    """Last resort for a single oversized sentence: cut every N words."""
    per_piece = max(1, words_for_tokens(max_tokens))
    words = word_spans(text, start, end)
    return [
        (words[i][0], words[min(i + per_piece, len(words)) - 1][1])
        for i in range(0, len(words), per_piece)
    ]
