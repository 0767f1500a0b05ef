"""
Boundary detection over raw document text.

Scans text line by line and proposes segmentation boundaries tagged with
the scale they open:
- heading lines open a section (depth from the heading marker)
- list items and blank-line separated blocks open a paragraph
- sentence terminators open a sentence inside a block

When two heuristics fire at the same offset the coarser scale wins.
Pure and deterministic; no I/O.

Dependencies: re (stdlib), chunk_index.core.hierarchy.text_utils
System role: First stage of hierarchical chunking
"""

import enum
import re
from dataclasses import dataclass

from chunk_index.core.hierarchy.text_utils import sentence_starts
from chunk_index.models.chunk import Scale

_MARKDOWN_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_NUMBERED_HEADING_RE = re.compile(r"^(\d+(?:\.\d+)+)\.?\s+(\S.*)$")
_NAMED_HEADING_RE = re.compile(
    r"^(chapter|section|part|appendix)\s+([0-9]+|[ivxlcdm]+|[a-z])\b[.:]?\s*(.*)$",
    re.IGNORECASE,
)
_CAPS_HEADING_RE = re.compile(r"^[A-Z0-9][A-Z0-9 &,:'()/-]*$")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+•]|\d+[.)]|[a-zA-Z][.)])\s+\S")

_MAX_HEADING_CHARS = 100
_MAX_CAPS_HEADING_CHARS = 80


class BoundaryKind(str, enum.Enum):
    """Heuristic that produced a boundary, in priority order."""

    HEADING = "heading"
    LIST_ITEM = "list_item"
    PARAGRAPH_BREAK = "paragraph_break"
    SENTENCE_END = "sentence_end"


_KIND_PRIORITY = {
    BoundaryKind.HEADING: 0,
    BoundaryKind.LIST_ITEM: 1,
    BoundaryKind.PARAGRAPH_BREAK: 2,
    BoundaryKind.SENTENCE_END: 3,
}


@dataclass(frozen=True)
class Boundary:
    """
    Offset where a new unit of ``scale`` begins.

    Attributes:
        position: Character offset in the source text
        scale: Scale of the unit opened at this offset
        kind: Heuristic that fired
        depth: Heading depth for section boundaries (1 = top level)
        heading: Heading text without markers, for section boundaries
        line_end: Offset just past the heading line, for section boundaries
    """

    position: int
    scale: Scale
    kind: BoundaryKind
    depth: int = 0
    heading: str | None = None
    line_end: int | None = None


def _is_terminal(text: str) -> bool:
    return text.rstrip()[-1:] in {".", "!", "?", ";", ",", ":"}


def _parse_heading(line: str, block_start: bool) -> tuple[int, str] | None:
    """Return (depth, title) when a stripped line looks like a heading."""
    match = _MARKDOWN_HEADING_RE.match(line)
    if match:
        return len(match.group(1)), match.group(2).strip()

    # The remaining patterns collide with ordinary prose; only accept them
    # when the line opens a block and reads like a title.
    if not block_start or len(line) > _MAX_HEADING_CHARS or _is_terminal(line):
        return None

    match = _NUMBERED_HEADING_RE.match(line)
    if match:
        return len(match.group(1).split(".")), match.group(2).strip()

    match = _NAMED_HEADING_RE.match(line)
    if match:
        return 1, line

    letters = sum(1 for ch in line if ch.isalpha())
    if (
        letters >= 4
        and len(line) <= _MAX_CAPS_HEADING_CHARS
        and _CAPS_HEADING_RE.match(line)
    ):
        return 1, line.title()
    return None


class BoundaryDetector:
    """Proposes section, paragraph and sentence boundaries for a document."""

    def detect(self, text: str) -> list[Boundary]:
        """
        Detect candidate boundaries in document order.

        Args:
            text: Raw document text

        Returns:
            list[Boundary]: One boundary per offset, sorted by position.
            Empty when the text has no internal structure at all.
        """
        found: dict[int, Boundary] = {}
        blocks: list[tuple[int, int]] = []

        block_start: int | None = None
        block_end = 0
        seen_content = False
        after_break = True
        offset = 0

        for raw_line in text.splitlines(keepends=True):
            line_start = offset
            offset += len(raw_line)
            stripped = raw_line.strip()

            if not stripped:
                if block_start is not None:
                    blocks.append((block_start, block_end))
                    block_start = None
                after_break = True
                continue

            content_start = line_start + (len(raw_line) - len(raw_line.lstrip()))
            line_end = line_start + len(raw_line.rstrip())

            heading = _parse_heading(stripped, block_start is None)
            if heading is not None:
                if block_start is not None:
                    blocks.append((block_start, block_end))
                    block_start = None
                depth, title = heading
                self._add(found, Boundary(
                    position=content_start,
                    scale=Scale.SECTION,
                    kind=BoundaryKind.HEADING,
                    depth=depth,
                    heading=title,
                    line_end=line_end,
                ))
                seen_content = True
                after_break = True
                continue

            if _LIST_ITEM_RE.match(raw_line):
                if block_start is not None:
                    blocks.append((block_start, block_end))
                block_start = content_start
                self._add(found, Boundary(content_start, Scale.PARAGRAPH, BoundaryKind.LIST_ITEM))
            elif block_start is None:
                block_start = content_start
                if seen_content and after_break:
                    self._add(
                        found,
                        Boundary(content_start, Scale.PARAGRAPH, BoundaryKind.PARAGRAPH_BREAK),
                    )

            block_end = line_end
            seen_content = True
            after_break = False

        if block_start is not None:
            blocks.append((block_start, block_end))

        for start, end in blocks:
            for position in sentence_starts(text, start, end):
                self._add(found, Boundary(position, Scale.SENTENCE, BoundaryKind.SENTENCE_END))

        return [found[position] for position in sorted(found)]

    @staticmethod
    def _add(found: dict[int, Boundary], boundary: Boundary) -> None:
        """Keep the coarsest boundary per offset."""
        current = found.get(boundary.position)
        if current is None or (
            (boundary.scale.order, _KIND_PRIORITY[boundary.kind])
            < (current.scale.order, _KIND_PRIORITY[current.kind])
        ):
            found[boundary.position] = boundary
