"""
Text statistics shared by the chunker, scorer and embedding inputs.

Token counts are estimated from whitespace-delimited words at 1.33 tokens
per word, matching the estimate used when the per-scale bounds were tuned.

Dependencies: hashlib, re (stdlib)
System role: Deterministic lexical helpers
"""

import hashlib
import math
import re

TOKENS_PER_WORD = 1.33

_WORD_RE = re.compile(r"\S+")
_SENTENCE_END_RE = re.compile(r"[.!?]+[\"')\]]*(?=\s|$)")
_ABBREVIATIONS = frozenset({
    "e.g.", "i.e.", "etc.", "vs.", "cf.", "al.", "approx.", "fig.", "no.",
    "mr.", "mrs.", "ms.", "dr.", "prof.", "sr.", "jr.", "st.",
})


def count_words(text: str) -> int:
    return len(text.split())


def estimate_tokens(text: str) -> int:
    """Estimated model tokens for a piece of text (0 for blank text)."""
    words = count_words(text)
    return math.ceil(words * TOKENS_PER_WORD) if words else 0


def words_for_tokens(tokens: int) -> int:
    """Largest word count whose token estimate stays within ``tokens``."""
    return int(tokens / TOKENS_PER_WORD)


def compute_content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def content_metrics(content: str) -> dict[str, int | str]:
    """
    Derived fields that must be recomputed whenever chunk content changes.

    Args:
        content: Chunk text

    Returns:
        dict: content_hash, token_count, character_count, word_count
    """
    return {
        "content_hash": compute_content_hash(content),
        "token_count": estimate_tokens(content),
        "character_count": len(content),
        "word_count": count_words(content),
    }


def sentence_starts(text: str, start: int = 0, end: int | None = None) -> list[int]:
    """
    Offsets where a new sentence begins inside ``text[start:end]``.

    A sentence ends at a run of terminal punctuation (optionally followed by
    closing quotes or brackets) and whitespace, when the next word does not
    start in lower case and the terminated word is not a common abbreviation
    or a single-letter initial.

    Args:
        text: Full document text
        start: Inclusive start offset of the region
        end: Exclusive end offset of the region

    Returns:
        list[int]: Strictly increasing offsets, each inside the region
    """
    end = len(text) if end is None else end
    starts: list[int] = []
    for match in _SENTENCE_END_RE.finditer(text, start, end):
        word_start = match.start()
        while word_start > start and not text[word_start - 1].isspace():
            word_start -= 1
        token = text[word_start:match.end()].lower()
        if token in _ABBREVIATIONS or (len(token) == 2 and token[0].isalpha()):
            continue
        nxt = match.end()
        while nxt < end and text[nxt].isspace():
            nxt += 1
        if nxt >= end or text[nxt].islower():
            continue
        starts.append(nxt)
    return starts


def split_sentences(text: str) -> list[str]:
    """Split text into trimmed, non-empty sentences."""
    edges = [0, *sentence_starts(text), len(text)]
    sentences = (text[a:b].strip() for a, b in zip(edges, edges[1:]))
    return [s for s in sentences if s]


def trailing_words(text: str, count: int) -> str:
    """Last ``count`` words of ``text`` joined by single spaces."""
    if count <= 0:
        return ""
    return " ".join(text.split()[-count:])


def word_spans(text: str, start: int, end: int) -> list[tuple[int, int]]:
    """Offsets of every whitespace-delimited word inside ``text[start:end]``."""
    return [m.span() for m in _WORD_RE.finditer(text, start, end)]
