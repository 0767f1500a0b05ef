"""
Lexical quality and coherence scoring.

Quality starts at 0.5 and gains bounded bonuses for a useful token count,
a readable character length, natural sentence length and a complete final
sentence. Coherence starts at 0.6 and gains bonuses for multi-sentence
structure and cohesion markers. Both are clamped to [0, 1].

Pure and deterministic; re-run whenever chunk content changes.

Dependencies: re (stdlib), chunk_index.core.hierarchy.text_utils
System role: Chunk quality signal used for ranking and document statistics
"""

import re

from chunk_index.core.hierarchy.text_utils import (
    count_words,
    estimate_tokens,
    split_sentences,
)
from chunk_index.models.chunk import Chunk
from chunk_index.models.results import QualityAssessment

QUALITY_BASE = 0.5
COHERENCE_BASE = 0.6

_USEFUL_TOKENS = (50, 500)
_MIN_TOKENS_FOR_PARTIAL = 20
_READABLE_CHARS = (100, 2000)
_NATURAL_SENTENCE_WORDS = (8, 25)

_COMPLETE_ENDING_RE = re.compile(r"[.!?][\"')\]]*$")
_COHESION_RE = re.compile(
    r"\b(the|and|or|but|however|therefore|thus|because|moreover|furthermore|"
    r"consequently|also|then|finally)\b",
    re.IGNORECASE,
)


def clamp_score(value: float) -> float:
    """Clamp to [0, 1] and round to 4 decimals."""
    return round(min(1.0, max(0.0, value)), 4)


class QualityScorer:
    """Scores chunk content from lexical statistics."""

    def score(self, content: str, token_count: int | None = None) -> QualityAssessment:
        """
        Score a piece of chunk content.

        Args:
            content: Chunk text
            token_count: Precomputed token estimate (estimated when omitted)

        Returns:
            QualityAssessment: Clamped scores plus the statistics they came from
        """
        text = content.strip()
        tokens = estimate_tokens(text) if token_count is None else token_count
        words = count_words(text)
        sentences = split_sentences(text)
        avg_words = words / len(sentences) if sentences else 0.0

        statistics = {
            "word_count": words,
            "sentence_count": len(sentences),
            "avg_words_per_sentence": round(avg_words, 2),
            "token_count": tokens,
            "content_length": len(text),
        }
        if not text:
            return QualityAssessment(quality_score=0.0, coherence_score=0.0, statistics=statistics)

        quality = QUALITY_BASE
        if _USEFUL_TOKENS[0] <= tokens <= _USEFUL_TOKENS[1]:
            quality += 0.2
        elif tokens > _MIN_TOKENS_FOR_PARTIAL:
            quality += 0.1
        if _READABLE_CHARS[0] <= len(text) <= _READABLE_CHARS[1]:
            quality += 0.1
        if _NATURAL_SENTENCE_WORDS[0] <= avg_words <= _NATURAL_SENTENCE_WORDS[1]:
            quality += 0.1
        if _COMPLETE_ENDING_RE.search(text) and not text.endswith("..."):
            quality += 0.1

        coherence = COHERENCE_BASE
        if len(sentences) > 1:
            coherence += 0.2
        if _COHESION_RE.search(text):
            coherence += 0.1

        return QualityAssessment(
            quality_score=clamp_score(quality),
            coherence_score=clamp_score(coherence),
            statistics=statistics,
        )

    def score_chunk(self, chunk: Chunk) -> QualityAssessment:
        return self.score(chunk.content, chunk.token_count)

    def apply(self, chunk: Chunk) -> Chunk:
        """Return a copy of ``chunk`` carrying fresh scores and statistics."""
        assessment = self.score_chunk(chunk)
        return chunk.model_copy(update={
            "quality_score": assessment.quality_score,
            "coherence_score": assessment.coherence_score,
            "chunk_statistics": {**chunk.chunk_statistics, **assessment.statistics},
        })
