"""
In-process LRU cache for embedding vectors.

Keyed by a short SHA-256 of (model id, embedding type, input text) so that
identical inputs, common on re-ingestion, skip the remote call.

Dependencies: hashlib, collections.OrderedDict
System role: Cost and latency reduction for repeated embedding inputs
"""

import hashlib
from collections import OrderedDict

from chunk_index.models.embedding import EmbeddingType


def cache_key(model_id: str, embedding_type: EmbeddingType, text: str) -> str:
    digest = hashlib.sha256(f"{model_id}\x00{embedding_type.value}\x00{text}".encode("utf-8"))
    return digest.hexdigest()[:16]


class EmbeddingCache:
    """Bounded LRU mapping of input key to vector. A max_size of 0 disables it."""

    def __init__(self, max_size: int = 1000) -> None:
        self.max_size = max_size
        self._entries: OrderedDict[str, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> list[float] | None:
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return list(vector)

    def put(self, key: str, vector: list[float]) -> None:
        if self.max_size <= 0:
            return
        self._entries[key] = list(vector)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
