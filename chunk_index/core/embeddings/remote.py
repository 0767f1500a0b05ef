"""
Remote embedding function interface and its LangChain adapter.

The generator only depends on EmbeddingFunction: ``embed(text, model_id)``
returning a vector or raising. The adapter wraps any LangChain Embeddings
implementation, one client per model id, and classifies provider errors
into transient (retried) and permanent failures.

Dependencies: langchain_core, langchain_google_genai
System role: Boundary to the external embedding model
"""

import asyncio
import logging
import math
from typing import Callable, Protocol, runtime_checkable

from langchain_core.embeddings import Embeddings

from chunk_index.configs.embedding import EmbeddingSettings
from chunk_index.core.exceptions import ChunkIndexError, EmbeddingError, TransientEmbeddingError

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "429", "500", "502", "503", "504", "rate limit", "ratelimit", "resource exhausted",
    "resourceexhausted", "quota", "timeout", "timed out", "deadline", "unavailable",
    "temporarily", "connection reset", "connection aborted",
)


@runtime_checkable
class EmbeddingFunction(Protocol):
    """Remote text → fixed-length vector function."""

    async def embed(self, text: str, model_id: str) -> list[float]:
        ...


def classify_error(exc: Exception, model_id: str) -> EmbeddingError:
    """Wrap a provider exception as transient or permanent."""
    details = {"model_id": model_id, "error_type": type(exc).__name__}
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return TransientEmbeddingError(f"Embedding call failed: {exc}", details=details)
    text = f"{type(exc).__name__} {exc}".lower()
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return TransientEmbeddingError(f"Embedding call failed: {exc}", details=details)
    return EmbeddingError(f"Embedding call failed: {exc}", details=details)


def coerce_vector(raw: object) -> list[float]:
    """
    Convert a provider response into a list of floats.

    Raises:
        EmbeddingError: If the response is not a flat sequence of finite numbers
    """
    if not isinstance(raw, (list, tuple)) or not raw:
        raise EmbeddingError("Malformed embedding response", details={"type": type(raw).__name__})
    try:
        vector = [float(v) for v in raw]
    except (TypeError, ValueError) as e:
        raise EmbeddingError("Malformed embedding response: non-numeric component") from e
    if not all(math.isfinite(v) for v in vector):
        raise EmbeddingError("Malformed embedding response: non-finite component")
    return vector


class LangChainEmbeddingFunction:
    """EmbeddingFunction backed by LangChain Embeddings clients, one per model id."""

    def __init__(self, factory: Callable[[str], Embeddings]) -> None:
        self._factory = factory
        self._clients: dict[str, Embeddings] = {}

    def _client(self, model_id: str) -> Embeddings:
        client = self._clients.get(model_id)
        if client is None:
            client = self._factory(model_id)
            self._clients[model_id] = client
        return client

    async def embed(self, text: str, model_id: str) -> list[float]:
        """
        Embed one text with the given model.

        Args:
            text: Input text
            model_id: Model identifier

        Returns:
            list[float]: The returned vector

        Raises:
            TransientEmbeddingError: Rate limiting, timeouts, dropped connections
            EmbeddingError: Any other provider failure or a malformed response
        """
        try:
            raw = await self._client(model_id).aembed_query(text)
        except ChunkIndexError:
            raise
        except Exception as e:
            raise classify_error(e, model_id) from e
        return coerce_vector(raw)


def build_embedding_function(settings: EmbeddingSettings) -> LangChainEmbeddingFunction:
    """
    Production embedding function using Gemini embeddings at the configured dimension.

    Args:
        settings: Embedding settings

    Returns:
        LangChainEmbeddingFunction: Adapter creating one client per model id
    """
    from chunk_index.core.embeddings.embeddings_wrapper import FixedDimensionEmbeddings

    def factory(model_id: str) -> Embeddings:
        return FixedDimensionEmbeddings(model=model_id, output_dimensionality=settings.dimension)

    logger.info(f"{__name__}:build_embedding_function - model={settings.model_id} dim={settings.dimension}")
    return LangChainEmbeddingFunction(factory)
