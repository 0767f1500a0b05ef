"""
Gemini embedding client pinned to the index dimension.

GoogleGenerativeAIEmbeddings accepts output_dimensionality per call but not
at construction, so a bare client returns full-size vectors. The index
stores exactly one dimensionality, which this subclass applies to every
query call unless the caller overrides it.

Dependencies: langchain_google_genai, python-dotenv
System role: Production client behind LangChainEmbeddingFunction
"""

import logging
from typing import List

from dotenv import load_dotenv
from langchain_google_genai import GoogleGenerativeAIEmbeddings

logger = logging.getLogger(__name__)
load_dotenv()

DEFAULT_MODEL = "models/gemini-embedding-001"


class FixedDimensionEmbeddings(GoogleGenerativeAIEmbeddings):
    """Gemini embeddings that always request the configured vector size."""

    _index_dimension: int = 3072

    def __init__(self, model: str = DEFAULT_MODEL, output_dimensionality: int = 3072, **kwargs) -> None:
        super().__init__(model=model, **kwargs)
        self._index_dimension = output_dimensionality
        logger.info(f"{__name__}:__init__ - model={model} dimension={output_dimensionality}")

    def _dimension(self, override: int | None) -> int:
        return override or self._index_dimension

    def embed_query(
        self,
        text: str,
        task_type: str | None = None,
        title: str | None = None,
        output_dimensionality: int | None = None,
    ) -> List[float]:
        return super().embed_query(
            text,
            task_type=task_type,
            title=title,
            output_dimensionality=self._dimension(output_dimensionality),
        )

    async def aembed_query(
        self,
        text: str,
        task_type: str | None = None,
        title: str | None = None,
        output_dimensionality: int | None = None,
    ) -> List[float]:
        """Used by the ingestion and query paths; one text per call."""
        return await super().aembed_query(
            text,
            task_type=task_type,
            title=title,
            output_dimensionality=self._dimension(output_dimensionality),
        )
