"""
Embedding backends. The pipeline and the search service only see the
Embedder interface, so tests can swap in a local implementation.
"""

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Optional

import numpy as np

from ..core.config import get_settings
from . import llm


class Embedder(ABC):
    model_name: str = ""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in order."""
        ...

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed([text])
        return vectors[0]


class OpenAIEmbedder(Embedder):
    """OpenAI-compatible /embeddings endpoint of the active LLM provider."""

    def __init__(self, model: Optional[str] = None):
        self.model_name = model or get_settings().embedding_model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return await llm.embed(texts, model=self.model_name)


@lru_cache
def get_embedder() -> Embedder:
    return OpenAIEmbedder()


def normalize_vectors(vectors) -> np.ndarray:
    """L2-normalize rows so a dot product is cosine similarity."""
    arr = np.asarray(vectors, dtype=np.float32)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    norms = np.linalg.norm(arr, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return arr / norms
