import hashlib
import re

from faqrag.core.errors import UpstreamUnavailable
from faqrag.services.embeddings import Embedder

_WORD_RE = re.compile(r"\w+")


class FakeEmbedder(Embedder):
    """Hashed bag-of-words vectors. Shared words give positive similarity."""

    model_name = "fake-embedding"
    dim = 256

    def __init__(self):
        self.calls = 0

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for word in _WORD_RE.findall(text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).hexdigest()
            vec[int(digest, 16) % self.dim] += 1.0
        return vec

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [self._vector(t) for t in texts]


class UnavailableEmbedder(FakeEmbedder):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        raise UpstreamUnavailable("LLM connection failed: connection refused")


class BrokenEmbedder(FakeEmbedder):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("vector backend exploded")
