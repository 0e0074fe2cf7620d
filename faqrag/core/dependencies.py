"""
FastAPI dependencies. Injected into route handlers.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db as _get_db
from ..services.embeddings import Embedder, get_embedder
from ..services.pipeline import RAGPipeline


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


def get_embedder_dep() -> Embedder:
    """Returns the configured embedding backend."""
    return get_embedder()


def get_pipeline_dep(embedder: Embedder = Depends(get_embedder_dep)) -> RAGPipeline:
    """Chunk/embed pipeline bound to the request's embedder."""
    return RAGPipeline(embedder=embedder)
