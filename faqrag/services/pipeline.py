"""
Chunk → embed → persist pipeline for a single document.

process() returns an unsuccessful PipelineResult for expected failures
(nothing to index, embedding provider unavailable or misconfigured).
Anything else raises and is handled by the ingestion orchestrator.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import ConfigurationError, UpstreamUnavailable
from ..models.document import Document, DocumentChunk
from .chunking import chunk_text
from .embeddings import Embedder, get_embedder
from .llm import estimate_tokens

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    success: bool
    chunk_count: int = 0
    error: Optional[str] = None


class RAGPipeline:
    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        settings = get_settings()
        self.embedder = embedder or get_embedder()
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap

    async def process(self, db: AsyncSession, document: Document) -> PipelineResult:
        # Re-processing replaces whatever was indexed before
        await db.execute(
            sql_delete(DocumentChunk).where(DocumentChunk.document_id == document.id)
        )

        chunks = chunk_text(document.content or "", self.chunk_size, self.chunk_overlap)
        if not chunks:
            return PipelineResult(success=False, error="No text content to index.")

        try:
            vectors = await self.embedder.embed(chunks)
        except (ConfigurationError, UpstreamUnavailable) as e:
            logger.warning("Embedding failed for %s: %s", document.id, e)
            return PipelineResult(success=False, error=f"Embedding failed: {e.message}")

        if len(vectors) != len(chunks):
            return PipelineResult(
                success=False,
                error=f"Embedding count mismatch ({len(vectors)} vectors for {len(chunks)} chunks).",
            )

        db.add_all([
            DocumentChunk(
                document_id=document.id,
                chunk_index=i,
                content=text,
                embedding=[float(x) for x in vector],
                token_count=estimate_tokens(text),
            )
            for i, (text, vector) in enumerate(zip(chunks, vectors))
        ])
        await db.flush()

        logger.info(
            "Indexed %s: %d chunks (model=%s)",
            document.id, len(chunks), self.embedder.model_name,
        )
        return PipelineResult(success=True, chunk_count=len(chunks))


def get_pipeline() -> RAGPipeline:
    return RAGPipeline()
