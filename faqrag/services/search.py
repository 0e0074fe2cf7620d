"""
Retrieval and answer generation for the FAQ chat.

Chunks are ranked by cosine similarity between the query embedding and the
stored chunk embeddings. The LLM composes an answer from the top matches;
if LLM answers are disabled or the LLM is unreachable, an extractive answer
is returned instead (is_llm_generated=False).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import DependencyError, UpstreamUnavailable
from ..core.flags import get_flags
from ..models.document import Document, DocumentChunk
from . import llm
from .embeddings import Embedder, normalize_vectors
from .listing import COMPLETED_STATUSES

logger = logging.getLogger(__name__)

NO_RESULT_ANSWER = (
    "I couldn't find anything about that in the registered documents. "
    "Try rephrasing the question, or ask an administrator to upload the relevant material."
)

SYSTEM_PROMPT = (
    "You are an FAQ assistant for an internal knowledge base. "
    "Answer using only the numbered CONTEXT passages. "
    "If the context does not contain the answer, say so plainly. "
    "Cite passages like [1], [2]. Answer in the language of the question."
)


@dataclass
class SearchHit:
    chunk_id: str
    document_id: str
    document_title: str
    document_url: Optional[str]
    content: str
    similarity: float


@dataclass
class ChatAnswer:
    answer: str
    sources: list[SearchHit] = field(default_factory=list)
    confidence: float = 0.0
    processing_time: int = 0
    model: str = ""
    is_llm_generated: bool = False


async def search_chunks(
    db: AsyncSession,
    query: str,
    embedder: Embedder,
    top_k: Optional[int] = None,
    threshold: Optional[float] = None,
) -> list[SearchHit]:
    """Top-k chunks of completed documents above the similarity threshold."""
    settings = get_settings()
    top_k = top_k or settings.search_top_k
    threshold = settings.similarity_threshold if threshold is None else threshold

    try:
        result = await db.execute(
            select(
                DocumentChunk.id,
                DocumentChunk.document_id,
                DocumentChunk.content,
                DocumentChunk.embedding,
                Document.title,
                Document.url,
                Document.document_url,
            )
            .join(Document, Document.id == DocumentChunk.document_id)
            .where(Document.status.in_(COMPLETED_STATUSES))
        )
        rows = [r for r in result.all() if r.embedding]
    except SQLAlchemyError as e:
        logger.error("Chunk lookup failed: %s", e)
        raise DependencyError("Search failed.", error="SEARCH_FAILED") from e

    if not rows:
        return []

    query_vec = normalize_vectors(await embedder.embed_query(query))[0]
    rows = [r for r in rows if len(r.embedding) == query_vec.shape[0]]
    if not rows:
        logger.warning("No stored embeddings match query dimension %d", query_vec.shape[0])
        return []

    scores = normalize_vectors([r.embedding for r in rows]) @ query_vec
    order = np.argsort(-scores)[:top_k]

    hits = [
        SearchHit(
            chunk_id=rows[i].id,
            document_id=rows[i].document_id,
            document_title=rows[i].title,
            document_url=rows[i].url or rows[i].document_url,
            content=rows[i].content,
            similarity=float(scores[i]),
        )
        for i in order
        if scores[i] >= threshold
    ]
    logger.info(
        "Search: %d candidates, %d hits (top=%.3f)",
        len(rows), len(hits), hits[0].similarity if hits else 0.0,
    )
    return hits


def score_confidence(hits: list[SearchHit], top_k: int) -> float:
    """Blend of mean similarity and how many of the top_k slots were filled."""
    if not hits:
        return 0.0
    avg = sum(h.similarity for h in hits) / len(hits)
    retrieval = min(max(avg, 0.0), 1.0)
    coverage = min(len(hits) / max(top_k, 1), 1.0)
    return round(0.7 * retrieval + 0.3 * coverage, 2)


def build_context(hits: list[SearchHit]) -> str:
    return "\n\n".join(
        f"[{i}] ({h.document_title})\n{h.content}" for i, h in enumerate(hits, 1)
    )


def build_extractive_answer(hits: list[SearchHit], limit: int = 3) -> str:
    parts = ["Here is what the registered documents say:"]
    for i, h in enumerate(hits[:limit], 1):
        snippet = h.content.strip()
        if len(snippet) > 300:
            snippet = snippet[:297] + "..."
        parts.append(f"[{i}] {h.document_title}\n{snippet}")
    return "\n\n".join(parts)


async def generate_chat_response(
    db: AsyncSession,
    message: str,
    embedder: Embedder,
) -> ChatAnswer:
    settings = get_settings()
    start = time.monotonic()

    hits = await search_chunks(db, message, embedder)

    if not hits:
        answer = ChatAnswer(answer=NO_RESULT_ANSWER, model="none")
    elif not get_flags().use_llm_answers:
        answer = ChatAnswer(
            answer=build_extractive_answer(hits), sources=hits, model="extractive",
        )
    else:
        prompt = f"QUESTION:\n{message}\n\nCONTEXT:\n{build_context(hits)}\n\nANSWER:"
        try:
            text = await llm.chat_simple(prompt, system=SYSTEM_PROMPT)
            answer = ChatAnswer(
                answer=text, sources=hits, model=llm.active_model(), is_llm_generated=True,
            )
        except UpstreamUnavailable as e:
            logger.warning("LLM unavailable, answering extractively: %s", e)
            answer = ChatAnswer(
                answer=build_extractive_answer(hits), sources=hits, model="extractive",
            )

    answer.confidence = score_confidence(hits, settings.search_top_k)
    answer.processing_time = int((time.monotonic() - start) * 1000)
    logger.info(
        "Chat answered in %dms (sources=%d, confidence=%.2f, llm=%s)",
        answer.processing_time, len(hits), answer.confidence, answer.is_llm_generated,
    )
    return answer


async def get_search_stats(db: AsyncSession, embedder: Embedder) -> dict:
    try:
        total_documents = await db.scalar(select(func.count(Document.id))) or 0
        completed_documents = await db.scalar(
            select(func.count(Document.id)).where(Document.status.in_(COMPLETED_STATUSES))
        ) or 0
        total_chunks = await db.scalar(select(func.count(DocumentChunk.id))) or 0
        embedded_chunks = await db.scalar(
            select(func.count(DocumentChunk.id))
            .join(Document, Document.id == DocumentChunk.document_id)
            .where(Document.status.in_(COMPLETED_STATUSES))
        ) or 0
    except SQLAlchemyError as e:
        logger.error("Search stats failed: %s", e)
        raise DependencyError("Failed to load search statistics.", error="STATS_FAILED") from e

    return {
        "totalDocuments": total_documents,
        "completedDocuments": completed_documents,
        "totalChunks": total_chunks,
        "embeddedChunks": embedded_chunks,
        "averageChunksPerDocument": (
            round(total_chunks / completed_documents, 2) if completed_documents else 0.0
        ),
        "embeddingModel": embedder.model_name,
        "llmModel": llm.active_model(),
        "similarityThreshold": get_settings().similarity_threshold,
        "topK": get_settings().search_top_k,
    }
