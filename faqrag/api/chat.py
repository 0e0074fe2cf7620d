"""
Chat API.

POST /v1/chat — answer a question from the indexed documents
GET  /v1/chat — retrieval statistics
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_embedder_dep
from ..core.errors import BadRequest
from ..services.embeddings import Embedder
from ..services.search import SearchHit, generate_chat_response, get_search_stats

logger = logging.getLogger(__name__)

chat_router = APIRouter(tags=["chat"])

SNIPPET_LENGTH = 200


class ChatRequest(BaseModel):
    # Non-string messages are rejected in the route like blank ones
    message: Any = None


class ChatSource(BaseModel):
    title: str
    content: str
    similarity: int
    url: Optional[str] = None


class ChatAnswerOut(BaseModel):
    message: str
    sources: list[ChatSource] = []
    confidence: int = 0
    processingTime: int = 0
    model: str = ""
    isLLMGenerated: bool = False


class ChatResponse(BaseModel):
    success: bool = True
    response: ChatAnswerOut


def _source(hit: SearchHit) -> ChatSource:
    return ChatSource(
        title=hit.document_title,
        content=hit.content[:SNIPPET_LENGTH] + "...",
        similarity=round(hit.similarity * 100),
        url=hit.document_url,
    )


@chat_router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    db: AsyncSession = Depends(get_db),
    embedder: Embedder = Depends(get_embedder_dep),
):
    """Retrieve matching chunks and compose an answer with cited sources."""
    message = request.message.strip() if isinstance(request.message, str) else ""
    if not message:
        raise BadRequest(error="메시지가 필요합니다.")

    logger.info("Chat question (%d chars)", len(message))
    answer = await generate_chat_response(db, message, embedder)

    return ChatResponse(
        response=ChatAnswerOut(
            message=answer.answer,
            sources=[_source(h) for h in answer.sources],
            confidence=round(answer.confidence * 100),
            processingTime=answer.processing_time,
            model=answer.model,
            isLLMGenerated=answer.is_llm_generated,
        )
    )


@chat_router.get("/chat")
async def chat_stats(
    db: AsyncSession = Depends(get_db),
    embedder: Embedder = Depends(get_embedder_dep),
):
    return {"success": True, "stats": await get_search_stats(db, embedder)}
