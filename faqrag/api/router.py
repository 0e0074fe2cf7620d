"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

from .chat import chat_router
from .documents import documents_router

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "faqrag"}


# ── V1 routes ────────────────────────────────────────────────────────

router.include_router(chat_router, prefix="/v1")
router.include_router(documents_router, prefix="/v1")
