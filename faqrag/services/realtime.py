"""
Realtime notifications. Thin wrapper around core.redis.
"""

from ..core import redis as _redis

DOCUMENTS_CHANNEL = "documents"


async def document_processing(doc_id: str, status: str, data: dict = None):
    payload = {"document_id": doc_id, "status": status}
    if data:
        payload.update(data)
    await _redis.publish(DOCUMENTS_CHANNEL, "document.processing", payload)


async def document_deleted(doc_id: str):
    await _redis.publish(DOCUMENTS_CHANNEL, "document.deleted", {"document_id": doc_id})
