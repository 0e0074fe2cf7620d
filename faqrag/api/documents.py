"""
Document endpoints.

POST   /v1/documents      — upload (multipart `file`, or JSON with Base64 `fileContent`)
POST   /v1/documents/url  — index a web page
GET    /v1/documents      — paginated list + stats
PUT    /v1/documents      — replace the content of an existing document id
DELETE /v1/documents      — delete by documentId or url
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.dependencies import get_db, get_pipeline_dep
from ..core.errors import BadRequest, PayloadTooLarge
from ..services import ingestion
from ..services.ingestion import IngestionResult
from ..services.listing import DEFAULT_LIMIT, list_documents
from ..services.normalizer import parse_json_upload, parse_multipart_upload
from ..services.pipeline import RAGPipeline

logger = logging.getLogger(__name__)

documents_router = APIRouter(tags=["documents"])

# Boundaries, part headers and the small text fields around the file part
MULTIPART_OVERHEAD = 64 * 1024


class UrlRequest(BaseModel):
    url: str
    duplicateAction: Optional[str] = None


def _render(result: IngestionResult) -> dict:
    if result.skipped:
        return {"success": False, "error": "FILE_SKIPPED", "message": result.message}
    return {"success": True, "data": result.to_dict()}


def _is_multipart(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("multipart/form-data")


def _is_json(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


def _check_content_length(request: Request, max_size: int) -> None:
    """Reject an oversized multipart body from its header, before parsing."""
    try:
        length = int(request.headers.get("content-length", ""))
    except ValueError:
        return
    if length > max_size + MULTIPART_OVERHEAD:
        raise PayloadTooLarge(length, max_size)


@documents_router.post("/documents")
async def upload_document(
    request: Request,
    db: AsyncSession = Depends(get_db),
    pipeline: RAGPipeline = Depends(get_pipeline_dep),
):
    """
    Upload a document and index it.

    The response is 200 even if indexing fails; check data.status.
    A duplicate title without duplicateAction is rejected with 409.
    """
    max_size = get_settings().max_file_size

    if _is_multipart(request):
        _check_content_length(request, max_size)
        async with request.form() as form:
            payload = await parse_multipart_upload(form, max_size)
    elif _is_json(request):
        payload = parse_json_upload(await request.body(), max_size)
    else:
        raise BadRequest(
            "Use multipart/form-data or application/json.",
            error="UNSUPPORTED_CONTENT_TYPE",
        )

    logger.info(
        "Upload: %s (%d bytes, duplicateAction=%s)",
        payload.file_name, payload.file_size, payload.duplicate_action,
    )
    return _render(await ingestion.ingest(db, payload, pipeline))


@documents_router.post("/documents/url")
async def upload_url(
    body: UrlRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: RAGPipeline = Depends(get_pipeline_dep),
):
    """Fetch a web page and index its text."""
    result = await ingestion.ingest_url(db, body.url, pipeline, body.duplicateAction)
    return _render(result)


@documents_router.get("/documents")
async def get_documents(
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    status: Optional[str] = None,
    type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    data = await list_documents(db, status=status, type=type, limit=limit, offset=offset)
    return {"success": True, "data": data}


@documents_router.put("/documents")
async def replace_document(
    request: Request,
    db: AsyncSession = Depends(get_db),
    pipeline: RAGPipeline = Depends(get_pipeline_dep),
):
    """Replace an existing document's file (multipart: file, fileName, documentId)."""
    if not _is_multipart(request):
        raise BadRequest("PUT expects multipart/form-data.", error="UNSUPPORTED_CONTENT_TYPE")
    max_size = get_settings().max_file_size
    _check_content_length(request, max_size)

    async with request.form() as form:
        document_id = form.get("documentId")
        if not document_id or not isinstance(document_id, str):
            raise BadRequest("documentId is required.", error="MISSING_DOCUMENT_ID")
        if not form.get("fileName"):
            raise BadRequest("fileName is required.", error="MISSING_FILE_NAME")
        payload = await parse_multipart_upload(
            form, max_size, file_name_field="fileName"
        )

    logger.info("Replace: %s with %s (%d bytes)", document_id, payload.file_name, payload.file_size)
    result = await ingestion.reingest(db, document_id, payload, pipeline)
    return {"success": True, "data": result.to_dict()}


@documents_router.delete("/documents")
async def delete_document(
    document_id: Optional[str] = Query(None, alias="documentId"),
    url: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Delete a document and its chunks. `url` is used only without documentId."""
    deleted_id, deleted_chunks = await ingestion.remove(db, document_id=document_id, url=url)
    return {
        "success": True,
        "message": "Document deleted.",
        "data": {"documentId": deleted_id, "deletedChunks": deleted_chunks},
    }
