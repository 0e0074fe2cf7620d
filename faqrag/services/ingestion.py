"""
Ingestion orchestrator: normalize → resolve duplicates → persist → index.

The Document row is committed with status `processing` before the pipeline
runs, so an upload is never lost: a pipeline failure leaves the row with
status `failed` and chunk_count 0 instead of failing the request.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import BadRequest, DependencyError, NotFound
from ..core.storage import StorageBackend, get_storage
from ..models.base import new_uuid
from ..models.document import Document, DocumentStatus, ExtractionStatus
from . import realtime
from .duplicates import SKIP, delete_document, resolve
from .normalizer import UploadPayload, normalize, parse_duplicate_action
from .pipeline import PipelineResult, RAGPipeline

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    document_id: Optional[str]
    status: str
    chunk_count: int = 0
    message: str = ""
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "documentId": self.document_id,
            "message": self.message,
            "status": self.status,
            "chunkCount": self.chunk_count,
        }
        if self.error:
            data["error"] = self.error
        return data


async def _store_original(
    payload: UploadPayload, storage: Optional[StorageBackend]
) -> Optional[str]:
    """Keep a copy of the uploaded bytes. Failure only loses document_url."""
    try:
        return await (storage or get_storage()).upload(
            payload.raw, payload.file_name, folder="documents"
        )
    except Exception as e:
        logger.warning("Storing original %s failed: %s", payload.file_name, e)
        return None


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to %s: %s", what, e)
        raise DependencyError(f"Failed to {what}.", error="STORE_FAILED") from e


async def _index(
    db: AsyncSession,
    document: Document,
    pipeline: RAGPipeline,
    verb: str,
) -> IngestionResult:
    """Commit the processing row, run the pipeline, record the outcome."""
    document_id = document.id
    await _commit(db, "save document")
    await realtime.document_processing(document_id, DocumentStatus.PROCESSING)

    try:
        result = await pipeline.process(db, document)
    except Exception as e:
        logger.error("Pipeline raised for %s: %s", document_id, e, exc_info=True)
        await db.rollback()
        result = PipelineResult(success=False, error=f"Pipeline error: {e}")
        document = await db.get(Document, document_id, populate_existing=True)
        if document is None:
            raise DependencyError(
                "Document disappeared during indexing.", error="STORE_FAILED"
            ) from e

    if result.success:
        document.status = DocumentStatus.COMPLETED
        document.chunk_count = result.chunk_count
        document.error_message = None
        message = f"File {verb} and processed into {result.chunk_count} chunks."
    else:
        document.status = DocumentStatus.FAILED
        document.chunk_count = 0
        document.error_message = result.error
        message = f"File {verb}, but indexing failed."

    await _commit(db, "update document status")
    await realtime.document_processing(
        document_id, document.status, {"chunk_count": document.chunk_count}
    )

    logger.info(
        "Ingestion %s: %s (%s) status=%s chunks=%d",
        verb, document.title, document_id, document.status, document.chunk_count,
    )
    return IngestionResult(
        document_id=document_id,
        status=document.status,
        chunk_count=document.chunk_count,
        message=message,
        error=result.error,
    )


def _skipped(title: str, existing_id: str) -> IngestionResult:
    return IngestionResult(
        document_id=existing_id,
        status="skipped",
        skipped=True,
        message=f"'{title}' was skipped.",
    )


async def ingest(
    db: AsyncSession,
    payload: UploadPayload,
    pipeline: RAGPipeline,
    duplicate_action: Optional[str] = None,
    storage: Optional[StorageBackend] = None,
) -> IngestionResult:
    """
    Upload lifecycle for a new file.

    Raises PayloadTooLarge before touching the store, Conflict for an
    unresolved duplicate, DependencyError when the store fails.
    """
    settings = get_settings()
    action = duplicate_action or payload.duplicate_action
    normalized = await normalize(payload, settings.max_file_size)

    resolution = await resolve(db, payload.file_name, action)
    if resolution.outcome == SKIP:
        return _skipped(payload.file_name, resolution.existing.id)

    document = Document(
        id=new_uuid(),
        title=payload.file_name,
        type=normalized.type,
        status=DocumentStatus.PROCESSING,
        content=normalized.content,
        extraction_status=normalized.extraction_status,
        chunk_count=0,
        file_size=normalized.file_size,
        file_type=normalized.file_type,
        document_url=await _store_original(payload, storage),
        doc_metadata=normalized.metadata,
    )
    db.add(document)
    return await _index(db, document, pipeline, "uploaded")


async def reingest(
    db: AsyncSession,
    document_id: str,
    payload: UploadPayload,
    pipeline: RAGPipeline,
    storage: Optional[StorageBackend] = None,
) -> IngestionResult:
    """Replace the content of `document_id` in place and re-index it."""
    settings = get_settings()
    normalized = await normalize(payload, settings.max_file_size)

    try:
        document = await db.get(Document, document_id)
    except SQLAlchemyError as e:
        logger.error("Lookup of %s failed: %s", document_id, e)
        raise DependencyError("Document lookup failed.", error="STORE_FAILED") from e

    previous_url = None
    if document is None:
        logger.info("Re-ingest target %s not found, creating it", document_id)
        document = Document(id=document_id)
        db.add(document)
    else:
        previous_url = document.document_url

    document.title = payload.file_name
    document.type = normalized.type
    document.status = DocumentStatus.PROCESSING
    document.content = normalized.content
    document.extraction_status = normalized.extraction_status
    document.chunk_count = 0
    document.file_size = normalized.file_size
    document.file_type = normalized.file_type
    document.error_message = None
    document.doc_metadata = normalized.metadata
    document.document_url = await _store_original(payload, storage)

    result = await _index(db, document, pipeline, "overwritten")

    if previous_url:
        try:
            await (storage or get_storage()).delete(previous_url)
        except Exception as e:
            logger.warning("Could not remove previous file %s: %s", previous_url, e)
    return result


# ── URL documents ────────────────────────────────────────────────────

async def fetch_page(url: str) -> tuple[str, str]:
    """Fetch a web page and return (page_title, text)."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise BadRequest("A valid http(s) URL is required.", error="INVALID_URL")

    settings = get_settings()
    try:
        async with httpx.AsyncClient(
            timeout=settings.url_fetch_timeout, follow_redirects=True
        ) as client:
            resp = await client.get(url)
            resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Fetching %s failed: %s", url, e)
        raise BadRequest(f"Could not fetch URL: {e}", error="URL_FETCH_FAILED") from e

    soup = BeautifulSoup(resp.text, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.extract()
    text = "\n".join(
        line.strip() for line in soup.get_text("\n").splitlines() if line.strip()
    )
    title = soup.title.string.strip() if soup.title and soup.title.string else ""
    return title, text


async def ingest_url(
    db: AsyncSession,
    url: str,
    pipeline: RAGPipeline,
    duplicate_action: Optional[str] = None,
) -> IngestionResult:
    """Index a web page. The URL itself is the document title."""
    url = (url or "").strip()
    action = parse_duplicate_action(duplicate_action)
    page_title, text = await fetch_page(url)

    resolution = await resolve(db, url, action)
    if resolution.outcome == SKIP:
        return _skipped(url, resolution.existing.id)

    document = Document(
        id=new_uuid(),
        title=url,
        type="url",
        status=DocumentStatus.PROCESSING,
        content=text,
        extraction_status=ExtractionStatus.FULL if text else ExtractionStatus.PLACEHOLDER,
        chunk_count=0,
        file_size=len(text.encode("utf-8")),
        file_type="text/html",
        url=url,
        doc_metadata={"page_title": page_title, "extractor": "beautifulsoup"},
    )
    db.add(document)
    return await _index(db, document, pipeline, "fetched")


# ── Deletion ─────────────────────────────────────────────────────────

async def remove(
    db: AsyncSession,
    document_id: Optional[str] = None,
    url: Optional[str] = None,
) -> tuple[str, int]:
    """Delete by id, or by source URL when no id is given. Returns (id, chunks)."""
    if not document_id and not url:
        raise BadRequest("documentId or url is required.", error="MISSING_TARGET")

    try:
        if document_id:
            target = await db.scalar(select(Document.id).where(Document.id == document_id))
        else:
            target = await db.scalar(select(Document.id).where(Document.url == url).limit(1))
    except SQLAlchemyError as e:
        logger.error("Delete lookup failed: %s", e)
        raise DependencyError("Document lookup failed.", error="STORE_FAILED") from e

    if target is None:
        raise NotFound("No matching document found.", error="DOCUMENT_NOT_FOUND")

    deleted_chunks = await delete_document(db, target)
    return target, deleted_chunks
