"""
Document listing with pagination, plus summary statistics.

Statistics are always computed over the whole documents table, regardless
of the status/type filters applied to the page.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from ..core.errors import DependencyError
from ..models.document import Document, DocumentStatus

logger = logging.getLogger(__name__)

FILE_TYPES = ("pdf", "docx", "txt")
URL_TYPES = ("url",)
COMPLETED_STATUSES = (DocumentStatus.COMPLETED, DocumentStatus.INDEXED)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def _counters(rows: list[tuple[str, int, str]]) -> dict:
    return {
        "totalDocuments": len(rows),
        "completedDocuments": sum(1 for status, _, _ in rows if status in COMPLETED_STATUSES),
        "totalChunks": sum(chunks or 0 for _, chunks, _ in rows),
        "pendingDocuments": sum(1 for status, _, _ in rows if status == DocumentStatus.PROCESSING),
        "failedDocuments": sum(1 for status, _, _ in rows if status == DocumentStatus.FAILED),
    }


def compute_stats(rows: Iterable[tuple[str, int, str]]) -> dict:
    """
    rows are (status, chunk_count, type). The overall counters cover every
    row; fileStats and urlStats are separate reductions over pdf/docx/txt
    and url rows respectively.
    """
    rows = list(rows)
    stats = _counters(rows)
    stats["fileStats"] = _counters([r for r in rows if r[2] in FILE_TYPES])
    stats["urlStats"] = _counters([r for r in rows if r[2] in URL_TYPES])
    return stats


def serialize_document(doc: Document) -> dict:
    """Listing view of a document. `content` is deliberately left out."""
    return {
        "id": doc.id,
        "title": doc.title,
        "type": doc.type,
        "status": doc.status,
        "chunk_count": doc.chunk_count,
        "file_size": doc.file_size,
        "file_type": doc.file_type,
        "extraction_status": doc.extraction_status,
        "created_at": doc.created_at.isoformat() if doc.created_at else None,
        "updated_at": doc.updated_at.isoformat() if doc.updated_at else None,
        "document_url": doc.document_url,
        "url": doc.url,
        "size": doc.file_size,
        "error_message": doc.error_message,
    }


async def list_documents(
    db: AsyncSession,
    status: Optional[str] = None,
    type: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> dict:
    """Filtered page of documents + unfiltered stats + pagination info."""
    limit = min(max(limit, 1), MAX_LIMIT)
    offset = max(offset, 0)

    filters = []
    if status:
        filters.append(Document.status == status)
    if type:
        filters.append(Document.type == type)

    try:
        page = await db.execute(
            select(Document)
            .options(defer(Document.content))
            .where(*filters)
            .order_by(Document.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        documents = page.scalars().all()

        total = await db.scalar(select(func.count(Document.id)).where(*filters))

        all_rows = await db.execute(
            select(Document.status, Document.chunk_count, Document.type)
        )
        stats = compute_stats(all_rows.tuples().all())
    except SQLAlchemyError as e:
        logger.error("Document listing failed: %s", e)
        raise DependencyError("Failed to list documents.", error="LIST_FAILED") from e

    logger.info(
        "Listed %d documents (status=%s type=%s limit=%d offset=%d total=%d)",
        len(documents), status, type, limit, offset, total or 0,
    )
    return {
        "documents": [serialize_document(d) for d in documents],
        "stats": stats,
        "pagination": {"limit": limit, "offset": offset, "total": total or 0},
    }
