"""
Duplicate detection by exact title and the skip / overwrite / block policy.

Titles are compared with plain equality (case-sensitive). There is no unique
constraint on documents.title: two concurrent first uploads of the same name
can both pass the check. Overwrite deletes the old rows before the new one
is created.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete as sql_delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import Conflict, DependencyError
from ..core.storage import get_storage
from ..models.document import Document, DocumentChunk, DocumentStatus
from . import realtime

logger = logging.getLogger(__name__)

PROCEED = "proceed"
SKIP = "skip"


@dataclass
class DocumentSummary:
    id: str
    title: str
    created_at: Optional[datetime]
    file_size: int
    chunk_count: int
    status: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "file_size": self.file_size,
            "chunk_count": self.chunk_count,
            "status": self.status,
        }


@dataclass
class Resolution:
    outcome: str
    existing: Optional[DocumentSummary] = None

    @property
    def is_duplicate(self) -> bool:
        return self.existing is not None


async def find_by_title(db: AsyncSession, title: str) -> Optional[DocumentSummary]:
    """Exact-title lookup, first match only. Store errors raise DependencyError."""
    try:
        result = await db.execute(
            select(
                Document.id,
                Document.title,
                Document.created_at,
                Document.file_size,
                Document.chunk_count,
                Document.status,
            )
            .where(Document.title == title)
            .limit(1)
        )
        row = result.first()
    except SQLAlchemyError as e:
        logger.error("Duplicate check failed for %r: %s", title, e)
        raise DependencyError("Duplicate check failed.", error="DUPLICATE_CHECK_FAILED") from e

    if row is None:
        return None

    return DocumentSummary(
        id=row.id,
        title=row.title,
        created_at=row.created_at,
        file_size=row.file_size or 0,
        chunk_count=row.chunk_count or 0,
        status=row.status or DocumentStatus.INDEXED,
    )


async def resolve(
    db: AsyncSession,
    title: str,
    action: Optional[str] = None,
) -> Resolution:
    """
    Decide what happens to an upload named `title`.

    No match → PROCEED. Match without action → Conflict. `skip` → SKIP with
    no mutation. `overwrite` → the existing document and its chunks are
    deleted, then PROCEED.
    """
    existing = await find_by_title(db, title)
    logger.info(
        "Duplicate check: %s → %s (action=%s)",
        title, existing.id if existing else "none", action,
    )

    if existing is None:
        return Resolution(outcome=PROCEED)

    if action is None:
        raise Conflict(
            error="DUPLICATE_FILE",
            extra={
                "data": {
                    "fileName": title,
                    "existingDocument": existing.to_dict(),
                    "message": f"'{title}' already exists. Choose skip or overwrite.",
                }
            },
        )

    if action == SKIP:
        logger.info("Skipping upload of %s (existing %s)", title, existing.id)
        return Resolution(outcome=SKIP, existing=existing)

    # overwrite
    try:
        await delete_document(db, existing.id)
    except DependencyError as e:
        raise DependencyError(
            "Failed to delete the existing document.", error="DELETE_FAILED"
        ) from e
    logger.info("Overwrite: deleted %s (%s), proceeding with new upload", existing.id, title)
    return Resolution(outcome=PROCEED, existing=existing)


async def delete_document(db: AsyncSession, document_id: str) -> int:
    """
    Delete a document and all of its chunks, then commit.
    Returns the number of chunks deleted. Store errors raise DependencyError.
    The stored original upload is removed best-effort afterwards.
    """
    try:
        stored_at = await db.scalar(
            select(Document.document_url).where(Document.id == document_id)
        )
        chunks = await db.execute(
            sql_delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
        )
        await db.execute(sql_delete(Document).where(Document.id == document_id))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to delete document %s: %s", document_id, e)
        raise DependencyError("Document deletion failed.", error="DELETE_FAILED") from e

    deleted_chunks = chunks.rowcount or 0
    logger.info("Deleted document %s (%d chunks)", document_id, deleted_chunks)

    if stored_at:
        try:
            await get_storage().delete(stored_at)
        except Exception as e:
            logger.warning("Could not remove stored file %s: %s", stored_at, e)

    await realtime.document_deleted(document_id)
    return deleted_chunks
