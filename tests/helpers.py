from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from faqrag.models.document import Document, DocumentChunk, DocumentStatus
from faqrag.services.normalizer import UploadPayload


async def add_document(
    db,
    title: str,
    chunks: int = 0,
    status: str = DocumentStatus.COMPLETED,
    type: str = "txt",
    **fields,
) -> Document:
    doc = Document(
        title=title,
        type=type,
        status=status,
        content=f"content of {title}",
        chunk_count=chunks,
        file_size=fields.pop("file_size", 100),
        **fields,
    )
    db.add(doc)
    await db.flush()
    for i in range(chunks):
        db.add(DocumentChunk(
            document_id=doc.id, chunk_index=i, content=f"chunk {i}", embedding=[1.0, 0.0],
        ))
    await db.commit()
    return doc


async def count_documents(db, **where) -> int:
    stmt = select(func.count(Document.id))
    for column, value in where.items():
        stmt = stmt.where(getattr(Document, column) == value)
    return await db.scalar(stmt)


async def count_chunks(db, document_id: str) -> int:
    return await db.scalar(
        select(func.count(DocumentChunk.id)).where(DocumentChunk.document_id == document_id)
    )


def text_payload(name: str, text: str, duplicate_action=None) -> UploadPayload:
    raw = text.encode("utf-8")
    return UploadPayload(
        file_name=name,
        file_size=len(raw),
        file_type="text/plain",
        raw=raw,
        duplicate_action=duplicate_action,
    )


def fail_statements(target, monkeypatch, prefix: str) -> None:
    """Make `target.execute` (a session, or the AsyncSession class) raise for SQL starting with prefix."""
    execute = target.execute
    bound = not isinstance(target, type)

    async def failing_execute(*args, **kwargs):
        statement = args[0] if bound else args[1]
        if str(statement).startswith(prefix):
            raise OperationalError(str(statement), {}, Exception("database is locked"))
        return await execute(*args, **kwargs)

    monkeypatch.setattr(target, "execute", failing_execute)
