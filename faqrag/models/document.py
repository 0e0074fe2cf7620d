"""
Documents and their chunks. The database is the only source of truth:
duplicate checks, listings and statistics all read from these tables.
"""

from sqlalchemy import String, Text, BigInteger, Integer, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from .base import TimestampedBase


class DocumentStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    # Legacy rows written before "completed" existed
    INDEXED = "indexed"


class ExtractionStatus:
    FULL = "full"
    PLACEHOLDER = "placeholder"


class Document(TimestampedBase):
    __tablename__ = "documents"

    # Original file name, or the source URL for url documents. Duplicate key.
    title: Mapped[str] = mapped_column(String, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False, default="file", index=True)
    # pdf, docx, txt, url, file
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=DocumentStatus.PROCESSING, index=True
    )  # processing, completed, failed
    content: Mapped[str] = mapped_column(Text, nullable=True)
    extraction_status: Mapped[str] = mapped_column(
        String, nullable=False, default=ExtractionStatus.FULL
    )
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=True)
    file_type: Mapped[str] = mapped_column(String, nullable=True)  # declared MIME type
    url: Mapped[str] = mapped_column(Text, nullable=True, index=True)
    document_url: Mapped[str] = mapped_column(Text, nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=True)
    doc_metadata: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    # extractor, page_count, char_count, etc.


class DocumentChunk(TimestampedBase):
    __tablename__ = "document_chunks"

    document_id: Mapped[str] = mapped_column(
        String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list] = mapped_column(JSON, nullable=True)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
