"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import TimestampedBase
from .document import Document, DocumentChunk, DocumentStatus, ExtractionStatus

__all__ = [
    "TimestampedBase",
    "Document", "DocumentChunk",
    "DocumentStatus", "ExtractionStatus",
]
