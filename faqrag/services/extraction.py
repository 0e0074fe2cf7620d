"""
Text extraction from uploaded documents.
- pdfplumber for PDFs (flagged, FF_USE_PDF_EXTRACTION)
- python-docx for DOCX
- UTF-8 decode for text formats
"""

import logging
from io import BytesIO
from pathlib import Path

from ..core.flags import get_flags

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".txt", ".md", ".csv", ".json")


async def extract_text(file_bytes: bytes, filename: str) -> tuple[str, dict]:
    """
    Extract text from a file. Returns (text, metadata).
    An empty string means nothing usable was extracted.
    """
    ext = Path(filename).suffix.lower()
    metadata = {"filename": filename}

    if ext == ".pdf":
        if get_flags().use_pdf_extraction:
            text, page_count = _extract_pdf(file_bytes)
            metadata["extractor"] = "pdfplumber"
            metadata["page_count"] = page_count
        else:
            text = ""
            metadata["extractor"] = "disabled"

    elif ext in (".docx", ".doc"):
        text = _extract_docx(file_bytes)
        metadata["extractor"] = "python-docx"

    elif ext in TEXT_EXTENSIONS or not ext:
        text = file_bytes.decode("utf-8", errors="replace")
        metadata["extractor"] = "plaintext"

    else:
        text = ""
        metadata["extractor"] = "unsupported"

    metadata["char_count"] = len(text)
    return text, metadata


def _extract_pdf(file_bytes: bytes) -> tuple[str, int]:
    """Extract text from PDF using pdfplumber (local, free)."""
    try:
        import pdfplumber

        pages_text = []
        with pdfplumber.open(BytesIO(file_bytes)) as pdf:
            for page in pdf.pages:
                text = page.extract_text() or ""
                tables = page.extract_tables()
                if tables:
                    for table in tables:
                        for row in table:
                            if row:
                                text += "\n" + " | ".join(
                                    str(cell) if cell else "" for cell in row
                                )
                pages_text.append(text)
        return "\n\n".join(pages_text), len(pages_text)
    except Exception as e:
        logger.error("pdfplumber extraction failed: %s", e)
        return "", 0


def _extract_docx(file_bytes: bytes) -> str:
    """Extract text from DOCX."""
    try:
        import docx

        doc = docx.Document(BytesIO(file_bytes))
        return "\n\n".join(para.text for para in doc.paragraphs if para.text)
    except Exception as e:
        logger.error("DOCX extraction failed: %s", e)
        return ""
