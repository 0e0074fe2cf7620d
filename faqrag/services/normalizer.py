"""
Content normalization for uploads.

Two transports reach POST /v1/documents:
  - multipart/form-data with a binary `file` part
  - application/json with a Base64 `fileContent` plus fileName/fileSize/fileType

Both are turned into an UploadPayload, then normalize() produces the text
content, document type and extraction status stored on the Document.
"""

import base64
import binascii
import json
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from starlette.datastructures import FormData, UploadFile

from ..core.errors import BadRequest, PayloadTooLarge
from ..models.document import ExtractionStatus
from .extraction import extract_text

logger = logging.getLogger(__name__)

DUPLICATE_ACTIONS = ("skip", "overwrite")

_EXTENSION_TYPES = {
    "pdf": "pdf",
    "docx": "docx",
    "doc": "docx",
    "txt": "txt",
    "md": "txt",
}


@dataclass
class UploadPayload:
    file_name: str
    file_size: int
    file_type: str
    raw: bytes
    duplicate_action: Optional[str] = None


@dataclass
class NormalizedContent:
    content: str
    type: str
    file_size: int
    file_type: str
    extraction_status: str = ExtractionStatus.FULL
    metadata: dict[str, Any] = field(default_factory=dict)


def file_type_from_name(file_name: str) -> str:
    """pdf / docx / txt from the extension, `file` for anything else."""
    ext = Path(file_name).suffix.lower().lstrip(".")
    return _EXTENSION_TYPES.get(ext, "file")


def check_size(size: int, max_size: int) -> None:
    if size > max_size:
        raise PayloadTooLarge(size, max_size)


def parse_duplicate_action(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if value not in DUPLICATE_ACTIONS:
        raise BadRequest(
            f"duplicateAction must be one of {', '.join(DUPLICATE_ACTIONS)}",
            error="INVALID_DUPLICATE_ACTION",
        )
    return value


def _guess_mime(file_name: str) -> str:
    return mimetypes.guess_type(file_name)[0] or "application/octet-stream"


# ── JSON / Base64 ────────────────────────────────────────────────────

def parse_json_upload(body: bytes, max_size: int) -> UploadPayload:
    """Parse a JSON upload body. Size is checked before the Base64 is decoded."""
    if not body or not body.strip():
        raise BadRequest("Request body is empty.", error="EMPTY_BODY")

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest("Invalid JSON body.", error="INVALID_JSON")

    if not isinstance(data, dict):
        raise BadRequest("Invalid JSON body.", error="INVALID_JSON")

    file_name = data.get("fileName")
    file_content = data.get("fileContent")
    if not file_name or not file_content or not isinstance(file_content, str):
        raise BadRequest("fileName and fileContent are required.", error="MISSING_FILE")

    declared_size = data.get("fileSize")
    if declared_size is not None:
        try:
            declared_size = int(declared_size)
        except (TypeError, ValueError):
            raise BadRequest("fileSize must be an integer.", error="INVALID_FILE_SIZE")
        check_size(declared_size, max_size)

    duplicate_action = parse_duplicate_action(data.get("duplicateAction"))

    raw_b64 = file_content
    if raw_b64.startswith("data:") and "," in raw_b64:
        raw_b64 = raw_b64.split(",", 1)[1]
    try:
        raw = base64.b64decode(raw_b64, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequest("fileContent is not valid Base64.", error="INVALID_BASE64")

    check_size(len(raw), max_size)

    return UploadPayload(
        file_name=str(file_name),
        file_size=declared_size if declared_size is not None else len(raw),
        file_type=data.get("fileType") or _guess_mime(str(file_name)),
        raw=raw,
        duplicate_action=duplicate_action,
    )


# ── Multipart ────────────────────────────────────────────────────────

async def parse_multipart_upload(
    form: FormData,
    max_size: int,
    file_name_field: Optional[str] = None,
) -> UploadPayload:
    """Parse a multipart upload. The part size is checked before reading when known."""
    file = form.get("file")
    if not isinstance(file, UploadFile):
        raise BadRequest("No file was provided.", error="MISSING_FILE")

    file_name = (form.get(file_name_field) if file_name_field else None) or file.filename or "upload"
    if file.size is not None:
        check_size(file.size, max_size)

    raw = await file.read()
    check_size(len(raw), max_size)
    if not raw:
        raise BadRequest("Empty file.", error="EMPTY_FILE")

    return UploadPayload(
        file_name=str(file_name),
        file_size=len(raw),
        file_type=file.content_type or _guess_mime(str(file_name)),
        raw=raw,
        duplicate_action=parse_duplicate_action(form.get("duplicateAction")),
    )


# ── Normalization ────────────────────────────────────────────────────

def build_placeholder(file_name: str, file_size: int, doc_type: str) -> str:
    """Metadata-only content for files whose text could not be extracted."""
    label = doc_type.upper() if doc_type != "file" else "Binary"
    uploaded_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    return (
        f"{label} document: {file_name}\n\n"
        "File information:\n"
        f"- File name: {file_name}\n"
        f"- File size: {file_size / 1024 / 1024:.2f}MB\n"
        f"- File type: {label}\n"
        f"- Uploaded at: {uploaded_at}\n\n"
        "Note:\n"
        "Full text extraction for this file is deferred. Only file metadata is "
        "stored until the content can be extracted and re-indexed."
    )


async def normalize(payload: UploadPayload, max_size: int) -> NormalizedContent:
    """Turn an upload into storable text plus type and extraction status."""
    check_size(payload.file_size, max_size)

    doc_type = file_type_from_name(payload.file_name)
    text, metadata = await extract_text(payload.raw, payload.file_name)

    if text.strip():
        extraction_status = ExtractionStatus.FULL
    else:
        extraction_status = ExtractionStatus.PLACEHOLDER
        text = build_placeholder(payload.file_name, payload.file_size, doc_type)
        logger.info(
            "No extractable text in %s (extractor=%s), storing placeholder",
            payload.file_name, metadata.get("extractor"),
        )

    return NormalizedContent(
        content=text,
        type=doc_type,
        file_size=payload.file_size,
        file_type=payload.file_type,
        extraction_status=extraction_status,
        metadata=metadata,
    )
