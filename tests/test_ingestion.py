from pathlib import Path

import pytest

from faqrag.core.errors import BadRequest, Conflict, DependencyError, NotFound
from faqrag.models.document import Document, DocumentStatus
from faqrag.services import ingestion
from faqrag.services.pipeline import RAGPipeline

from fakes import BrokenEmbedder, UnavailableEmbedder
from helpers import count_chunks, count_documents, fail_statements, text_payload

FAQ = "Refunds are issued within 14 days.\n\nShipping is free above 50 EUR."


async def test_ingest_indexes_new_document(db, pipeline):
    result = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)

    assert result.status == DocumentStatus.COMPLETED
    assert result.chunk_count == 1
    assert result.to_dict()["documentId"] == result.document_id

    doc = await db.get(Document, result.document_id)
    assert doc.title == "faq.txt"
    assert doc.type == "txt"
    assert doc.content == FAQ
    assert doc.error_message is None
    assert await count_chunks(db, doc.id) == 1
    assert Path(doc.document_url).read_bytes() == FAQ.encode("utf-8")


async def test_duplicate_without_action_is_rejected(db, pipeline):
    await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)
    with pytest.raises(Conflict):
        await ingestion.ingest(db, text_payload("faq.txt", "other"), pipeline)
    assert await count_documents(db) == 1


async def test_skip_returns_existing_id(db, pipeline):
    first = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)

    result = await ingestion.ingest(db, text_payload("faq.txt", "new", "skip"), pipeline)

    assert result.skipped
    assert result.document_id == first.document_id
    assert await count_documents(db) == 1
    assert (await db.get(Document, first.document_id)).content == FAQ


async def test_overwrite_replaces_document(db, pipeline):
    first = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)

    result = await ingestion.ingest(
        db, text_payload("faq.txt", "Only one answer now."), pipeline, duplicate_action="overwrite"
    )

    assert result.status == DocumentStatus.COMPLETED
    assert result.document_id != first.document_id
    assert await count_documents(db) == 1
    assert await count_documents(db, id=first.document_id) == 0
    assert await count_chunks(db, first.document_id) == 0


async def test_failed_overwrite_creates_no_replacement(db, pipeline, monkeypatch):
    first = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)
    fail_statements(db, monkeypatch, "DELETE FROM documents")

    with pytest.raises(DependencyError) as exc:
        await ingestion.ingest(
            db, text_payload("faq.txt", "Replacement."), pipeline, duplicate_action="overwrite"
        )

    assert exc.value.error == "DELETE_FAILED"
    assert await count_documents(db) == 1
    assert await count_documents(db, id=first.document_id) == 1
    assert await count_chunks(db, first.document_id) == 1


async def test_pipeline_failure_keeps_failed_row(db):
    pipeline = RAGPipeline(embedder=UnavailableEmbedder())

    result = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)

    assert result.status == DocumentStatus.FAILED
    assert result.chunk_count == 0
    assert result.error.startswith("Embedding failed")
    doc = await db.get(Document, result.document_id)
    assert doc.status == DocumentStatus.FAILED
    assert doc.chunk_count == 0
    assert doc.error_message == result.error
    assert await count_chunks(db, doc.id) == 0


async def test_pipeline_exception_is_recorded(db):
    pipeline = RAGPipeline(embedder=BrokenEmbedder())

    result = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)

    assert result.status == DocumentStatus.FAILED
    assert result.error == "Pipeline error: vector backend exploded"
    assert await count_documents(db, status=DocumentStatus.FAILED) == 1


async def test_reingest_replaces_content_in_place(db, pipeline):
    first = await ingestion.ingest(db, text_payload("faq.txt", FAQ), pipeline)
    old_file = Path((await db.get(Document, first.document_id)).document_url)

    long_text = "\n\n".join(f"Question {i}? " + "answer " * 40 for i in range(12))
    result = await ingestion.reingest(
        db, first.document_id, text_payload("faq-v2.txt", long_text), pipeline
    )

    doc = await db.get(Document, first.document_id)
    assert result.document_id == first.document_id
    assert doc.title == "faq-v2.txt"
    assert doc.status == DocumentStatus.COMPLETED
    assert doc.chunk_count > 1
    assert await count_chunks(db, doc.id) == doc.chunk_count
    assert await count_documents(db) == 1
    assert not old_file.exists()


async def test_reingest_creates_missing_document(db, pipeline):
    result = await ingestion.reingest(db, "fixed-id", text_payload("faq.txt", FAQ), pipeline)

    assert result.document_id == "fixed-id"
    assert result.status == DocumentStatus.COMPLETED
    assert (await db.get(Document, "fixed-id")).title == "faq.txt"


async def test_ingest_url_uses_url_as_title(db, pipeline, monkeypatch):
    async def fake_fetch(url):
        return "Help Center", "Passwords can be reset from the account page."

    monkeypatch.setattr(ingestion, "fetch_page", fake_fetch)
    url = "https://help.example.com/reset"

    result = await ingestion.ingest_url(db, url, pipeline)

    doc = await db.get(Document, result.document_id)
    assert result.status == DocumentStatus.COMPLETED
    assert doc.title == url
    assert doc.url == url
    assert doc.type == "url"
    assert doc.doc_metadata["page_title"] == "Help Center"

    skipped = await ingestion.ingest_url(db, url, pipeline, duplicate_action="skip")
    assert skipped.skipped

    deleted_id, deleted_chunks = await ingestion.remove(db, url=url)
    assert deleted_id == doc.id
    assert deleted_chunks == 1
    assert await count_documents(db) == 0


async def test_fetch_page_rejects_non_http_url():
    with pytest.raises(BadRequest) as exc:
        await ingestion.fetch_page("ftp://example.com/file")
    assert exc.value.error == "INVALID_URL"


async def test_remove_requires_target(db):
    with pytest.raises(BadRequest):
        await ingestion.remove(db)


async def test_remove_unknown_document(db):
    with pytest.raises(NotFound):
        await ingestion.remove(db, document_id="missing")
