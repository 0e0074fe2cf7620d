import base64

from sqlalchemy.ext.asyncio import AsyncSession

from faqrag.api import documents as documents_api
from faqrag.core.config import get_settings
from faqrag.core.dependencies import get_embedder_dep

from fakes import UnavailableEmbedder
from helpers import fail_statements

FAQ = "Opening hours are 9 to 5.\n\nSupport answers within one business day."


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "faqrag"}


def test_multipart_upload(client, upload):
    resp = upload("hours.txt", FAQ)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "completed"
    assert body["data"]["chunkCount"] == 1
    assert body["data"]["documentId"]


def test_json_upload(client):
    resp = client.post(
        "/v1/documents",
        json={
            "fileName": "hours.txt",
            "fileContent": base64.b64encode(FAQ.encode("utf-8")).decode("ascii"),
            "fileSize": len(FAQ.encode("utf-8")),
            "fileType": "text/plain",
        },
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "completed"

    listed = client.get("/v1/documents").json()["data"]["documents"]
    assert listed[0]["title"] == "hours.txt"
    assert listed[0]["file_type"] == "text/plain"
    assert listed[0]["extraction_status"] == "full"


def test_duplicate_upload_is_409(client, upload):
    first = upload("hours.txt", FAQ).json()["data"]["documentId"]

    resp = upload("hours.txt", "different text")

    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "DUPLICATE_FILE"
    assert body["data"]["existingDocument"]["id"] == first


def test_duplicate_skip(client, upload):
    upload("hours.txt", FAQ)

    resp = upload("hours.txt", "different text", duplicateAction="skip")

    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "FILE_SKIPPED"
    assert client.get("/v1/documents").json()["data"]["pagination"]["total"] == 1


def test_duplicate_overwrite(client, upload):
    first = upload("hours.txt", FAQ).json()["data"]["documentId"]

    resp = upload("hours.txt", "New hours: 8 to 4.", duplicateAction="overwrite")

    assert resp.status_code == 200
    second = resp.json()["data"]["documentId"]
    assert second != first
    documents = client.get("/v1/documents").json()["data"]["documents"]
    assert [d["id"] for d in documents] == [second]


def test_duplicate_check_failure_is_500(client, upload, monkeypatch):
    fail_statements(AsyncSession, monkeypatch, "SELECT documents.id")

    resp = upload("hours.txt", FAQ)

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "DUPLICATE_CHECK_FAILED"


def test_invalid_duplicate_action(client, upload):
    resp = upload("hours.txt", FAQ, duplicateAction="merge")
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_DUPLICATE_ACTION"


def test_indexing_failure_still_returns_200(app, client, upload):
    app.dependency_overrides[get_embedder_dep] = lambda: UnavailableEmbedder()

    resp = upload("hours.txt", FAQ)

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "failed"
    assert resp.json()["data"]["chunkCount"] == 0
    assert resp.json()["data"]["error"].startswith("Embedding failed")

    stats = client.get("/v1/documents").json()["data"]["stats"]
    assert stats["failedDocuments"] == 1
    assert stats["totalChunks"] == 0


def test_oversize_json_upload_is_rejected(client):
    resp = client.post(
        "/v1/documents",
        json={"fileName": "huge.pdf", "fileContent": "AAAA", "fileSize": 30 * 1024 * 1024},
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "FILE_TOO_LARGE"
    assert body["fileSize"] == 30 * 1024 * 1024
    assert body["maxSize"] == 20 * 1024 * 1024


def test_oversize_multipart_is_rejected_before_parsing(client, upload, monkeypatch):
    monkeypatch.setenv("MAX_FILE_SIZE", "1000")
    get_settings.cache_clear()
    parsed = []

    async def recording_parse(form, *args, **kwargs):
        parsed.append(form)
        raise AssertionError("form should not be parsed")

    monkeypatch.setattr(documents_api, "parse_multipart_upload", recording_parse)

    resp = upload("big.txt", "x" * (200 * 1024))

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "FILE_TOO_LARGE"
    assert body["maxSize"] == 1000
    assert body["fileSize"] > 200 * 1024
    assert parsed == []


def test_empty_json_body(client):
    resp = client.post(
        "/v1/documents", content=b"", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "EMPTY_BODY"


def test_invalid_json_body(client):
    resp = client.post(
        "/v1/documents", content=b"{oops", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_JSON"


def test_unsupported_content_type(client):
    resp = client.post(
        "/v1/documents", content=b"hello", headers={"content-type": "text/plain"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "UNSUPPORTED_CONTENT_TYPE"


def test_listing_filters_and_pagination(client, upload):
    for name in ("a.txt", "b.md", "c.txt"):
        upload(name, f"Contents of {name}.")

    data = client.get("/v1/documents", params={"limit": 2, "type": "txt"}).json()["data"]

    assert len(data["documents"]) == 2
    assert data["pagination"] == {"limit": 2, "offset": 0, "total": 3}
    assert data["stats"]["fileStats"]["totalDocuments"] == 3
    assert data["stats"]["urlStats"]["totalDocuments"] == 0
    assert all("content" not in d for d in data["documents"])


def test_put_replaces_document(client, upload):
    doc_id = upload("hours.txt", FAQ).json()["data"]["documentId"]

    resp = client.put(
        "/v1/documents",
        files={"file": ("blob", b"Weekend hours: closed.", "text/plain")},
        data={"documentId": doc_id, "fileName": "hours-v2.txt"},
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["documentId"] == doc_id
    documents = client.get("/v1/documents").json()["data"]["documents"]
    assert [(d["id"], d["title"]) for d in documents] == [(doc_id, "hours-v2.txt")]


def test_put_requires_document_id(client):
    resp = client.put(
        "/v1/documents", files={"file": ("a.txt", b"text", "text/plain")}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "MISSING_DOCUMENT_ID"

    resp = client.put(
        "/v1/documents",
        files={"file": ("a.txt", b"text", "text/plain")},
        data={"documentId": "some-id"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "MISSING_FILE_NAME"


def test_delete_by_id(client, upload):
    doc_id = upload("hours.txt", FAQ).json()["data"]["documentId"]

    resp = client.delete("/v1/documents", params={"documentId": doc_id})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["data"] == {"documentId": doc_id, "deletedChunks": 1}
    assert client.get("/v1/documents").json()["data"]["pagination"]["total"] == 0


def test_delete_requires_target(client):
    resp = client.delete("/v1/documents")
    assert resp.status_code == 400
    assert resp.json()["error"] == "MISSING_TARGET"


def test_delete_unknown_is_404(client):
    resp = client.delete("/v1/documents", params={"documentId": "nope"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "DOCUMENT_NOT_FOUND"


def test_listing_rejects_non_integer_paging(client):
    resp = client.get("/v1/documents", params={"limit": "ten"})

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "INVALID_REQUEST"
    assert "limit" in resp.json()["message"]


def test_url_upload_requires_url(client):
    for body in ({}, {"url": None}):
        resp = client.post("/v1/documents/url", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_REQUEST"


def test_url_upload_rejects_invalid_url(client):
    resp = client.post("/v1/documents/url", json={"url": "not a url"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_URL"
