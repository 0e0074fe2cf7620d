import json

from faqrag.core import redis as redis_mod
from faqrag.core.flags import get_flags
from faqrag.services import realtime


class RecordingRedis:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    async def publish(self, channel, message):
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, json.loads(message)))


def _enable_redis(monkeypatch, client):
    monkeypatch.setenv("FF_USE_REDIS", "true")
    get_flags.cache_clear()
    monkeypatch.setattr(redis_mod, "_redis_client", client)


async def test_publish_is_noop_when_disabled():
    assert await redis_mod.publish("documents", "document.deleted", {}) is False


async def test_document_events_are_published(monkeypatch):
    client = RecordingRedis()
    _enable_redis(monkeypatch, client)

    await realtime.document_processing("doc-1", "completed", {"chunk_count": 3})
    await realtime.document_deleted("doc-1")

    (channel, processing), (_, deleted) = client.published
    assert channel == realtime.DOCUMENTS_CHANNEL
    assert processing["type"] == "document.processing"
    assert processing["data"] == {"document_id": "doc-1", "status": "completed", "chunk_count": 3}
    assert processing["sentAt"]
    assert deleted["data"] == {"document_id": "doc-1"}


async def test_publish_failure_is_swallowed(monkeypatch):
    _enable_redis(monkeypatch, RecordingRedis(fail=True))
    assert await redis_mod.publish("documents", "document.deleted", {"document_id": "x"}) is False
