import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from faqrag.core import database
from faqrag.core.config import get_settings
from faqrag.core.dependencies import get_embedder_dep
from faqrag.core.flags import get_flags
from faqrag.services.embeddings import get_embedder
from faqrag.services.pipeline import RAGPipeline

from fakes import FakeEmbedder


def _clear_caches():
    get_settings.cache_clear()
    get_flags.cache_clear()
    get_embedder.cache_clear()


@pytest.fixture(autouse=True)
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'faqrag.db'}")
    monkeypatch.setenv("LOCAL_STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("FF_USE_REDIS", "false")
    monkeypatch.setenv("FF_USE_S3", "false")
    monkeypatch.setenv("FF_LLM_PROVIDER", "openai")
    monkeypatch.setenv("FF_USE_LLM_ANSWERS", "true")
    monkeypatch.setenv("FF_USE_PDF_EXTRACTION", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("GEMINI_API_KEY", "")
    monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.1")
    monkeypatch.setenv("CHUNK_SIZE", "1000")
    monkeypatch.setenv("CHUNK_OVERLAP", "200")
    monkeypatch.setenv("SEARCH_TOP_K", "5")
    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_session_factory", None)
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def pipeline(embedder):
    return RAGPipeline(embedder=embedder)


@pytest.fixture
async def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'service.db'}")
    async with engine.begin() as conn:
        from faqrag.models import document  # noqa: F401
        await conn.run_sync(database.Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def app(embedder):
    from faqrag.factory import create_app

    app = create_app()
    app.dependency_overrides[get_embedder_dep] = lambda: embedder
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def upload(client):
    def _upload(name: str, text: str, **data):
        return client.post(
            "/v1/documents",
            files={"file": (name, text.encode("utf-8"), "text/plain")},
            data=data,
        )
    return _upload
