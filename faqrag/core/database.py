"""
Document store connection. One lazily created async engine shared by the
API and the ingestion services; SQLite for local runs and tests, Postgres
(asyncpg) in deployment.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for documents and document_chunks."""
    pass


_engine = None
_session_factory = None


def _async_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def _engine_options(url: str) -> dict:
    options = {"echo": get_settings().debug}
    if not url.startswith("sqlite"):
        options.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    return options


def get_engine():
    global _engine
    if _engine is None:
        url = _async_url(get_settings().database_url)
        _engine = create_async_engine(url, **_engine_options(url))
        logger.info("Document store engine created (%s)", url.split(":", 1)[0])
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncSession:
    """Session per request. Committed on success, rolled back on any error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create the documents and document_chunks tables if missing."""
    from ..models import document  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Document tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


async def close_db():
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Document store engine disposed")
