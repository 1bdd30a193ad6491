"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - AsyncEngine with asyncpg driver for non-blocking I/O.
  - The engine is built lazily on first use. A missing DATABASE_URL is a
    ConfigurationError (500, "Server configuration error") on that request
    instead of an import-time crash, and the URL itself is never echoed.
  - Connection pool sized for typical SaaS workloads:
      pool_size=10, max_overflow=20 → max 30 concurrent DB connections.
  - expire_on_commit=False: attributes stay loaded after commit, so the
    chat flow can commit each write independently and keep using its rows.
  - The chat stream's completion callback runs after the request-scoped
    session is gone; it opens its own session from get_session_factory().
"""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from assistant_platform.core.config import settings
from assistant_platform.core.errors import ConfigurationError
from assistant_platform.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        if not settings.DATABASE_URL:
            logger.error("DATABASE_URL is not configured")
            raise ConfigurationError()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    FastAPI dependency returning the session factory itself.
    Overridden in tests to point at an in-memory database.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a database session.
    Pending work is committed when the request finishes and rolled back on
    exceptions. Services that need a write to be durable before a later
    step (the chat flow) commit explicitly.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
