"""Persistence: async engine, session factory, and Base for SQLAlchemy ORM.

Backends: 'postgres' (asyncpg, schema managed by Alembic) or 'sqlite'
(aiosqlite, local development and tests).

Engine and session factory are created lazily on first use (get_db /
get_db_transactional / get_session_factory) so import does not trigger
Settings validation.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings
from app.domain.exceptions import SqlNotConfiguredException

logger = logging.getLogger(__name__)

# Set by _ensure_engine() on first use; avoids get_settings() at import time.
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


def _engine_kwargs() -> dict[str, Any]:
    settings = get_settings()
    kwargs: dict[str, Any] = {"echo": settings.database_echo}
    if settings.database_backend == "postgres":
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.db_pool_size if settings.db_pool_size is not None else 10,
            max_overflow=settings.db_max_overflow if settings.db_max_overflow is not None else 20,
            pool_recycle=3600,
            connect_args={
                "command_timeout": settings.db_command_timeout
                if settings.db_command_timeout is not None
                else 60
            },
        )
    return kwargs


def _ensure_engine() -> None:
    """Create engine and AsyncSessionLocal on first use."""
    global engine, AsyncSessionLocal
    if AsyncSessionLocal is not None:
        return
    settings = get_settings()
    if not settings.database_url:
        return
    engine = create_async_engine(settings.database_url, **_engine_kwargs())
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


def get_engine() -> AsyncEngine:
    _ensure_engine()
    if engine is None:
        raise SqlNotConfiguredException()
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for code running outside a request (run scheduler)."""
    _ensure_engine()
    if AsyncSessionLocal is None:
        logger.error("SQL database not configured: set DATABASE_URL")
        raise SqlNotConfiguredException()
    return AsyncSessionLocal


async def create_all() -> None:
    """Create tables from model metadata (sqlite development only; postgres uses Alembic)."""
    from app.infrastructure.persistence import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


async def get_db() -> AsyncIterator[AsyncSession]:
    """Database session dependency for read operations. Does not commit."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


async def get_db_transactional() -> AsyncIterator[AsyncSession]:
    """Database session dependency for write operations.

    Begins a transaction, commits on success, rolls back on exception.
    """
    factory = get_session_factory()
    async with factory() as session:
        async with session.begin():
            yield session
