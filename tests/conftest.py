"""Pytest configuration and fixtures for flowline.

Uses app.main:app for HTTP tests and app.infrastructure.persistence.database
for DB-dependent fixtures. Tests run against a throwaway SQLite file; the
schema is recreated for every test that touches the database.
"""

import os
import tempfile

# Settings are read lazily, but app.main builds the app (and reads settings)
# at import time, so the test environment must be in place first.
_DB_DIR = tempfile.mkdtemp(prefix="flowline-tests-")
os.environ.setdefault("DATABASE_BACKEND", "sqlite")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/test.db")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TELEMETRY_ENABLED", "false")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.core.config import get_settings  # noqa: E402
from app.infrastructure.persistence import database  # noqa: E402
from app.infrastructure.persistence import models  # noqa: E402, F401
from app.infrastructure.services.capability_registry import build_default_registry  # noqa: E402
from app.main import app  # noqa: E402

TENANT_ID = "tenant-a"
OTHER_TENANT_ID = "tenant-b"


async def _reset_schema() -> None:
    async with database.get_engine().begin() as conn:
        await conn.run_sync(database.Base.metadata.drop_all)
        await conn.run_sync(database.Base.metadata.create_all)


@pytest.fixture
async def sqlite_db():
    """Fresh schema on the test SQLite file; engine disposed after the test.

    The engine is bound to the test's event loop, so it is never reused
    across tests.
    """
    get_settings.cache_clear()
    await _reset_schema()
    yield database.get_session_factory()
    await database.dispose_engine()


@pytest.fixture
async def client(sqlite_db) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI). Lifespan is not run."""
    app.state.capabilities = build_default_registry()
    app.state.run_scheduler = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def tenant_headers() -> dict[str, str]:
    return {"X-Tenant-ID": TENANT_ID}


@pytest.fixture
async def db_session(sqlite_db) -> AsyncSession:
    """Database session for repository/integration tests. Rolls back after test."""
    async with sqlite_db() as session:
        yield session
        await session.rollback()
