"""Base repository: tenant-scoped lookups and persistence error translation."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.exceptions import RepositoryException
from app.infrastructure.persistence.database import Base
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with tenant-scoped get, add and delete.

    Every public method of a subclass runs inside _translate_errors so callers
    only ever see RepositoryException for storage failures.
    """

    def __init__(self, db: AsyncSession, model: type[ModelType]) -> None:
        self.db = db
        self.model = model

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("%s.%s failed", self.model.__name__, operation)
            raise RepositoryException(f"{self.model.__name__} {operation} failed", operation) from exc

    async def _get_model(self, entity_id: str, tenant_id: str, *, refresh: bool = False) -> ModelType | None:
        """Return the row by id within tenant, or None.

        refresh re-reads columns changed by bulk UPDATE statements in this session.
        """
        model: Any = self.model
        stmt = select(self.model).where(model.id == entity_id, model.tenant_id == tenant_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _add(self, obj: ModelType) -> ModelType:
        self.db.add(obj)
        await self.db.flush()
        return obj

    async def _delete(self, obj: ModelType) -> None:
        await self.db.delete(obj)
        await self.db.flush()
