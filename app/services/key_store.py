"""Persistence for issued API keys.

The store only ever sees digests and prefixes. Every query is scoped to an owner,
and every SQLAlchemy failure surfaces as PersistenceError after the session rolls back.
"""

from contextlib import asynccontextmanager

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import app.core.database as db_module
from app.core.database import ApiKey
from app.core.exceptions import NotFoundError, PersistenceError

logger = structlog.get_logger()


class ApiKeyStore:
    def __init__(self, session_factory: async_sessionmaker | None = None):
        self._session_factory = session_factory or db_module.async_session

    @asynccontextmanager
    async def _session(self, operation: str):
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("key_store_failed", operation=operation, error=type(exc).__name__)
            raise PersistenceError(details={"retryable": True, "operation": operation}) from exc

    async def insert(self, row: ApiKey) -> ApiKey:
        """Insert a row in its own transaction; nothing is left behind if the commit fails.

        The commit is the last database step. Generated columns are populated
        by the flush, so no read-back can fail after the row is durable.
        """
        async with self._session("insert") as session:
            session.add(row)
            try:
                await session.flush()
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise
            return row

    async def list_for_owner(self, owner_id: str) -> list[ApiKey]:
        """Owner's keys, newest first; equal timestamps fall back to insertion order."""
        async with self._session("list") as session:
            result = await session.execute(
                select(ApiKey)
                .where(ApiKey.user_id == owner_id)
                .order_by(ApiKey.created_at.desc(), ApiKey.seq.desc())
            )
            return list(result.scalars().all())

    async def get(self, owner_id: str, key_id: str) -> ApiKey:
        async with self._session("get") as session:
            return await self._get_owned(session, owner_id, key_id)

    async def update(self, owner_id: str, key_id: str, **values) -> ApiKey:
        """Update mutable columns of an owned row. Digest and prefix are never writable."""
        forbidden = {"id", "seq", "user_id", "key_hash", "key_prefix", "created_at"} & values.keys()
        if forbidden:
            raise ValueError(f"Immutable API key fields: {sorted(forbidden)}")

        async with self._session("update") as session:
            row = await self._get_owned(session, owner_id, key_id)
            for field, value in values.items():
                setattr(row, field, value)
            await session.flush()
            await session.commit()
            return row

    async def delete(self, owner_id: str, key_id: str) -> ApiKey:
        """Hard-delete an owned row and return the removed row."""
        async with self._session("delete") as session:
            row = await self._get_owned(session, owner_id, key_id)
            result = await session.execute(
                delete(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == owner_id)
            )
            if result.rowcount == 0:
                # Lost a race with a concurrent delete.
                raise NotFoundError(f"API key {key_id} not found.")
            await session.commit()
            return row

    @staticmethod
    async def _get_owned(session: AsyncSession, owner_id: str, key_id: str) -> ApiKey:
        result = await session.execute(
            select(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == owner_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"API key {key_id} not found.")
        return row
