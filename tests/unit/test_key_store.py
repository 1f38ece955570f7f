"""Unit tests for ApiKeyStore against an in-memory SQLite database."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import ApiKey
from app.core.exceptions import NotFoundError, PersistenceError
from app.core.security import generate_api_key, get_key_prefix, hash_api_key
from app.services.key_store import ApiKeyStore


def _row(owner_id: str = "u1", key_name: str = "test-key") -> ApiKey:
    raw_key = generate_api_key()
    return ApiKey(
        user_id=owner_id,
        key_name=key_name,
        key_hash=hash_api_key(raw_key),
        key_prefix=get_key_prefix(raw_key),
    )


@pytest_asyncio.fixture
async def store(session_factory):
    return ApiKeyStore(session_factory=session_factory)


@pytest.mark.asyncio
async def test_insert_assigns_id_and_defaults(store):
    row = await store.insert(_row())
    assert len(row.id) == 36
    assert row.seq is not None
    assert row.is_active is True
    assert row.created_at is not None
    assert row.updated_at is not None


@pytest.mark.asyncio
async def test_duplicate_digest_is_persistence_error(store):
    first = await store.insert(_row())
    clash = _row()
    clash.key_hash = first.key_hash
    with pytest.raises(PersistenceError):
        await store.insert(clash)
    assert len(await store.list_for_owner("u1")) == 1


@pytest.mark.asyncio
async def test_update_refuses_immutable_fields(store):
    row = await store.insert(_row())
    with pytest.raises(ValueError):
        await store.update("u1", row.id, key_hash="0" * 64)
    with pytest.raises(ValueError):
        await store.update("u1", row.id, key_prefix="wap_zzzz")


@pytest.mark.asyncio
async def test_update_bumps_updated_at(store):
    row = await store.insert(_row())
    updated = await store.update("u1", row.id, is_active=False)
    assert updated.is_active is False
    assert updated.updated_at >= row.updated_at
    assert updated.created_at == row.created_at


@pytest.mark.asyncio
async def test_get_and_delete_scoped_to_owner(store):
    row = await store.insert(_row(owner_id="u1"))
    with pytest.raises(NotFoundError):
        await store.get("u2", row.id)
    with pytest.raises(NotFoundError):
        await store.delete("u2", row.id)

    deleted = await store.delete("u1", row.id)
    assert deleted.id == row.id
    with pytest.raises(NotFoundError):
        await store.get("u1", row.id)


@pytest.mark.asyncio
async def test_missing_table_is_persistence_error():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    try:
        store = ApiKeyStore(
            session_factory=async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        )
        with pytest.raises(PersistenceError) as exc_info:
            await store.list_for_owner("u1")
        assert exc_info.value.details["operation"] == "list"
    finally:
        await engine.dispose()
