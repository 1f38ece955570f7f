import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import Base
from app.services.jwt_service import JWTService


def portal_token(user_id: str, session_id: str | None = None) -> str:
    """Identity token shaped like the auth backend's, signed with the configured secret."""
    return JWTService().create_token(user_id=user_id, session_id=session_id)


@pytest.fixture
def token_for():
    return portal_token


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Async session bound to the in-memory engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app_with_db(db_engine, session_factory):
    """FastAPI app wired to the in-memory test database with a fresh disclosure registry."""
    import app.core.database as db_module
    from app.services.disclosure import DisclosureRegistry

    original_engine = db_module.engine
    original_session = db_module.async_session
    db_module.engine = db_engine
    db_module.async_session = session_factory

    from app.main import app

    original_registry = app.state.disclosures
    app.state.disclosures = DisclosureRegistry()

    yield app

    app.state.disclosures = original_registry
    db_module.engine = original_engine
    db_module.async_session = original_session


@pytest_asyncio.fixture
async def auth_client(app_with_db):
    """Client authenticated as owner u1 in browser session s1."""
    transport = ASGITransport(app=app_with_db)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        client.headers["Authorization"] = f"Bearer {portal_token('u1', session_id='s1')}"
        yield client


@pytest_asyncio.fixture
async def other_client(app_with_db):
    """Client authenticated as a different owner, u2."""
    transport = ASGITransport(app=app_with_db)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        client.headers["Authorization"] = f"Bearer {portal_token('u2', session_id='s2')}"
        yield client


@pytest_asyncio.fixture
async def anon_client(app_with_db):
    """Unauthenticated async HTTP client."""
    transport = ASGITransport(app=app_with_db)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
