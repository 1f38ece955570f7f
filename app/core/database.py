import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.config import settings


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime.datetime:
    # Naive UTC; the column type carries no timezone.
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


# ── API Keys ─────────────────────────────────────────────────────────────────


class ApiKey(Base):
    """An issued API key. Only the SHA-256 digest and an 8-char prefix are stored."""

    __tablename__ = "api_keys"

    # Insertion order; tie-breaker for created_at ordering, never exposed.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    key_name: Mapped[str] = mapped_column(String(255))
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    key_prefix: Mapped[str] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


# ── Engine & Session ──────────────────────────────────────────────────────────

engine = create_async_engine(settings.portal_db_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Ensure database schema is up to date via Alembic migrations."""
    from app.core.migrations import ensure_db_migrated

    await ensure_db_migrated()


async def close_db() -> None:
    """Dispose of the engine."""
    await engine.dispose()

