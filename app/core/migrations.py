"""Schema management for the key store.

Startup brings the database to the Alembic head. Three cases are handled:
an empty database is created from the models and stamped; an ``api_keys``
table that Alembic has never seen is stamped only if it already has the
digest-only shape; a tracked database is upgraded.
"""

import asyncio
import dataclasses
from pathlib import Path

import structlog
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text

from app.core.database import ApiKey, Base, engine

logger = structlog.get_logger()

_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent

# The dashboard's first schema stored the raw key in this column.
LEGACY_PLAINTEXT_COLUMNS = frozenset({"api_key"})


class SchemaStateError(RuntimeError):
    """The database holds an api_keys table this service refuses to adopt."""


@dataclasses.dataclass(frozen=True)
class SchemaState:
    tables: frozenset[str]
    key_columns: frozenset[str]
    revision: str | None

    @property
    def is_tracked(self) -> bool:
        return "alembic_version" in self.tables

    @property
    def has_key_table(self) -> bool:
        return ApiKey.__tablename__ in self.tables

    @property
    def plaintext_columns(self) -> set[str]:
        return set(self.key_columns & LEGACY_PLAINTEXT_COLUMNS)

    @property
    def missing_columns(self) -> set[str]:
        expected = {column.name for column in ApiKey.__table__.columns}
        return expected - self.key_columns


def _alembic_cfg() -> Config:
    cfg = Config(str(_BACKEND_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(_BACKEND_ROOT / "alembic"))
    return cfg


def read_schema_state(connection) -> SchemaState:
    """Sync inspection, run through ``AsyncConnection.run_sync``."""
    insp = inspect(connection)
    tables = frozenset(insp.get_table_names())

    key_columns: frozenset[str] = frozenset()
    if ApiKey.__tablename__ in tables:
        key_columns = frozenset(c["name"] for c in insp.get_columns(ApiKey.__tablename__))

    revision = None
    if "alembic_version" in tables:
        revision = connection.execute(text("SELECT version_num FROM alembic_version")).scalar()

    return SchemaState(tables=tables, key_columns=key_columns, revision=revision)


def _check_adoptable(state: SchemaState) -> None:
    if state.plaintext_columns:
        raise SchemaStateError(
            f"{ApiKey.__tablename__} has plaintext key column(s) {sorted(state.plaintext_columns)}; "
            "migrate those rows to digests and drop the column(s) before starting."
        )
    if state.missing_columns:
        raise SchemaStateError(
            f"{ApiKey.__tablename__} is missing column(s) {sorted(state.missing_columns)}."
        )


def _ensure_sqlite_parent_dir() -> None:
    url = engine.url
    if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


async def ensure_db_migrated() -> str:
    """Bring the schema to head. Returns the action taken: created, stamped or upgraded."""
    _ensure_sqlite_parent_dir()

    async with engine.begin() as conn:
        state = await conn.run_sync(read_schema_state)

    if state.is_tracked:
        logger.info("migrations_upgrade", revision=state.revision)
        await asyncio.to_thread(command.upgrade, _alembic_cfg(), "head")
        return "upgraded"

    if not state.has_key_table:
        logger.info("migrations_create", tables=sorted(state.tables))
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await asyncio.to_thread(command.stamp, _alembic_cfg(), "head")
        return "created"

    try:
        _check_adoptable(state)
    except SchemaStateError as exc:
        logger.error("migrations_refused", reason=str(exc))
        raise
    logger.info("migrations_adopt", columns=sorted(state.key_columns))
    await asyncio.to_thread(command.stamp, _alembic_cfg(), "head")
    return "stamped"
