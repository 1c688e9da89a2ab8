"""Engine and session handling for the relayer order store."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from moleswap.config import get_settings
from moleswap.orders.models import Base

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _database_url() -> str:
    """DATABASE_URL with plain sqlite URLs routed through aiosqlite."""
    db_url = get_settings().database_url
    if db_url.startswith("sqlite:///"):
        db_url = "sqlite+aiosqlite:///" + db_url[len("sqlite:///"):]
    return db_url


def _is_sqlite(db_url: str) -> bool:
    return db_url.startswith("sqlite+aiosqlite://")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # escrow_validations rows cascade with their order
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> AsyncEngine:
    """Get or create the order store engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        db_url = _database_url()
        kwargs = {"echo": settings.debug and not settings.is_production}

        if _is_sqlite(db_url):
            if ":memory:" in db_url:
                # one shared connection, otherwise every session sees an empty db
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                Path(db_url.split(":///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)

        _engine = create_async_engine(db_url, **kwargs)
        if _is_sqlite(db_url):
            event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session scope: commits on success, rolls back on any error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the orders, escrow_validations and secret_commitments tables."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
