"""Database initialization and session management."""
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine
)

from omnichat.config import get_config
from omnichat.models import Base

log = structlog.get_logger()

_engine = None
_session_factory = None


def _prepare_sqlite(url) -> None:
    db_path = url.database
    if db_path and db_path != ":memory:":
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)


async def init_database():
    """Initialize the database engine and create tables."""
    global _engine, _session_factory

    cfg = get_config()
    url = make_url(cfg.database.url)
    is_sqlite = url.get_backend_name() == "sqlite"
    if is_sqlite:
        _prepare_sqlite(url)

    _engine = create_async_engine(
        url,
        echo=cfg.database.echo,
        pool_pre_ping=True,
    )

    if is_sqlite:
        busy_timeout = cfg.database.busy_timeout_ms

        @event.listens_for(_engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
            cursor.close()

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if is_sqlite:
            await conn.execute(text("PRAGMA journal_mode=WAL"))

    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    log.info("database_ready", backend=url.get_backend_name())


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session; one session is one transaction."""
    if _session_factory is None:
        await init_database()
    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> bool:
    if _session_factory is None:
        await init_database()
    async with _engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def close_database():
    """Gracefully close the database engine."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
