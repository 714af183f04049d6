"""Async engine and the transactional session scope."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from labelcatalog.config.settings import DatabaseSettings
from labelcatalog.infrastructure.persistence.models import Base

logger = logging.getLogger(__name__)

# Seconds SQLite waits on a locked database before raising "database is locked"
SQLITE_BUSY_TIMEOUT = 30


def _engine_options(settings: DatabaseSettings) -> dict[str, Any]:
    """create_async_engine() keyword arguments for the configured backend."""
    options: dict[str, Any] = {
        "echo": settings.echo,
        "pool_pre_ping": settings.pool_pre_ping,
    }
    backend = make_url(settings.url).get_backend_name()
    if backend == "postgresql":
        options["pool_size"] = settings.pool_size
        options["max_overflow"] = settings.max_overflow
        options["pool_timeout"] = settings.pool_timeout
        options["pool_recycle"] = settings.pool_recycle
    elif backend == "sqlite":
        options["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT}
    return options


def _sqlite_on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
    # SQLite ships with FK enforcement off; credits must not outlive their artist
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


class Database:
    """Owns the engine for the catalog database and hands out sessions."""

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings
        self.backend = make_url(settings.url).get_backend_name()
        self._engine = create_async_engine(settings.url, **_engine_options(settings))
        if self.backend == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _sqlite_on_connect)

        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)

    # Hey future me - this is THE transaction boundary. Everything inside one
    # `async with db.session_scope()` commits together or rolls back together; the
    # import orchestrator relies on that for its all-or-nothing write phase.
    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on clean exit and rolls back on any exception."""
        session = self._sessions()
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.debug("Rolling back %s session: %s", self.backend, type(e).__name__)
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Dispose of the connection pool."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create the catalog schema without migrations (tests, local runs)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop the catalog schema."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
