from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy import MetaData, event, inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine as _create_async_engine
from sqlalchemy.orm import DeclarativeBase

T = TypeVar("T")

SQLITE_BUSY_TIMEOUT_MS = 5000


class Base(DeclarativeBase):
    """Base class for SQLAlchemy declarative models."""


def normalize_sqlite_dsn(path_or_dsn: str) -> str:
    if path_or_dsn.startswith("sqlite+aiosqlite://"):
        return path_or_dsn
    if path_or_dsn.startswith("sqlite://"):
        return path_or_dsn.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if "://" in path_or_dsn:
        return path_or_dsn
    return f"sqlite+aiosqlite:///{path_or_dsn}"


def create_async_engine(dsn: str) -> AsyncEngine:
    engine = _create_async_engine(normalize_sqlite_dsn(dsn), future=True, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        _install_sqlite_pragmas_hook(engine)
    return engine


def _install_sqlite_pragmas_hook(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        del connection_record
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        finally:
            cursor.close()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all_tables(engine: AsyncEngine, metadata: MetaData) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def has_table(engine: AsyncEngine, table_name: str) -> bool:
    async with engine.connect() as conn:
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_name))


class AsyncDatabaseManager:
    """Lazily opened engine plus sessions that commit on success and roll back on error.

    Failures are raised to the caller unchanged, nothing is retried here.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = normalize_sqlite_dsn(dsn)
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def dsn(self) -> str:
        return self._dsn

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("database manager is not connected")
        return self._engine

    async def connect(self) -> AsyncEngine:
        if self._engine is None:
            engine = create_async_engine(self._dsn)
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except Exception:
                await engine.dispose()
                raise
            self._engine = engine
            self._session_factory = create_session_factory(engine)
        return self._engine

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self.connect()
        assert self._session_factory is not None
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def run_with_session(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session() as session:
            return await fn(session)
