"""
Database handle: async engine plus session factory.

The handle is constructed explicitly and passed to the services that need it,
so tests and multiple cores in one process never share hidden state.

Example:
    database = Database.from_settings(get_settings())
    async with database.session() as session:
        async with session.begin():
            ...
    await database.dispose()
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from enrollment.core.config import Settings
from enrollment.db.base import Base


class DatabaseError(Exception):
    """Raised when the engine cannot be created or the schema cannot be built."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    Make the embedded store behave like a serializable database.

    pysqlite/aiosqlite open transactions lazily with a deferred BEGIN, which
    lets two writers both take a SHARED lock and then fail the upgrade with
    "database is locked". Emitting BEGIN IMMEDIATE ourselves makes every
    transaction queue on SQLite's busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop the driver from emitting its own BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    def __init__(self, url: str, *, echo: bool = False, **engine_options: Any) -> None:
        self.url = url
        try:
            self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_options)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to create database engine", e) from e

        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)

        self.sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings, url: str | None = None) -> "Database":
        url = url or settings.DATABASE_URL
        if url.startswith("sqlite"):
            return cls(
                url,
                echo=settings.DEBUG,
                connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT},
            )
        return cls(
            url,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    async def create_all(self) -> None:
        """Create tables directly from metadata (tests, embedded stores)."""
        # Registers the mapped tables on Base.metadata
        import enrollment.models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to create schema", e) from e

    async def drop_all(self) -> None:
        import enrollment.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
