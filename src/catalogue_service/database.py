"""Database initialization helpers."""
from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def _enable_sqlite_transactions(db_engine: AsyncEngine) -> None:
    # aiosqlite defers BEGIN until the first DML statement, which breaks
    # SAVEPOINT handling. Take over BEGIN and switch foreign keys on.
    @event.listens_for(db_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(db_engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine(database_url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """Create a configured SQLAlchemy async engine."""

    settings = get_settings()
    url = database_url or settings.database_url
    db_engine = create_async_engine(url, echo=settings.echo_sql if echo is None else echo)
    if db_engine.dialect.name == "sqlite":
        _enable_sqlite_transactions(db_engine)
    return db_engine


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, expire_on_commit=False)


engine = create_engine()
SessionFactory = create_session_factory(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency returning the factory used to open units of work."""

    return SessionFactory


async def get_session(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncIterator[AsyncSession]:
    """Yield an :class:`AsyncSession` for FastAPI dependencies."""

    async with factory() as session:
        yield session


__all__ = [
    "Base",
    "engine",
    "SessionFactory",
    "create_engine",
    "create_session_factory",
    "get_session",
    "get_session_factory",
]
