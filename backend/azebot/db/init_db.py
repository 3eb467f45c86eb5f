"""
Database Initialization

Creates the SQLite database tables for AZEBot payment confirmation.
Tables: news (article payment fields), transactions

Engines and session factories are built explicitly and handed to the
services that need them; nothing here holds a process-wide connection.
"""
import asyncio
import logging
from pathlib import Path
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

from ..config import settings
from .models import Base

logger = logging.getLogger(__name__)


def _enable_wal(dbapi_connection, connection_record) -> None:
    """
    Per-connection SQLite pragmas.

    WAL lets readers proceed while a reconcile commit is in flight;
    busy_timeout makes concurrent writers wait instead of failing.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for(database_path: str) -> AsyncEngine:
    """
    Create an async engine for the given SQLite file.

    Args:
        database_path: Filesystem path of the SQLite database

    Returns:
        AsyncEngine with WAL pragmas applied on every new connection
    """
    db_path = Path(database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        echo=False,
        connect_args={
            "timeout": 30,  # 30 second timeout for lock acquisition
            "check_same_thread": False
        },
        pool_pre_ping=True,
        pool_recycle=3600
    )
    event.listen(engine.sync_engine, "connect", _enable_wal)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the stores."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def initialize_database(engine: AsyncEngine) -> None:
    """
    Create all tables and indexes if they do not exist.

    Called during FastAPI startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database initialized at: {engine.url.database}")


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions in FastAPI.

    Usage:
        @app.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_session)):
            ...
    """
    session_factory = request.app.state.services.session_factory
    async with session_factory() as session:
        yield session


# Alias for FastAPI Depends
get_db = get_async_session


async def _init_default() -> None:
    engine = create_engine_for(settings.database_path)
    try:
        await initialize_database(engine)
    finally:
        await engine.dispose()


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=getattr(logging, settings.log_level))
    asyncio.run(_init_default())


if __name__ == "__main__":
    main()
