"""
Database Management and Configuration.

This module owns the single asynchronous SQLAlchemy engine used by the
photo-sharing API and hands out one session per request.

Key Components:
- `build_engine`: Creates an async engine for a database URL. SQLite URLs
  (used for development and tests) get connection hooks that enforce foreign
  keys and let SAVEPOINTs work; PostgreSQL URLs get a pre-pinged queue pool.
- `engine` / `async_session`: The process-wide engine and session factory.
- `get_session`: FastAPI dependency yielding an `AsyncSession` that is always
  closed when the request finishes, whether it succeeded or not.
- `create_db_and_tables`: Startup hook creating every SQLModel table.
- `get_database_info`: Connection diagnostics for the health endpoints.
- `atomic`: Commit-or-rollback wrapper used by every mutation.

Transactions:
Each mutation handler works inside the session's implicit transaction and
commits once at the end. Secondary writes (notifications) run in nested
transactions (SAVEPOINTs) so they can fail without undoing the primary write.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool
from sqlmodel import SQLModel

from core.config import get_settings

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().database_url


def _is_memory_sqlite(url: str) -> bool:
    return url.rstrip("/").endswith(":") or ":memory:" in url


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """Enable foreign keys and driver-independent transaction control"""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite/aiosqlite emit their own BEGIN and break SAVEPOINT;
        # take over transaction demarcation instead
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine configured for the given database"""
    if database_url.startswith("sqlite"):
        if _is_memory_sqlite(database_url):
            new_engine = create_async_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo,
            )
        else:
            new_engine = create_async_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=AsyncAdaptedQueuePool,
                echo=echo,
            )
        _install_sqlite_hooks(new_engine)
        return new_engine

    return create_async_engine(
        database_url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Validate connections before use
        echo=echo,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(DATABASE_URL)
async_session = build_session_factory(engine)


async def create_db_and_tables(bind: AsyncEngine = None):
    """
    Create all tables.
    Called during application startup.
    """
    # Table classes must be registered on the metadata before create_all
    import core.models  # noqa: F401

    target = bind or engine
    try:
        async with target.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Photo-sharing database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get an async database session for dependency injection.
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_database_info():
    """
    Get basic database information for health checks.
    """
    try:
        async with async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            connection_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        connection_healthy = False

    return {
        "database_url": DATABASE_URL.split("@")[1]
        if "@" in DATABASE_URL
        else "masked",  # Hide credentials
        "connection_healthy": connection_healthy,
        "database_type": "postgresql" if "postgresql" in DATABASE_URL else "sqlite",
    }


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit the session's transaction on success, roll it back on any error.

    Works whether or not the session has already auto-begun a transaction.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
