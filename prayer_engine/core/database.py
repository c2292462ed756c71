"""Database connection and session management.

Transaction Guarantees:
- Each request gets its own session
- All operations within a request are atomic
- On any exception, the entire transaction is rolled back
- Sessions are properly closed after each request
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
import logging

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Settings, get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _configure_sqlite_connection(dbapi_conn: Any, connection_record: Any) -> None:
    """Enable foreign keys and hand transaction control to SQLAlchemy.

    SQLite ignores ON DELETE CASCADE unless foreign keys are switched on, and
    SAVEPOINTs only behave once the driver stops issuing its own BEGIN.
    """
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn: Any) -> None:
    conn.exec_driver_sql("BEGIN")


def build_engine(config: Settings) -> AsyncEngine:
    """Create an async engine for the configured database.

    PostgreSQL gets a connection pool sized from settings; SQLite (tests and
    local development) runs on the default pool with foreign keys enabled.
    """
    url = config.database_url_async

    if config.is_sqlite:
        engine_kwargs: dict[str, Any] = {}
        if url.endswith("://") or ":memory:" in url:
            # One shared connection, or every checkout sees an empty database
            engine_kwargs["poolclass"] = StaticPool
        async_engine = create_async_engine(url, echo=config.database_echo, **engine_kwargs)
        event.listen(async_engine.sync_engine, "connect", _configure_sqlite_connection)
        event.listen(async_engine.sync_engine, "begin", _begin_sqlite_transaction)
        return async_engine

    return create_async_engine(
        url,
        pool_size=config.database_pool_size,
        max_overflow=config.database_max_overflow,
        echo=config.database_echo,
        pool_pre_ping=True,  # Check connection health before use
        pool_recycle=300,
        pool_timeout=30,
    )


engine = build_engine(settings)
logger.info(f"Database URL (masked): {settings.database_url_async[:30]}...")

# Session factory - creates new sessions for each request
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Don't expire objects after commit
    autoflush=False,         # Manual flush for better control
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a transactional database session.

    Transaction Behavior:
    - Session starts in a transaction automatically
    - On successful completion: COMMIT
    - On any exception: ROLLBACK
    - Session is always closed properly
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
            logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}")
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Error during request, transaction rolled back: {e}")
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_session_context(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions (for use outside FastAPI)."""
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Initialize database (create tables if needed)."""
    from ..models import Base

    async with (bind or engine).begin() as conn:
        # In production, use migrations instead
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
