"""
Database Infrastructure
=======================

Engine and session lifecycle for the record store.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations. The
record store is the commit point for every write in the system; vector
writes only ever follow a committed session.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from incident_hub.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    All record-store tables (tickets, playbooks, bulk import state)
    inherit from this class.
    """
    pass


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session factory bound to the current engine."""
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(
    database_url: Optional[str] = None,
    **engine_kwargs: Any
) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup. Extra keyword arguments
    are passed to ``create_async_engine`` and replace the pool settings.

    Args:
        database_url: Override for settings.database_url
        **engine_kwargs: Engine options (e.g. poolclass for SQLite)

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    # asyncpg expects ssl= rather than libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    if not engine_kwargs:
        engine_kwargs = {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_pre_ping": True,
        }

    _engine = create_async_engine(url, echo=settings.debug, **engine_kwargs)

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """Dispose of the engine's connections. Called at shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    For background jobs (sync runs, polling, reindexing) that commit one
    unit of work at a time.

    Usage:
        async with get_session_context() as session:
            repo = SQLAlchemyTicketRepository(session)
            await repo.add(ticket)

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """
    Create all database tables.

    Production deployments should use migrations.
    """
    # Register every model on Base.metadata
    import incident_hub.playbooks.infrastructure.models  # noqa: F401
    import incident_hub.tickets.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_database() -> bool:
    """Return True when a trivial query succeeds."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def like_pattern(query: str) -> str:
    """Substring pattern for ILIKE with LIKE wildcards escaped (escape char '\\')."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
