"""Async database engine and session factory construction.

Nothing here runs at import time: the process entry point builds the engine
from its settings and owns its lifecycle.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clubledger.models import Base


def to_async_url(database_url: str) -> str:
    """Map a plain SQLite URL onto the aiosqlite driver.

    Example:
        ``sqlite:///./clubledger.db`` -> ``sqlite+aiosqlite:///./clubledger.db``
    """
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return database_url


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Args:
        database_url: SQLAlchemy database URL (sync SQLite URLs are accepted)
        echo: Log SQL statements

    Returns:
        AsyncEngine ready to hand to a session factory
    """
    url = to_async_url(database_url)
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False, "timeout": 15}}
        # In-memory databases only exist on a single connection
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **kwargs)
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the ledger store."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = ["to_async_url", "create_engine_from_url", "create_session_factory", "create_tables"]
