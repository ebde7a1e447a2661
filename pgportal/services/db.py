"""Database engine and session management.

Provides the async SQLAlchemy engine and session factory used by the
ledger store, plus schema creation for development databases.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pgportal.models import Base


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine.

    Args:
        database_url: SQLAlchemy async URL (e.g., "sqlite+aiosqlite:///./pgportal.db")
        echo: Log emitted SQL

    Returns:
        AsyncEngine bound to the URL
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory whose objects stay readable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = ["create_engine", "create_session_factory", "create_tables"]
