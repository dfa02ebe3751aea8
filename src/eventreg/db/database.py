"""Database connection and session management.

Transaction Model
-----------------
Each API request gets a single database session via get_session(). The session
wraps the request in a transaction that:
- Commits after the endpoint returns successfully
- Rolls back on any exception

Write operations in the service layer commit themselves, because the count
cache for the affected scope must be invalidated after the row is durable.
The trailing commit in get_session() is then a no-op.

Work that outlives the handler (a streamed CSV export) opens its own session
from the factory returned by get_sessionmaker().

Database Support
----------------
- **PostgreSQL**: production store (postgresql+asyncpg://...)
- **SQLite**: tests and local runs (sqlite+aiosqlite:///:memory:)
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from eventreg.config import settings
from eventreg.db.models import Base


def _engine_options(database_url: str) -> dict[str, Any]:
    """Pool options for the configured backend."""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.database_url, echo=False, **_engine_options(settings.database_url)
)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create tables and indexes that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session for a single request.

    The session wraps the request in a transaction:
    - Commits on successful completion
    - Rolls back on any exception
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that must outlive the request handler."""
    return async_session
