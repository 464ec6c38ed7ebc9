"""
Database engine and session factories.

Reads go through `get_db`; every write opens its own UnitOfWork from the
factory returned by `get_session_factory`. Pool sizing applies to PostgreSQL
only, SQLite runs with its default pool.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from cargo_backend.app.core.config import settings

engine_options = {"echo": settings.db_echo, "future": True}
if not settings.database_url.startswith("sqlite"):
    engine_options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )

engine = create_async_engine(settings.database_url, **engine_options)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for read-only database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory():
    """
    FastAPI dependency returning the factory used for write transactions.

    Every mutating endpoint opens its own UnitOfWork from this factory.
    """
    return AsyncSessionLocal
