"""
Database engines and session management.

Provides async SQLAlchemy engines and session factories for the local
cache DB and the Konami reference DB.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ygoresolve.config import settings
from ygoresolve.models.db import Base

# Local cache DB: one engine per process, writes serialized by SQLite
engine = create_async_engine(
    settings.cache_database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Reference DB is maintained by a separate process and only read here
reference_engine = create_async_engine(
    settings.reference_database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

reference_session_factory = async_sessionmaker(
    reference_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a cache DB session.

    Usage in FastAPI:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize cache DB tables.

    Creates all tables defined in the cache ORM models.
    Should be called once at application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    """
    Drop all cache DB tables.

    WARNING: Destroys all cached data. Use only for testing.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
