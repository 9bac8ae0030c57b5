"""
Database engine lifecycle for the persistent store.
Uses an async SQLAlchemy engine (SQLite through aiosqlite by default).
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gallery_api.datastore.models import Base
from gallery_api.settings import global_settings

# Global engine instance
engine = None
AsyncSessionLocal = None


async def init_db(
    database_url: str | None = None, echo: bool | None = None
) -> async_sessionmaker[AsyncSession]:
    """Create the engine, the session factory and all tables."""
    global engine, AsyncSessionLocal

    url = database_url or global_settings.database_url
    engine = create_async_engine(
        url,
        echo=global_settings.database_echo if echo is None else echo,
        future=True,
    )

    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.debug(f"Persistent store initialized: {url}")
    return AsyncSessionLocal


async def close_db() -> None:
    """Dispose of the engine."""
    global engine, AsyncSessionLocal
    if engine:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None
