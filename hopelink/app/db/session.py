"""
Database session configuration.

Async SQLAlchemy engine and session factory. PostgreSQL (asyncpg) in
deployment, SQLite (aiosqlite) for local runs and tests.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from hopelink.app.core.config import settings


def _engine_options(url: str) -> dict:
    # SQLite uses a single-connection pool with no sizing knobs
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    **_engine_options(settings.database_url),
)

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
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_models():
    """Create all tables registered on Base."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
