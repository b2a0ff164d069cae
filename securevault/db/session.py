"""
Database Session Management
Engine and session handling
"""

from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from securevault.core.config import settings
from securevault.core.exceptions import AppException
from securevault.core.logging import get_logger
from securevault.db.base import Base

logger = get_logger(__name__)

# Engine
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_db(database_url: Optional[str] = None, create_tables: Optional[bool] = None) -> None:
    """Initialize database engine and, outside production, create tables"""
    global engine, async_session_maker

    url = database_url or settings.SQLALCHEMY_DATABASE_URL

    if engine is not None:
        await engine.dispose()

    engine_kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        logger.info(f"Connecting to PostgreSQL at {settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}")
        engine_kwargs.update(pool_size=10, max_overflow=20)

    engine = create_async_engine(url, **engine_kwargs)
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Register models with Base
    from securevault.db import models  # noqa: F401

    if create_tables is None:
        create_tables = settings.ENVIRONMENT != "production"

    # Use migrations for production schemas
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


async def close_db() -> None:
    """Close database connections"""
    global engine, async_session_maker

    if engine:
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("Database connection closed")


def get_session_maker() -> async_sessionmaker:
    if async_session_maker is None:
        raise AppException("Database not initialized")
    return async_session_maker


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session (dependency injection); one transaction per request"""
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_connection() -> bool:
    """Return True when the database answers a trivial query"""
    try:
        async with get_session_maker()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        return False
