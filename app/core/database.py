from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.exc import OperationalError
from app.core.config import settings
import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


def _engine_options(db_url: str) -> dict:
    """
    Pool and driver options for the configured backend.
    SQLite (tests, local runs) gets the SQLAlchemy defaults.
    """
    if db_url.startswith("sqlite"):
        return {"echo": settings.SQL_ECHO}

    return {
        "echo": settings.SQL_ECHO,
        "pool_pre_ping": True,  # Verify connections before using them
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        # asyncpg-specific connect args
        "connect_args": {
            "command_timeout": settings.DB_COMMAND_TIMEOUT,
        },
    }


# Configure database connection pooling
try:
    db_url = settings.DATABASE_URL

    # If using postgresql:// or postgres://, convert to postgresql+asyncpg://
    if db_url.startswith('postgresql://'):
        db_url = db_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    elif db_url.startswith('postgres://'):
        db_url = db_url.replace('postgres://', 'postgresql+asyncpg://', 1)

    engine = create_async_engine(db_url, **_engine_options(db_url))

    AsyncSessionLocal = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False
    )
except OperationalError as e:
    logger.error(f"Failed to connect to database: {e}")
    raise

Base = declarative_base()

# Dependency to use in FastAPI endpoints
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides an async database session.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Commit everything written inside the block as one unit, or nothing.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise

async def initialize_db():
    """
    Initialize database connection and verify it's working.
    """
    async with engine.begin():
        logger.info("Database connection initialized successfully")

    return True

async def close_db_connection():
    """
    Close database connection pool.
    """
    await engine.dispose()
    logger.info("Database connection pool closed")
