"""Database connection pooling, session management, and query timeouts."""

import asyncio
import functools

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from .config import settings
from .logger import logger

# ==================== Connection Pool Setup ====================

engine = create_async_engine(
    settings.DB_URL,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,  # Verify connections before use
    connect_args={
        "timeout": settings.DB_CONNECT_TIMEOUT,
        "command_timeout": settings.DB_QUERY_TIMEOUT,
    },
)

logger.info(
    f"Database engine configured: pool_size={settings.DB_POOL_SIZE}, "
    f"max_overflow={settings.DB_MAX_OVERFLOW}, query_timeout={settings.DB_QUERY_TIMEOUT}s"
)

# Session factory for creating database sessions
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Base class for ORM models
Base = declarative_base()

# ==================== Query Timeouts ====================


def with_query_timeout(func):
    """Bound a store coroutine by DB_QUERY_TIMEOUT.

    On expiry the inner coroutine is cancelled (which closes the session and
    rolls back) and ``TimeoutError`` propagates to the caller. Nothing retries.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        return await asyncio.wait_for(func(*args, **kwargs), timeout=settings.DB_QUERY_TIMEOUT)
    return wrapper

# ==================== Cleanup ====================


async def dispose_engine():
    """Gracefully close all database connections.

    Called during application shutdown to properly cleanup connection pool.
    """
    logger.info("Disposing database engine and closing connections")
    try:
        await engine.dispose()
        logger.info("Database connections closed successfully")
    except Exception as e:
        logger.error(f"Error disposing database engine: {str(e)}", exc_info=True)
