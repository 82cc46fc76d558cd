"""TokenVault Database Configuration - Async SQLAlchemy.

Only the PostgreSQL storage backend touches this module at runtime; the
in-memory backend never opens a connection.
"""

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from tokenvault.core.config import Settings, settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine_from_settings(config: Settings) -> AsyncEngine:
    """Build the async engine. No connection is opened until the first query."""
    return create_async_engine(
        config.database_url,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_timeout=config.db_pool_timeout,
        pool_recycle=config.db_pool_recycle,
        pool_pre_ping=True,
        echo=config.debug and config.log_level == "DEBUG",
    )


engine = create_engine_from_settings(settings)

# expire_on_commit=False: registries hand records back after committing
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def check_db_connection(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    timeout: float = 5.0,
) -> bool:
    """Return True when ``SELECT 1`` succeeds within ``timeout`` seconds."""
    factory = session_factory or async_session_maker

    async def _select_one() -> None:
        async with factory() as session:
            await session.execute(text("SELECT 1"))

    try:
        await asyncio.wait_for(_select_one(), timeout=timeout)
        return True
    except TimeoutError:
        logger.warning(f"Database health check timed out after {timeout}s")
        return False
    except (OSError, SQLAlchemyError) as e:
        logger.warning(f"Database health check failed: {type(e).__name__}")
        return False
