import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from trackpro.core.config import settings

logger = logging.getLogger(__name__)


def _async_database_url(url: str) -> str:
    """Adds the asyncpg driver to a plain postgres URL (Render/Heroku style)."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            logger.warning("DATABASE_URL is missing an async driver; using asyncpg")
            return url.replace(prefix, "postgresql+asyncpg://", 1)
    return url


ASYNC_SQLALCHEMY_DATABASE_URL = _async_database_url(settings.DATABASE_URL)

async_engine = create_async_engine(ASYNC_SQLALCHEMY_DATABASE_URL, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(UTC)


# --- Async Dependency to get DB session ---
async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    session: AsyncSession = AsyncSessionLocal()
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error in async session: {e}", exc_info=True)
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"Unexpected error in async session: {e}", exc_info=True)
        await session.rollback()
        raise
    finally:
        await session.close()
