from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from . import config
from .config import DATABASE_URL
import logging

logger = logging.getLogger(__name__)


def _masked_url(url: str) -> str:
    if config.DATABASE_PASSWORD and config.DATABASE_PASSWORD in url:
        return url.replace(config.DATABASE_PASSWORD, "***")
    return url


def _engine_options(url: str) -> dict:
    # A SQLite file gains nothing from pooling, and pooled aiosqlite connections
    # must not outlive the event loop that opened them.
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {"pool_pre_ping": True}


try:
    logger.info(f"Attempting to create engine with URL: {_masked_url(DATABASE_URL)}")
    engine = create_async_engine(DATABASE_URL, echo=config.DATABASE_ECHO, **_engine_options(DATABASE_URL))
    AsyncSessionFactory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Async database engine and session factory created successfully.")
except Exception as e:
    logger.error(f"FATAL: Failed to create database engine or session factory: {e}")
    raise RuntimeError(f"Could not initialize database connection: {e}")

Base = declarative_base()

async def get_db_session() -> AsyncSession:
    """FastAPI dependency to inject DB session."""
    async with AsyncSessionFactory() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Rolling back session due to error: {e}")
            await session.rollback()
            raise
