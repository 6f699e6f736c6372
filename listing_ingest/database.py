"""
Database engine for the temp_previews store.

Two kinds of callers share one lazily created engine:
- request handlers, through the get_db dependency (one session per request)
- the scrape worker and pipeline stages, through PreviewStore, which opens a
  short session per stage via async_session_factory()

Sessions never expire loaded rows on commit; PreviewStore hands records back
after its session has closed.
"""
import logging
from typing import AsyncGenerator, Optional
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None

# Worker stages can sit idle for minutes between AI calls
POOL_RECYCLE_SECONDS = 1800


class Base(DeclarativeBase):
    pass


def engine_options(database_url: str, settings) -> dict:
    """
    create_async_engine kwargs for a URL. Pool sizing only applies to server
    databases; SQLite (local runs, tests) uses a single-connection pool.
    """
    options = {"echo": settings.app_env == "development"}
    if make_url(database_url).get_backend_name() == "sqlite":
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=POOL_RECYCLE_SECONDS,
    )
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        from listing_ingest.config import get_settings
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, **engine_options(settings.database_url, settings))
    return _engine


def async_session_factory() -> AsyncSession:
    """New session bound to the shared engine. Used by PreviewStore outside requests."""
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_maker()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session. Commits when the handler returns, rolls back if it raises."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.debug("Request session rolled back: %s", str(e))
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close pooled connections on shutdown. The next caller builds a fresh engine."""
    global _engine, _session_maker
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_maker = None
    logger.info("Database engine disposed")
