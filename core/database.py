"""
Database engine and session management with SQLAlchemy async
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the async engine shared by every concurrent writer.

    The pool is sized to the worker pool so each in-flight item can hold
    one connection for its single-statement writes.
    """
    url = database_url or settings.DATABASE_URL
    kwargs = {"echo": False, "future": True}
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = max(2, settings.WORKER_CONCURRENCY + 1)
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Build a session factory bound to the engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
