"""Async database engine and session management.

Provides an async SQLAlchemy engine, session factory, and simple helpers for
initializing the schema (for dev) and checking connectivity. This module does
not run on import; call its functions explicitly from startup hooks.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatroom.core.config import DATABASE_URL, get_enable_db
from chatroom.models.database import Base

logger = logging.getLogger(__name__)

# Async engine/session globals; initialize on app startup to bind to the running loop
engine = None  # type: Optional[object]
SessionLocal = None  # will be set to async_sessionmaker when started
_DB_ENABLED = False

# Detect greenlet availability; SQLAlchemy relies on it in several execution paths
try:  # pragma: no cover - environment dependent
    import greenlet  # type: ignore  # noqa: F401
    _GREENLET_OK = True
except ImportError:  # pragma: no cover - tests may not have greenlet installed
    _GREENLET_OK = False


def is_db_enabled() -> bool:
    """Return True if the async DB is usable in this process."""
    return bool(_DB_ENABLED and engine is not None and SessionLocal is not None)


def _engine_kwargs_for(url: str) -> dict:
    """Construct engine kwargs appropriate for a given database URL."""
    from chatroom.core.config import (
        DB_ECHO,
        DB_POOL_PRE_PING,
        DB_POOL_SIZE,
        DB_MAX_OVERFLOW,
        DB_POOL_TIMEOUT,
        DB_POOL_RECYCLE,
    )
    from sqlalchemy.pool import NullPool

    engine_kwargs = {
        "echo": DB_ECHO,
        "pool_pre_ping": DB_POOL_PRE_PING,
    }
    if str(url).startswith("sqlite+"):
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update({
            "pool_size": DB_POOL_SIZE,
            "max_overflow": DB_MAX_OVERFLOW,
            "pool_timeout": DB_POOL_TIMEOUT,
            "pool_recycle": DB_POOL_RECYCLE,
        })
    return engine_kwargs


async def init_db() -> None:
    """Initialize database schema in dev environments using metadata.create_all.

    For production, prefer Alembic migrations instead of create_all.
    """
    if not is_db_enabled():
        logger.warning("init_db called but database is disabled")
        return
    async with engine.begin() as conn:  # type: ignore[attr-defined]
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured via metadata.create_all")


async def check_database() -> bool:
    """Perform a simple health check against the database connection."""
    if not is_db_enabled():
        return False
    try:
        async with engine.connect() as conn:  # type: ignore[attr-defined]
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        return False


async def start_db(url: Optional[str] = None) -> None:
    """Initialize the async engine/sessionmaker within the current event loop.

    Safe to call multiple times; a no-op if already started or if ENABLE_DB is off.
    """
    global engine, SessionLocal, _DB_ENABLED
    if not get_enable_db():
        logger.info("ENABLE_DB is false; using in-memory stores")
        _DB_ENABLED = False
        return
    if not _GREENLET_OK:
        logger.warning("greenlet not available; database layer will remain disabled")
        _DB_ENABLED = False
        return
    if engine is not None and SessionLocal is not None:
        _DB_ENABLED = True
        return
    db_url = url or DATABASE_URL
    engine = create_async_engine(db_url, **_engine_kwargs_for(db_url))
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    _DB_ENABLED = True


async def shutdown_db() -> None:
    """Dispose the async engine within the running event loop.

    This ensures connections are closed on the correct asyncio loop, avoiding
    asyncpg cross-loop termination errors during application shutdown.
    """
    global engine, SessionLocal, _DB_ENABLED
    try:
        if engine is not None:
            await engine.dispose()  # type: ignore[attr-defined]
    except Exception as exc:
        logger.warning("Error disposing DB engine: %s", exc)
    finally:
        engine = None
        SessionLocal = None
        _DB_ENABLED = False
