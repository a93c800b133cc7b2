"""
Mailroom Backend — Database Session Management
================================================

What:  Async SQLAlchemy engine, session factory, declarative base and the
       per-request session dependency.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine with connection pooling, provides a session
       dependency that auto-commits on success and auto-rolls-back on error.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  One engine per application, built in `create_app()` and kept on
       `app.state`; sessions are created per-request.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    SQLite URLs (tests, local experiments) get the driver's default pool.
"""

import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_fixed,
)

from app.config import Settings

logger = logging.getLogger(__name__)


def build_engine(app_settings: Settings) -> AsyncEngine:
    """
    Create an async engine for the configured URL.

    Pool sizing only applies to server databases; SQLite's async driver
    manages its own single-file connections.
    """
    engine_kwargs: Dict[str, Any] = {
        "echo": app_settings.log_level == "DEBUG",
    }
    if not app_settings.is_sqlite:
        engine_kwargs.update(
            pool_size=app_settings.db_pool_size,
            max_overflow=app_settings.db_max_overflow,
            pool_pre_ping=app_settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(app_settings.database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: attributes stay readable after the dependency commits
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all ORM models; Alembic reads `Base.metadata`."""
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the app's factory (`app.state`)
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises for the global handlers
        5. Always: closes the session (returns connection to pool)
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def check_connection(engine: AsyncEngine, app_settings: Settings) -> None:
    """
    What:  Wait until the database answers `SELECT 1`.
    When:  Called from the lifespan handler before serving traffic.
    How:   tenacity retries with a fixed wait; the last error is re-raised
           so the caller can log it.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(app_settings.db_connect_attempts),
        wait=wait_fixed(app_settings.db_connect_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close all pooled connections during application shutdown."""
    await engine.dispose()
