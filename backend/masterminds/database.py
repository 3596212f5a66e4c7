"""
MasterMinds Backend — Database Engine Management
=================================================

What:  Async SQLAlchemy engine, session factory, declarative base and
       lifecycle helpers for the durable storage backend.
How:   The engine is created at import from settings; SQLStorage opens one
       session per storage operation from `async_session_factory`.
Who:   Used by the SQL storage backend, the startup probe, Alembic and tests.

Connection Pooling:
    pool_size / max_overflow / pool_pre_ping come from settings and only apply
    to server databases. SQLite (used by the test suite through aiosqlite)
    manages its own pool and rejects these arguments.
"""

from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from masterminds.config import settings


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine, applying pool settings only where they are supported."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(url, **options)


engine = build_engine(settings.database_url)

# expire_on_commit=False: records are converted after commit without a reload
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def ping(target: AsyncEngine = engine) -> None:
    """Executes SELECT 1; raises whatever the driver raises when unreachable."""
    async with target.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def create_tables(target: AsyncEngine = engine) -> None:
    """Creates any missing tables. Development convenience; Alembic owns production."""
    # Models must be imported so their tables are registered on Base.metadata
    from masterminds import models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
