"""
Database layer — async SQLAlchemy 2.0 (asyncpg in production, aiosqlite in tests).

Provides:
    • Engine and session factory builders
    • Base model for ORM entities
    • Dialect-aware insert-if-absent helper
    • Table creation / disposal helpers for the app lifespan

Usage:
    from sereno.app.core.database import build_engine, build_session_factory

    engine = build_engine(settings.DATABASE_URL)
    sessions = build_session_factory(engine)

    async with sessions() as session:
        result = await session.execute(select(EmergencyAlert))
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Sequence

from sqlalchemy import Table
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from sereno.app.core.config import settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ── Engine ──
def build_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """
    Create the async engine.

    SQLite URLs get a NullPool so every session opens its own connection;
    pool sizing only applies to server databases.
    """
    url = url or settings.DATABASE_URL
    echo = settings.DATABASE_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=echo,
    )


# ── Session Factory ──
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Insert-if-absent ──
def insert_ignore(
    session: AsyncSession,
    table: Table,
    values: Dict[str, Any],
    index_elements: Sequence[str],
):
    """
    Build an INSERT ... ON CONFLICT DO NOTHING for the session's dialect.

    Execute the returned statement; ``result.rowcount`` is 1 when a row was
    inserted and 0 when it already existed.
    """
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"insert_ignore not supported for dialect '{dialect}'")

    return insert(table).values(**values).on_conflict_do_nothing(
        index_elements=list(index_elements),
    )


# ── Lifecycle ──
async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (dev/test only — use migrations in production)."""
    # Register every model on Base.metadata before create_all
    from sereno.app.emergency import models as _emergency_models  # noqa: F401
    from sereno.app.notifications import models as _notification_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def close_db(engine: AsyncEngine) -> None:
    """Dispose engine connections."""
    await engine.dispose()
    logger.info("Database connections closed")
