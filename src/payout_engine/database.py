"""Async engine and session factory shared by the API, CLI and scheduled jobs.

Services never receive a session. They receive the session factory and
open one short transaction per unit of work, so a claim can be committed
before money moves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payout_engine.config import get_settings
from payout_engine.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine. SQLite gets no connection pool tuning."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)


def make_session_factory(engine: AsyncEngine) -> SessionFactory:
    # Rows read inside a claim stay usable after its commit.
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all payout engine tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_connection(session: AsyncSession) -> bool:
    """Round-trip a trivial query; False when the database is unreachable."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return False
    return True


_engine: AsyncEngine | None = None
_session_factory: SessionFactory | None = None


def init_db() -> tuple[AsyncEngine, SessionFactory]:
    """Process-wide engine and session factory, created on first use."""
    global _engine, _session_factory
    if _engine is None or _session_factory is None:
        _engine = get_engine()
        _session_factory = make_session_factory(_engine)
    return _engine, _session_factory


async def dispose_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
