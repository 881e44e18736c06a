"""
Async SQLAlchemy engine and session factory.

PostgreSQL (asyncpg) in production; any SQLAlchemy async URL works, so a
``sqlite+aiosqlite://`` URL is fine for local runs.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import config
from database.models import Base

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 10, "max_overflow": 20, "pool_recycle": 3600, "pool_pre_ping": True}


engine = create_async_engine(config.database_url, echo=False, **_engine_options(config.database_url))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def create_tables() -> None:
    """Create any missing tables (``AUTO_CREATE_TABLES=true``)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def dispose_engine() -> None:
    await engine.dispose()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function — use in FastAPI ``Depends(get_db_session)``.

    Routes commit their own writes; whatever is still pending when the
    request finishes is committed here, and everything is rolled back if
    the route raised.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
