"""Async engine used for readiness checks against the configured database."""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from app.config import settings

logger = logging.getLogger(__name__)

engine: AsyncEngine | None = None

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
}


def _async_url(database_url: str) -> str | None:
    url = make_url(database_url)
    if url.drivername.startswith("sqlite"):
        return None
    drivername = _ASYNC_DRIVERS.get(url.drivername, url.drivername)
    return url.set(drivername=drivername).render_as_string(hide_password=False)


async def init_database() -> None:
    """Create the async engine when DATABASE_URL points at Postgres."""
    global engine  # noqa: PLW0603

    if not settings.database_url:
        logger.info("database.disabled", extra={"reason": "no DATABASE_URL"})
        return

    async_url = _async_url(settings.database_url)
    if async_url is None:
        logger.info("database.readiness_skipped", extra={"reason": "sqlite"})
        return

    try:
        engine = create_async_engine(async_url, pool_pre_ping=True, pool_recycle=300)
        logger.info("database.initialized")
    except Exception:
        logger.exception("database.init_failed")
        raise


async def dispose_database() -> None:
    global engine  # noqa: PLW0603
    if engine is not None:
        await engine.dispose()
        engine = None


async def check_database_health() -> bool:
    """Check if database is accessible."""
    if engine is None:
        return True

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("database.health_check_failed", extra={"error": type(exc).__name__})
        return False
