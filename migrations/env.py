"""Alembic environment for the deal-pipeline tables."""

from __future__ import annotations

import asyncio
import logging
import os
import ssl
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_engine_from_config
from sqlmodel import SQLModel

from app.config import settings
from app.models import audit, company, discovery, meeting_note, thesis  # noqa: F401 - register tables

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("pipeline.alembic")
logger.setLevel(logging.INFO)
target_metadata = SQLModel.metadata

_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
}


def _supabase_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ca_file = os.environ.get("ALEMBIC_SUPABASE_CA_FILE")
    if ca_file:
        ctx.load_verify_locations(cafile=ca_file)
    return ctx


def _normalize_database_url(raw_url: str) -> tuple[str, dict[str, Any]]:
    """Force the asyncpg driver and TLS for Supabase-hosted databases."""
    url: URL = make_url(raw_url)
    url = url.set(drivername=_ASYNC_DRIVERS.get(url.drivername, url.drivername))
    connect_args: dict[str, Any] = {}
    query = dict(url.query) if url.query else {}
    wants_tls = query.pop("ssl", None) is not None or query.pop("sslmode", None) == "require"
    url = url.set(query=query or None)
    if wants_tls or "supabase.co" in (url.host or "").lower():
        connect_args["ssl"] = _supabase_ssl_context()
    return url.render_as_string(hide_password=False), connect_args


def _resolve_database_config() -> tuple[str, dict[str, Any]]:
    candidates = [
        ("environment variable", os.environ.get("DATABASE_URL")),
        ("alembic.ini", config.get_main_option("sqlalchemy.url")),
        ("app settings", settings.database_url),
    ]
    for source, value in candidates:
        if not value:
            continue
        normalized, connect_args = _normalize_database_url(value)
        logger.info(
            "Alembic resolved DATABASE_URL from %s: %s",
            source,
            make_url(normalized).render_as_string(hide_password=True),
        )
        return normalized, connect_args
    raise RuntimeError("DATABASE_URL must be set to run migrations.")


def run_migrations_offline() -> None:
    url, _ = _resolve_database_config()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    url, connect_args = _resolve_database_config()
    configuration["sqlalchemy.url"] = url
    connectable: AsyncEngine = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        connect_args=connect_args,
    )

    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
