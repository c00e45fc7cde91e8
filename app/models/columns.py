"""Column helpers shared by the SQLModel tables."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class UtcNow(expression.FunctionElement):
    """Dialect-aware server default that pins timestamps to UTC."""

    type = DateTime(timezone=True)
    inherit_cache = True


@compiles(UtcNow)
def _utc_now_default(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "CURRENT_TIMESTAMP"


@compiles(UtcNow, "postgresql")
def _utc_now_default_postgres(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "timezone('utc', now())"


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
