"""Append-only company audit log."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import BaseModel
from sqlalchemy import Column, DateTime, String, Uuid
from sqlmodel import Field, SQLModel

from app.models.columns import JSON_BACKING_TYPE, UtcNow, utcnow

ACTION_CREATED = "CREATED"
ACTION_ENRICHED = "ENRICHED"
ACTION_ADDED_TO_PIPELINE = "ADDED_TO_PIPELINE"
ACTION_ADDED_FROM_MARKET_SCREENING = "ADDED_FROM_MARKET_SCREENING"


def promotion_action(from_stage: str, to_stage: str) -> str:
    return f"PROMOTED_FROM_{from_stage}_TO_{to_stage}"


class CompanyLogRecord(SQLModel, table=True):
    """ORM model for ``company_logs``; rows are written once and never updated."""

    __tablename__ = "company_logs"
    __table_args__ = (sa.Index("ix_company_logs_company_id", "company_id"),)

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    company_id: UUID = Field(sa_column=Column(Uuid(as_uuid=True), nullable=False))
    action: str = Field(sa_column=Column(String(length=128), nullable=False))
    details: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True)
    )
    user_id: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )


class CompanyLogRead(BaseModel):
    id: UUID
    company_id: UUID
    action: str
    details: dict[str, Any] | None = None
    user_id: str | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: CompanyLogRecord) -> CompanyLogRead:
        return cls.model_validate(record.model_dump())
