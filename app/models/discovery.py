"""Market-screening (discovery) candidates."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import Boolean, Column, DateTime, Float, String, Text, Uuid
from sqlmodel import Field, SQLModel

from app.models.columns import UtcNow, utcnow


class DiscoveryCandidateRecord(SQLModel, table=True):
    """ORM model for ``market_screening_results`` rows."""

    __tablename__ = "market_screening_results"
    __table_args__ = (
        sa.Index("ix_market_screening_added", "is_added_to_pipeline"),
        sa.Index("ix_market_screening_thesis", "thesis_id"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    company_name: str = Field(sa_column=Column(String(length=255), nullable=False))
    sector: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    match_score: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    match_reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    website: str | None = Field(default=None, sa_column=Column(String(length=512), nullable=True))
    estimated_revenue: str | None = Field(
        default=None, sa_column=Column(String(length=128), nullable=True)
    )
    estimated_valuation: str | None = Field(
        default=None, sa_column=Column(String(length=128), nullable=True)
    )
    is_added_to_pipeline: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, server_default=sa.false())
    )
    thesis_id: UUID | None = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )
    discovered_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )


class DiscoveredCompany(BaseModel):
    """A company proposed by the agent, after field-level validation."""

    company_name: str = PydanticField(min_length=1)
    sector: str | None = None
    description: str | None = None
    match_score: float | None = None
    match_reason: str | None = None
    website: str | None = None
    estimated_revenue: str | None = None
    estimated_valuation: str | None = None

    def to_record(self, *, discovered_at: datetime, thesis_id: UUID | None) -> DiscoveryCandidateRecord:
        return DiscoveryCandidateRecord(
            **self.model_dump(),
            is_added_to_pipeline=False,
            thesis_id=thesis_id,
            discovered_at=discovered_at,
        )


class DiscoveryCandidateRead(DiscoveredCompany):
    id: UUID
    is_added_to_pipeline: bool
    thesis_id: UUID | None = None
    discovered_at: datetime

    @classmethod
    def from_record(cls, record: DiscoveryCandidateRecord) -> DiscoveryCandidateRead:
        return cls.model_validate(record.model_dump())
