"""Investment thesis records and scan frequency."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, Uuid
import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from app.models.columns import UtcNow, utcnow


class ScanFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class InvestmentThesisRecord(SQLModel, table=True):
    """ORM model for ``investment_thesis`` rows."""

    __tablename__ = "investment_thesis"

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    title: str = Field(sa_column=Column(String(length=255), nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, server_default=sa.true())
    )
    scan_frequency: str = Field(
        default=ScanFrequency.WEEKLY.value,
        sa_column=Column(String(length=16), nullable=False),
    )
    sources_count: int = Field(default=5, sa_column=Column(Integer, nullable=False))
    last_scan_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    next_scan_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True), nullable=False, server_default=UtcNow(), onupdate=UtcNow()
        ),
    )


class ThesisCreate(BaseModel):
    title: str = PydanticField(min_length=1, max_length=255)
    content: str = PydanticField(min_length=1)
    is_active: bool = True
    scan_frequency: ScanFrequency = ScanFrequency.WEEKLY
    sources_count: int = PydanticField(default=5, ge=1, le=25)

    def to_record(self) -> InvestmentThesisRecord:
        return InvestmentThesisRecord(
            title=self.title,
            content=self.content,
            is_active=self.is_active,
            scan_frequency=self.scan_frequency.value,
            sources_count=self.sources_count,
        )


class ThesisUpdate(BaseModel):
    title: str | None = PydanticField(default=None, min_length=1, max_length=255)
    content: str | None = PydanticField(default=None, min_length=1)
    is_active: bool | None = None
    scan_frequency: ScanFrequency | None = None
    sources_count: int | None = PydanticField(default=None, ge=1, le=25)


class ThesisRead(BaseModel):
    id: UUID
    title: str
    content: str
    is_active: bool
    scan_frequency: ScanFrequency
    sources_count: int
    last_scan_at: datetime | None = None
    next_scan_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: InvestmentThesisRecord) -> ThesisRead:
        return cls.model_validate(record.model_dump())
