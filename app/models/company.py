"""Company records and pipeline stages."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from sqlalchemy import Column, DateTime, Float, String, Text, Uuid
from sqlmodel import Field, SQLModel

from app.models.columns import UtcNow, utcnow


class PipelineStage(str, Enum):
    """Ordered deal-progress states from sourcing (L0) to closing (L5)."""

    L0 = "L0"
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    L4 = "L4"
    L5 = "L5"

    @property
    def rank(self) -> int:
        return int(self.value[1:])

    def next_stage(self) -> PipelineStage | None:
        stages = list(PipelineStage)
        index = stages.index(self)
        return stages[index + 1] if index + 1 < len(stages) else None


class CompanySource(str, Enum):
    MANUAL = "manual"
    IMPORT = "import"
    MARKET_SCREENING = "market_screening"


class CompanyRecord(SQLModel, table=True):
    """ORM model for the ``companies`` table."""

    __tablename__ = "companies"
    __table_args__ = (
        sa.Index("ix_companies_name", "name"),
        sa.Index("ix_companies_pipeline_stage", "pipeline_stage"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    segment: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    geography: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    company_focus: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    ownership: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    website: str | None = Field(default=None, sa_column=Column(String(length=512), nullable=True))
    revenue_2022_usd_mn: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    revenue_2023_usd_mn: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    revenue_2024_usd_mn: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    ebitda_2022_usd_mn: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    ebitda_2023_usd_mn: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    ebitda_2024_usd_mn: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    ev_2024: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    pipeline_stage: str | None = Field(
        default=None, sa_column=Column(String(length=8), nullable=True)
    )
    source: str = Field(
        default=CompanySource.MANUAL.value,
        sa_column=Column(String(length=32), nullable=False),
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


class CompanyProfile(BaseModel):
    """Company payload accepted by screening, enrichment and manual entry."""

    model_config = ConfigDict(extra="ignore")

    id: UUID | None = None
    name: str = PydanticField(min_length=1)
    segment: str | None = None
    geography: str | None = None
    company_focus: str | None = None
    ownership: str | None = None
    website: str | None = None
    revenue_2022_usd_mn: float | None = None
    revenue_2023_usd_mn: float | None = None
    revenue_2024_usd_mn: float | None = None
    ebitda_2022_usd_mn: float | None = None
    ebitda_2023_usd_mn: float | None = None
    ebitda_2024_usd_mn: float | None = None
    ev_2024: float | None = None

    @classmethod
    def from_record(cls, record: CompanyRecord) -> CompanyProfile:
        return cls.model_validate(record.model_dump())


class CompanyCreate(CompanyProfile):
    """Manual entry or bulk-import row."""

    pipeline_stage: PipelineStage | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    def to_record(self, *, source: CompanySource) -> CompanyRecord:
        values: dict[str, Any] = self.model_dump(exclude={"id", "pipeline_stage"})
        return CompanyRecord(
            **values,
            pipeline_stage=self.pipeline_stage.value if self.pipeline_stage else None,
            source=source.value,
        )


class CompanyRead(CompanyProfile):
    id: UUID
    pipeline_stage: PipelineStage | None = None
    source: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: CompanyRecord) -> CompanyRead:
        return cls.model_validate(record.model_dump())
