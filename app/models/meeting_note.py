"""Meeting-note documents stored in object storage."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import Column, DateTime, String, Text, Uuid
from sqlmodel import Field, SQLModel

from app.models.columns import JSON_BACKING_TYPE, UtcNow, utcnow


class ProcessingStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MeetingNoteRecord(SQLModel, table=True):
    """ORM model for ``meeting_notes`` rows."""

    __tablename__ = "meeting_notes"

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    file_name: str = Field(sa_column=Column(String(length=512), nullable=False))
    file_key: str = Field(sa_column=Column(String(length=1024), nullable=False))
    content_type: str = Field(
        default="application/octet-stream", sa_column=Column(String(length=255), nullable=False)
    )
    processing_status: str = Field(
        default=ProcessingStatus.PROCESSING.value,
        sa_column=Column(String(length=16), nullable=False),
    )
    raw_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    structured_notes: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True)
    )
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False))
    matched_companies: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    file_date: str | None = Field(default=None, sa_column=Column(String(length=32), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )


class MatchedCompany(BaseModel):
    id: UUID
    name: str


class MeetingNoteRead(BaseModel):
    id: UUID
    file_name: str
    file_key: str
    content_type: str
    processing_status: ProcessingStatus
    raw_notes: str | None = None
    structured_notes: dict[str, Any] | None = None
    tags: list[str] = PydanticField(default_factory=list)
    matched_companies: list[MatchedCompany] = PydanticField(default_factory=list)
    file_date: str | None = None
    created_at: datetime
    signed_url: str | None = None

    @classmethod
    def from_record(cls, record: MeetingNoteRecord, *, signed_url: str | None = None) -> MeetingNoteRead:
        return cls.model_validate({**record.model_dump(), "signed_url": signed_url})
