"""Request/response payloads for criterion screening, enrichment and discovery."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.company import CompanyProfile


class ScreeningOutcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    INCONCLUSIVE = "inconclusive"
    ERROR = "error"


class ScreeningResult(BaseModel):
    result: ScreeningOutcome
    remarks: str

    @classmethod
    def error(cls, remarks: str) -> ScreeningResult:
        return cls(result=ScreeningOutcome.ERROR, remarks=remarks)


class ScreenedCompany(CompanyProfile):
    """Company snapshot sent for screening; any field, the name included, may be absent."""

    name: str | None = None


class ScreeningRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(alias="companyId", min_length=1)
    criteria_id: str = Field(alias="criteriaId", min_length=1)
    criteria_prompt: str = Field(alias="criteriaPrompt", min_length=1)
    company: ScreenedCompany


class ScreeningResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(alias="companyId")
    criteria_id: str = Field(alias="criteriaId")
    result: ScreeningOutcome
    remarks: str


class EnrichmentTarget(CompanyProfile):
    """A stored company to enrich; the persisted record is authoritative."""

    id: UUID
    name: str | None = None


class EnrichmentRequest(BaseModel):
    companies: list[EnrichmentTarget] = Field(min_length=1)


class EnrichmentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(alias="companyId")
    updated: bool
    fields_updated: list[str] = Field(default_factory=list, alias="fieldsUpdated")
    error: str | None = None


class EnrichmentResponse(BaseModel):
    success: bool
    message: str
    results: list[EnrichmentResult]


class DiscoveryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thesis: str | None = None
    sources_count: int | None = Field(default=None, alias="sourcesCount", ge=1)
    thesis_id: UUID | None = Field(default=None, alias="thesisId")

    @model_validator(mode="after")
    def _require_thesis(self) -> DiscoveryRequest:
        if (self.thesis is None or not self.thesis.strip()) and self.thesis_id is None:
            raise ValueError("Investment thesis is required")
        return self


class DiscoveryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    count: int
    companies: list[str] = Field(default_factory=list)
    failed: int = 0
    message: str | None = None
    raw_response: str | None = Field(default=None, alias="rawResponse")
