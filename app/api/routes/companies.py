"""Company CRUD, bulk import, stage promotion and audit history."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.errors import http_error
from app.core.context import RequestContext, get_request_context
from app.models.audit import CompanyLogRead
from app.models.company import CompanyCreate, CompanyRead, PipelineStage
from app.services.pipeline.manager import PipelineManager, get_pipeline_manager
from app.services.screening.errors import PipelineError

router = APIRouter()
logger = logging.getLogger(__name__)


class ImportRequest(BaseModel):
    companies: list[dict[str, Any]] = Field(min_length=1)


class ImportFailure(BaseModel):
    row: str
    error: str


class ImportResponse(BaseModel):
    imported: int
    companies: list[CompanyRead]
    failed: list[ImportFailure]


class PromoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_stage: PipelineStage | None = Field(default=None, alias="targetStage")
    note: str | None = None
    link: str | None = None
    document: str | None = None


@router.get("/companies", response_model=list[CompanyRead])
async def list_companies(
    stage: PipelineStage | None = Query(None),
    in_pipeline: bool | None = Query(None, alias="inPipeline"),
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> list[CompanyRead]:
    try:
        records = manager.list_companies(stage=stage, in_pipeline=in_pipeline)
    except PipelineError as exc:
        raise http_error(exc, event="companies.list_error") from exc
    return [CompanyRead.from_record(record) for record in records]


@router.post("/companies", response_model=CompanyRead, status_code=status.HTTP_201_CREATED)
async def create_company(
    payload: CompanyCreate,
    manager: PipelineManager = Depends(get_pipeline_manager),
    context: RequestContext = Depends(get_request_context),
) -> CompanyRead:
    """Add a company manually."""
    try:
        record = manager.create_company(payload, user_id=context.user_id)
    except PipelineError as exc:
        raise http_error(exc, event="companies.create_error", name=payload.name) from exc
    return CompanyRead.from_record(record)


@router.post("/companies/import", response_model=ImportResponse)
async def import_companies(
    payload: ImportRequest,
    manager: PipelineManager = Depends(get_pipeline_manager),
    context: RequestContext = Depends(get_request_context),
) -> ImportResponse:
    """Bulk import; each row succeeds or fails on its own."""
    outcome = manager.import_companies(payload.companies, user_id=context.user_id)
    return ImportResponse(
        imported=outcome.success_count,
        companies=[CompanyRead.from_record(record) for record in outcome.succeeded],
        failed=[ImportFailure(row=str(label), error=error) for label, error in outcome.failed],
    )


@router.get("/companies/{company_id}", response_model=CompanyRead)
async def get_company(
    company_id: UUID,
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> CompanyRead:
    try:
        return CompanyRead.from_record(manager.get_company(company_id))
    except PipelineError as exc:
        raise http_error(exc, event="companies.get_error", company_id=company_id) from exc


@router.post("/companies/{company_id}/promote", response_model=CompanyRead)
async def promote_company(
    company_id: UUID,
    payload: PromoteRequest | None = None,
    manager: PipelineManager = Depends(get_pipeline_manager),
    context: RequestContext = Depends(get_request_context),
) -> CompanyRead:
    """Advance a company to the next (or a later) pipeline stage."""
    payload = payload or PromoteRequest()
    try:
        record = manager.promote_company(
            company_id,
            target_stage=payload.target_stage,
            note=payload.note,
            link=payload.link,
            document=payload.document,
            user_id=context.user_id,
        )
    except PipelineError as exc:
        raise http_error(exc, event="companies.promote_error", company_id=company_id) from exc
    return CompanyRead.from_record(record)


@router.get("/companies/{company_id}/logs", response_model=list[CompanyLogRead])
async def company_logs(
    company_id: UUID,
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> list[CompanyLogRead]:
    try:
        records = manager.company_logs(company_id)
    except PipelineError as exc:
        raise http_error(exc, event="companies.logs_error", company_id=company_id) from exc
    return [CompanyLogRead.from_record(record) for record in records]
