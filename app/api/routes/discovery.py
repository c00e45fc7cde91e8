"""Market screening (thesis-driven discovery) and candidate review endpoints."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.errors import http_error
from app.core.context import RequestContext, get_request_context
from app.models.company import CompanyRead
from app.models.discovery import DiscoveryCandidateRead
from app.models.screening import DiscoveryRequest, DiscoveryResponse
from app.services.pipeline.manager import PipelineManager, get_pipeline_manager
from app.services.screening.engine import ScreeningEngine, get_screening_engine
from app.services.screening.errors import PipelineError

router = APIRouter()
logger = logging.getLogger(__name__)


class AddToPipelineRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1)


class CandidateFailure(BaseModel):
    id: UUID
    error: str


class AddToPipelineResponse(BaseModel):
    added: list[CompanyRead]
    skipped: list[UUID]
    failed: list[CandidateFailure]


@router.post("/market-screening", response_model=DiscoveryResponse, response_model_exclude_none=True)
async def run_market_screening(
    payload: DiscoveryRequest,
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> DiscoveryResponse:
    """Discover new candidate companies for an investment thesis."""
    try:
        return await engine.discover_companies(payload)
    except PipelineError as exc:
        raise http_error(exc, event="discovery.api_error", thesis_id=payload.thesis_id) from exc


@router.get("/market-screening/results", response_model=list[DiscoveryCandidateRead])
async def list_results(
    include_added: bool = Query(False, alias="includeAdded"),
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> list[DiscoveryCandidateRead]:
    """Pending candidates, best match first."""
    try:
        records = manager.list_candidates(include_added=include_added)
    except PipelineError as exc:
        raise http_error(exc, event="discovery.results_error") from exc
    return [DiscoveryCandidateRead.from_record(record) for record in records]


@router.post("/market-screening/results/add-to-pipeline", response_model=AddToPipelineResponse)
async def add_to_pipeline(
    payload: AddToPipelineRequest,
    manager: PipelineManager = Depends(get_pipeline_manager),
    context: RequestContext = Depends(get_request_context),
) -> AddToPipelineResponse:
    try:
        result = manager.add_candidates_to_pipeline(payload.ids, user_id=context.user_id)
    except PipelineError as exc:
        raise http_error(exc, event="discovery.add_to_pipeline_error") from exc
    return AddToPipelineResponse(
        added=[CompanyRead.from_record(record) for record in result.added],
        skipped=result.skipped,
        failed=[CandidateFailure(id=candidate_id, error=error) for candidate_id, error in result.failed],
    )


@router.delete("/market-screening/results/{candidate_id}")
async def dismiss_result(
    candidate_id: UUID,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    try:
        manager.dismiss_candidate(candidate_id)
    except PipelineError as exc:
        raise http_error(exc, event="discovery.dismiss_error", candidate_id=candidate_id) from exc
    return {"success": True}
