"""Criterion screening and missing-data enrichment endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.api.errors import http_error
from app.core.context import RequestContext, get_request_context
from app.models.screening import (
    EnrichmentRequest,
    EnrichmentResponse,
    ScreeningRequest,
    ScreeningResponse,
)
from app.services.screening.engine import ScreeningEngine, get_screening_engine
from app.services.screening.errors import PipelineError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/ai-screening", response_model=ScreeningResponse)
async def screen_company(
    payload: ScreeningRequest,
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> ScreeningResponse:
    """Evaluate a company against one screening criterion."""
    try:
        return await engine.screen_company(payload)
    except PipelineError as exc:
        raise http_error(
            exc, event="screening.api_error", company_id=payload.company_id
        ) from exc


@router.get("/ai-screening")
async def screening_status(engine: ScreeningEngine = Depends(get_screening_engine)):
    return engine.agent_status()


@router.post("/add-missing-data", response_model=EnrichmentResponse)
async def add_missing_data(
    payload: EnrichmentRequest,
    engine: ScreeningEngine = Depends(get_screening_engine),
    context: RequestContext = Depends(get_request_context),
) -> EnrichmentResponse:
    """Fill missing fields on stored companies without overwriting present values."""
    try:
        return await engine.enrich_companies(payload.companies, user_id=context.user_id)
    except PipelineError as exc:
        raise http_error(exc, event="enrichment.api_error", companies=len(payload.companies)) from exc


@router.get("/add-missing-data")
async def enrichment_status(engine: ScreeningEngine = Depends(get_screening_engine)):
    return engine.agent_status()
