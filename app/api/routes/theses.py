"""Investment thesis CRUD."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.errors import http_error
from app.models.thesis import ThesisCreate, ThesisRead, ThesisUpdate
from app.services.pipeline.manager import PipelineManager, get_pipeline_manager
from app.services.screening.errors import PipelineError

router = APIRouter()


@router.get("/theses", response_model=list[ThesisRead])
async def list_theses(
    due: bool = Query(False, description="Only active theses whose next scan is due."),
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> list[ThesisRead]:
    try:
        records = manager.list_theses(due_only=due)
    except PipelineError as exc:
        raise http_error(exc, event="theses.list_error") from exc
    return [ThesisRead.from_record(record) for record in records]


@router.post("/theses", response_model=ThesisRead, status_code=status.HTTP_201_CREATED)
async def create_thesis(
    payload: ThesisCreate,
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> ThesisRead:
    try:
        return ThesisRead.from_record(manager.create_thesis(payload))
    except PipelineError as exc:
        raise http_error(exc, event="theses.create_error") from exc


@router.get("/theses/{thesis_id}", response_model=ThesisRead)
async def get_thesis(
    thesis_id: UUID,
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> ThesisRead:
    try:
        return ThesisRead.from_record(manager.get_thesis(thesis_id))
    except PipelineError as exc:
        raise http_error(exc, event="theses.get_error", thesis_id=thesis_id) from exc


@router.patch("/theses/{thesis_id}", response_model=ThesisRead)
async def update_thesis(
    thesis_id: UUID,
    payload: ThesisUpdate,
    manager: PipelineManager = Depends(get_pipeline_manager),
) -> ThesisRead:
    try:
        return ThesisRead.from_record(manager.update_thesis(thesis_id, payload))
    except PipelineError as exc:
        raise http_error(exc, event="theses.update_error", thesis_id=thesis_id) from exc


@router.delete("/theses/{thesis_id}")
async def delete_thesis(
    thesis_id: UUID,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    try:
        manager.delete_thesis(thesis_id)
    except PipelineError as exc:
        raise http_error(exc, event="theses.delete_error", thesis_id=thesis_id) from exc
    return {"success": True}
