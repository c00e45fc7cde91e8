"""Meeting-note upload, listing and signed-URL endpoints."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.api.errors import http_error
from app.models.meeting_note import MeetingNoteRead
from app.services.meeting_notes import MeetingNotesService, get_meeting_notes_service
from app.services.screening.errors import PipelineError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/meeting-notes", response_model=MeetingNoteRead, status_code=status.HTTP_201_CREATED)
async def upload_meeting_note(
    file: UploadFile = File(...),
    service: MeetingNotesService = Depends(get_meeting_notes_service),
) -> MeetingNoteRead:
    """Store a document and extract structured notes from it."""
    file_name = file.filename or "upload"
    data = await file.read()
    try:
        record = await service.upload(file_name, data, file.content_type)
        signed_url = await service.signed_url(record)
    except PipelineError as exc:
        raise http_error(exc, event="meeting_notes.upload_error", file_name=file_name) from exc
    return MeetingNoteRead.from_record(record, signed_url=signed_url)


@router.get("/meeting-notes", response_model=list[MeetingNoteRead])
async def list_meeting_notes(
    service: MeetingNotesService = Depends(get_meeting_notes_service),
) -> list[MeetingNoteRead]:
    try:
        records = service.list_notes()
    except PipelineError as exc:
        raise http_error(exc, event="meeting_notes.list_error") from exc
    return [
        MeetingNoteRead.from_record(record, signed_url=await service.signed_url(record))
        for record in records
    ]


@router.get("/meeting-notes/upload-url")
async def meeting_note_upload_url(
    file_name: str = Query(..., alias="fileName", min_length=1),
    service: MeetingNotesService = Depends(get_meeting_notes_service),
):
    """Pre-signed URL for uploading a file directly to storage."""
    try:
        return await service.upload_url(file_name)
    except PipelineError as exc:
        raise http_error(exc, event="meeting_notes.upload_url_error", file_name=file_name) from exc


@router.get("/meeting-notes/{note_id}", response_model=MeetingNoteRead)
async def get_meeting_note(
    note_id: UUID,
    service: MeetingNotesService = Depends(get_meeting_notes_service),
) -> MeetingNoteRead:
    try:
        record = service.get_note(note_id)
    except PipelineError as exc:
        raise http_error(exc, event="meeting_notes.get_error", note_id=note_id) from exc
    return MeetingNoteRead.from_record(record, signed_url=await service.signed_url(record))


@router.delete("/meeting-notes/{note_id}")
async def delete_meeting_note(
    note_id: UUID,
    service: MeetingNotesService = Depends(get_meeting_notes_service),
):
    try:
        await service.delete_note(note_id)
    except PipelineError as exc:
        raise http_error(exc, event="meeting_notes.delete_error", note_id=note_id) from exc
    return {"success": True}


@router.get("/meeting-notes/{note_id}/download-url")
async def meeting_note_download_url(
    note_id: UUID,
    service: MeetingNotesService = Depends(get_meeting_notes_service),
):
    """Signed URL that forces a download under the original file name."""
    try:
        record = service.get_note(note_id)
        url = await service.signed_url(record, download=True)
    except PipelineError as exc:
        raise http_error(exc, event="meeting_notes.download_url_error", note_id=note_id) from exc
    return {"url": url, "fileName": record.file_name}
