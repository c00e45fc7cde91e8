"""Meeting-note upload, text extraction and agent structuring."""

from __future__ import annotations

import difflib
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any
from uuid import UUID

from app.clients.agent import AgentClient, AgentMessage, build_agent_client
from app.clients.object_store import ObjectStore, build_object_store, generate_meeting_note_key
from app.models.company import CompanyRecord
from app.models.meeting_note import MeetingNoteRecord, ProcessingStatus
from app.observability.metrics import metrics
from app.services.documents.extractor import extract_text
from app.services.pipeline.repositories import PipelineRepositories, get_repositories
from app.services.screening.errors import (
    AgentNotConfiguredError,
    AgentProviderError,
    PipelineError,
    RecordNotFoundError,
)
from app.services.screening.parsing import ParsedPayload, parse_json_payload
from app.services.screening.prompts import MEETING_NOTES_PROMPT

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.8
_RAW_TEXT_LIMIT = 60_000


def match_companies(
    detected: Iterable[Any], companies: Sequence[CompanyRecord], *, threshold: float = MATCH_THRESHOLD
) -> list[dict[str, str]]:
    """Resolve detected names to known companies (exact, then closest ratio >= threshold)."""
    by_lower = {company.name.lower(): company for company in companies}
    matched: list[dict[str, str]] = []
    seen: set[UUID] = set()
    for name in detected:
        if not isinstance(name, str) or not name.strip():
            continue
        needle = name.strip().lower()
        company = by_lower.get(needle)
        if company is None:
            best_ratio = 0.0
            for candidate in companies:
                ratio = difflib.SequenceMatcher(None, needle, candidate.name.lower()).ratio()
                if ratio > best_ratio:
                    best_ratio, company = ratio, candidate
            if best_ratio < threshold:
                company = None
        if company is not None and company.id not in seen:
            seen.add(company.id)
            matched.append({"id": str(company.id), "name": company.name})
    return matched


def _optional_text(value: Any) -> str | None:
    return value.strip() or None if isinstance(value, str) else None


class MeetingNotesService:
    def __init__(
        self,
        *,
        repositories: PipelineRepositories | None = None,
        store: ObjectStore | None = None,
        client: AgentClient | None = None,
        store_factory: Callable[[], ObjectStore] = build_object_store,
        client_factory: Callable[[], AgentClient] = build_agent_client,
    ) -> None:
        self._repositories = repositories or get_repositories()
        self._store = store
        self._client = client
        self._store_factory = store_factory
        self._client_factory = client_factory

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = self._store_factory()
        return self._store

    async def upload(self, file_name: str, data: bytes, content_type: str | None) -> MeetingNoteRecord:
        """Store the file, then extract and structure it.

        Extraction or structuring problems mark the note ``failed`` instead of raising.
        """
        content_type = content_type or "application/octet-stream"
        key = generate_meeting_note_key(file_name)
        await self.store.upload(key, data, content_type)
        note = self._repositories.notes.add(
            MeetingNoteRecord(
                file_name=file_name,
                file_key=key,
                content_type=content_type,
                processing_status=ProcessingStatus.PROCESSING.value,
            )
        )
        logger.info("meeting_notes.uploaded", extra={"note_id": str(note.id), "key": key})
        values = await self._process(note.id, data, content_type, file_name)
        updated = self._repositories.notes.update(note.id, values)
        return updated or note

    async def _process(
        self, note_id: UUID, data: bytes, content_type: str, file_name: str
    ) -> dict[str, Any]:
        raw_text = ""
        try:
            raw_text = extract_text(data, content_type, file_name)
            structured = await self._structure(raw_text)
        except PipelineError as exc:
            metrics.increment("meeting_notes.failed", tags={"code": exc.code})
            logger.warning(
                "meeting_notes.processing_failed",
                extra={"note_id": str(note_id), "code": exc.code},
            )
            return {
                "processing_status": ProcessingStatus.FAILED.value,
                "raw_notes": raw_text or "Extraction failed",
            }

        values: dict[str, Any] = {
            "processing_status": ProcessingStatus.COMPLETED.value,
            "raw_notes": raw_text,
        }
        if structured is not None:
            companies = self._repositories.companies.list()
            detected = structured.get("companies_detected") or []
            tags = structured.get("tags") or []
            values.update(
                structured_notes=structured,
                tags=[str(tag) for tag in tags if isinstance(tag, (str, int, float))],
                matched_companies=match_companies(
                    detected if isinstance(detected, list) else [], companies
                ),
                file_date=_optional_text(structured.get("file_date")),
            )
        metrics.increment("meeting_notes.completed")
        logger.info(
            "meeting_notes.processed",
            extra={"note_id": str(note_id), "structured": structured is not None},
        )
        return values

    async def _structure(self, raw_text: str) -> dict[str, Any] | None:
        """Ask the agent for structured notes; returns None when no agent is configured."""
        try:
            client = self._ensure_client()
        except AgentNotConfiguredError:
            logger.info("meeting_notes.structuring_skipped", extra={"reason": "agent_not_configured"})
            return None
        known = ", ".join(company.name for company in self._repositories.companies.list()) or "None"
        prompt = MEETING_NOTES_PROMPT.render(known_companies=known, raw_text=raw_text[:_RAW_TEXT_LIMIT])
        raw_response = await client.complete([AgentMessage.user(prompt)])
        outcome = parse_json_payload(raw_response, signature_key="summary")
        if not isinstance(outcome, ParsedPayload):
            raise AgentProviderError(outcome.reason, code="502_AGENT_UNPARSEABLE")
        return outcome.payload

    def list_notes(self) -> list[MeetingNoteRecord]:
        return self._repositories.notes.list(order_by="created_at")

    def get_note(self, note_id: UUID) -> MeetingNoteRecord:
        record = self._repositories.notes.get(note_id)
        if record is None:
            raise RecordNotFoundError(f"Meeting note {note_id} not found")
        return record

    async def delete_note(self, note_id: UUID) -> None:
        record = self.get_note(note_id)
        await self.store.delete(record.file_key)
        self._repositories.notes.delete(note_id)
        logger.info("meeting_notes.deleted", extra={"note_id": str(note_id)})

    async def signed_url(self, record: MeetingNoteRecord, *, download: bool = False) -> str | None:
        """Signed GET URL; signing failures yield None unless ``download`` is set."""
        try:
            return await self.store.signed_url(
                record.file_key, download_name=record.file_name if download else None
            )
        except PipelineError as exc:
            logger.warning(
                "meeting_notes.sign_failed",
                extra={"note_id": str(record.id), "code": exc.code},
            )
            if download:
                raise
            return None

    async def upload_url(self, file_name: str) -> dict[str, str]:
        key = generate_meeting_note_key(file_name)
        url = await self.store.signed_upload_url(key)
        return {"uploadUrl": url, "key": key}

    def _ensure_client(self) -> AgentClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client


_SERVICE_INSTANCE: MeetingNotesService | None = None


def get_meeting_notes_service() -> MeetingNotesService:
    global _SERVICE_INSTANCE  # noqa: PLW0603
    if _SERVICE_INSTANCE is None:
        _SERVICE_INSTANCE = MeetingNotesService()
    return _SERVICE_INSTANCE
