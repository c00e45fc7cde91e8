"""Company, discovery-candidate and thesis workflows with audit logging."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from app.models.audit import (
    ACTION_ADDED_FROM_MARKET_SCREENING,
    ACTION_ADDED_TO_PIPELINE,
    ACTION_CREATED,
    CompanyLogRecord,
    promotion_action,
)
from app.models.company import CompanyCreate, CompanyRecord, CompanySource, PipelineStage
from app.models.discovery import DiscoveryCandidateRecord
from app.models.thesis import InvestmentThesisRecord, ThesisCreate, ThesisUpdate
from app.observability.metrics import metrics
from app.services.pipeline.repositories import PipelineRepositories, get_repositories
from app.services.screening.errors import PipelineError, RecordNotFoundError, StageTransitionError
from app.services.screening.formatting import parse_estimated_value
from app.services.screening.reconciler import BatchOutcome, persist_each
from app.services.screening.scheduling import is_scan_due

logger = logging.getLogger(__name__)

UNKNOWN_SEGMENT = "Unknown"


@dataclass
class CandidatePromotion:
    """Result of moving discovery candidates into the pipeline."""

    added: list[CompanyRecord] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    failed: list[tuple[UUID, str]] = field(default_factory=list)


class PipelineManager:
    def __init__(self, repositories: PipelineRepositories | None = None) -> None:
        self._repositories = repositories or get_repositories()

    # Companies

    def create_company(
        self,
        payload: CompanyCreate,
        *,
        source: CompanySource = CompanySource.MANUAL,
        user_id: str | None = None,
    ) -> CompanyRecord:
        record = self._repositories.companies.add(payload.to_record(source=source))
        self._repositories.logs.append(
            record.id, ACTION_CREATED, details={"source": source.value}, user_id=user_id
        )
        if record.pipeline_stage:
            self._repositories.logs.append(
                record.id,
                ACTION_ADDED_TO_PIPELINE,
                details={"stage": record.pipeline_stage},
                user_id=user_id,
            )
        logger.info(
            "pipeline.company_created",
            extra={"company_id": str(record.id), "source": source.value},
        )
        return record

    def import_companies(
        self, rows: Sequence[Mapping[str, Any]], *, user_id: str | None = None
    ) -> BatchOutcome[CompanyRecord]:
        """Validate and insert rows one at a time; bad rows are reported, not raised."""
        outcome: BatchOutcome[CompanyRecord] = BatchOutcome()
        valid: list[CompanyCreate] = []
        for index, row in enumerate(rows, start=1):
            try:
                valid.append(CompanyCreate.model_validate(row))
            except ValidationError as exc:
                first = exc.errors()[0]
                field_name = ".".join(str(part) for part in first.get("loc", ()))
                outcome.failed.append((f"row {index}", f"{field_name}: {first.get('msg')}"))

        written = persist_each(
            valid,
            lambda row: self.create_company(row, source=CompanySource.IMPORT, user_id=user_id),
            label=lambda row: row.name,
        )
        outcome.succeeded.extend(written.succeeded)
        outcome.failed.extend(written.failed)
        metrics.record_batch(
            "pipeline.import", succeeded=outcome.success_count, failed=outcome.failure_count
        )
        logger.info(
            "pipeline.import_completed",
            extra={"imported": outcome.success_count, "failed": outcome.failure_count},
        )
        return outcome

    def list_companies(
        self, *, stage: PipelineStage | None = None, in_pipeline: bool | None = None
    ) -> list[CompanyRecord]:
        filters: dict[str, Any] = {}
        if stage is not None:
            filters["pipeline_stage"] = stage.value
        records = self._repositories.companies.list(filters=filters, order_by="created_at")
        if in_pipeline is not None:
            records = [record for record in records if (record.pipeline_stage is not None) == in_pipeline]
        return records

    def get_company(self, company_id: UUID) -> CompanyRecord:
        record = self._repositories.companies.get(company_id)
        if record is None:
            raise RecordNotFoundError(f"Company {company_id} not found")
        return record

    def company_logs(self, company_id: UUID) -> list[CompanyLogRecord]:
        self.get_company(company_id)
        return self._repositories.logs.list_for_company(company_id)

    def promote_company(
        self,
        company_id: UUID,
        *,
        target_stage: PipelineStage | None = None,
        note: str | None = None,
        link: str | None = None,
        document: str | None = None,
        user_id: str | None = None,
    ) -> CompanyRecord:
        """Move a company forward; companies outside the pipeline enter at L0 (or ``target_stage``)."""
        record = self.get_company(company_id)
        current = PipelineStage(record.pipeline_stage) if record.pipeline_stage else None

        if current is None:
            new_stage = target_stage or PipelineStage.L0
            action = ACTION_ADDED_TO_PIPELINE
        else:
            new_stage = target_stage or current.next_stage()
            if new_stage is None:
                raise StageTransitionError(f"Company is already at final stage {current.value}")
            if new_stage.rank <= current.rank:
                raise StageTransitionError(
                    f"Cannot move company from {current.value} to {new_stage.value}"
                )
            action = promotion_action(current.value, new_stage.value)

        details: dict[str, Any] = {
            "from_stage": current.value if current else None,
            "to_stage": new_stage.value,
        }
        for key, value in (("note", note), ("link", link), ("document", document)):
            if value:
                details[key] = value

        updated = self._repositories.companies.update(company_id, {"pipeline_stage": new_stage.value})
        if updated is None:
            raise RecordNotFoundError(f"Company {company_id} not found")
        self._repositories.logs.append(company_id, action, details=details, user_id=user_id)
        metrics.increment("pipeline.promoted", tags={"to_stage": new_stage.value})
        logger.info(
            "pipeline.company_promoted",
            extra={"company_id": str(company_id), "action": action},
        )
        return updated

    # Discovery candidates

    def list_candidates(self, *, include_added: bool = False) -> list[DiscoveryCandidateRecord]:
        filters = None if include_added else {"is_added_to_pipeline": False}
        return self._repositories.candidates.list(filters=filters, order_by="match_score")

    def add_candidates_to_pipeline(
        self, candidate_ids: Sequence[UUID], *, user_id: str | None = None
    ) -> CandidatePromotion:
        """Create an L0 company per pending candidate; already-added ids are skipped."""
        result = CandidatePromotion()
        for candidate_id in candidate_ids:
            candidate = self._repositories.candidates.get(candidate_id)
            if candidate is None or candidate.is_added_to_pipeline:
                result.skipped.append(candidate_id)
                continue
            try:
                result.added.append(self._promote_candidate(candidate, user_id=user_id))
            except PipelineError as exc:
                logger.warning(
                    "pipeline.candidate_failed",
                    extra={"candidate_id": str(candidate_id), "code": exc.code},
                )
                result.failed.append((candidate_id, str(exc)))
        metrics.record_batch(
            "pipeline.candidates_added", succeeded=len(result.added), failed=len(result.failed)
        )
        logger.info(
            "pipeline.candidates_added",
            extra={
                "added": len(result.added),
                "skipped": len(result.skipped),
                "failed": len(result.failed),
            },
        )
        return result

    def dismiss_candidate(self, candidate_id: UUID) -> None:
        candidate = self._repositories.candidates.get(candidate_id)
        if candidate is None:
            raise RecordNotFoundError(f"Candidate {candidate_id} not found")
        if candidate.is_added_to_pipeline:
            raise PipelineError(
                "Candidate has already been added to the pipeline", code="409_ALREADY_ADDED"
            )
        self._repositories.candidates.delete(candidate_id)
        logger.info("pipeline.candidate_dismissed", extra={"candidate_id": str(candidate_id)})

    def _promote_candidate(
        self, candidate: DiscoveryCandidateRecord, *, user_id: str | None
    ) -> CompanyRecord:
        """Claim the candidate, then create its company.

        The flag is set before the insert and cleared again if the insert
        fails, so a retry can never produce a second company.
        """
        self._repositories.candidates.update(candidate.id, {"is_added_to_pipeline": True})
        try:
            company = self._repositories.companies.add(
                CompanyRecord(
                    name=candidate.company_name,
                    segment=candidate.sector or UNKNOWN_SEGMENT,
                    company_focus=candidate.description,
                    website=candidate.website,
                    ev_2024=parse_estimated_value(candidate.estimated_valuation),
                    pipeline_stage=PipelineStage.L0.value,
                    source=CompanySource.MARKET_SCREENING.value,
                )
            )
        except PipelineError:
            self._release_candidate(candidate.id)
            raise

        try:
            self._repositories.logs.append(
                company.id,
                ACTION_ADDED_FROM_MARKET_SCREENING,
                details={
                    "candidate_id": str(candidate.id),
                    "match_score": candidate.match_score,
                    "match_reason": candidate.match_reason,
                    "estimated_revenue": candidate.estimated_revenue,
                    "estimated_valuation": candidate.estimated_valuation,
                },
                user_id=user_id,
            )
        except PipelineError as exc:
            metrics.increment("pipeline.audit_failed", tags={"action": ACTION_ADDED_FROM_MARKET_SCREENING})
            logger.error(
                "pipeline.audit_failed",
                extra={"company_id": str(company.id), "candidate_id": str(candidate.id), "code": exc.code},
            )
        return company

    def _release_candidate(self, candidate_id: UUID) -> None:
        try:
            self._repositories.candidates.update(candidate_id, {"is_added_to_pipeline": False})
        except PipelineError as exc:
            logger.error(
                "pipeline.candidate_release_failed",
                extra={"candidate_id": str(candidate_id), "code": exc.code},
            )

    # Theses

    def create_thesis(self, payload: ThesisCreate) -> InvestmentThesisRecord:
        record = self._repositories.theses.add(payload.to_record())
        logger.info("pipeline.thesis_created", extra={"thesis_id": str(record.id)})
        return record

    def list_theses(self, *, due_only: bool = False) -> list[InvestmentThesisRecord]:
        records = self._repositories.theses.list(order_by="created_at")
        if due_only:
            return [record for record in records if is_scan_due(record)]
        return records

    def get_thesis(self, thesis_id: UUID) -> InvestmentThesisRecord:
        record = self._repositories.theses.get(thesis_id)
        if record is None:
            raise RecordNotFoundError(f"Investment thesis {thesis_id} not found")
        return record

    def update_thesis(self, thesis_id: UUID, payload: ThesisUpdate) -> InvestmentThesisRecord:
        values = payload.model_dump(exclude_unset=True)
        if values.get("scan_frequency") is not None:
            values["scan_frequency"] = payload.scan_frequency.value
        values = {key: value for key, value in values.items() if value is not None}
        self.get_thesis(thesis_id)
        updated = self._repositories.theses.update(thesis_id, values)
        if updated is None:
            raise RecordNotFoundError(f"Investment thesis {thesis_id} not found")
        return updated

    def delete_thesis(self, thesis_id: UUID) -> None:
        if not self._repositories.theses.delete(thesis_id):
            raise RecordNotFoundError(f"Investment thesis {thesis_id} not found")


_MANAGER_INSTANCE: PipelineManager | None = None


def get_pipeline_manager() -> PipelineManager:
    global _MANAGER_INSTANCE  # noqa: PLW0603
    if _MANAGER_INSTANCE is None:
        _MANAGER_INSTANCE = PipelineManager()
    return _MANAGER_INSTANCE
