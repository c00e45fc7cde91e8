"""Agent-backed criterion screening, missing-data enrichment and market discovery."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.clients.agent import AgentClient, AgentMessage, build_agent_client
from app.config import settings
from app.models.audit import ACTION_ENRICHED
from app.models.columns import utcnow
from app.models.discovery import DiscoveredCompany, DiscoveryCandidateRecord
from app.models.screening import (
    DiscoveryRequest,
    DiscoveryResponse,
    EnrichmentResponse,
    EnrichmentResult,
    EnrichmentTarget,
    ScreeningOutcome,
    ScreeningRequest,
    ScreeningResponse,
    ScreeningResult,
)
from app.models.thesis import InvestmentThesisRecord
from app.observability.metrics import metrics
from app.services.pipeline.repositories import PipelineRepositories, get_repositories
from app.services.screening.context import build_company_context, build_company_summary
from app.services.screening.errors import (
    AgentNotConfiguredError,
    AgentProviderError,
    PersistenceError,
    PipelineError,
    RecordNotFoundError,
)
from app.services.screening.parsing import (
    AgentOutcome,
    ParsedPayload,
    ParseFailure,
    UpstreamFailure,
    parse_json_payload,
)
from app.services.screening.prompts import DISCOVERY_PROMPT, ENRICHMENT_PROMPT, SCREENING_PROMPT
from app.services.screening.reconciler import (
    build_enrichment_update,
    candidates_from_payload,
    filter_new_candidates,
    persist_each,
)
from app.services.screening.scheduling import scan_timestamps
from app.services.screening.schema import describe_fields, missing_enrichable_fields

logger = logging.getLogger(__name__)

_RAW_RESPONSE_PREVIEW = 2000


class ScreeningEngine:
    """Runs the prompt → agent → parser → reconciler flow for each agent-backed route."""

    def __init__(
        self,
        *,
        repositories: PipelineRepositories | None = None,
        client: AgentClient | None = None,
        client_factory: Callable[[], AgentClient] = build_agent_client,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self._repositories = repositories or get_repositories()
        self._client = client
        self._client_factory = client_factory
        self._clock = clock

    def agent_status(self) -> dict[str, str]:
        if self._client is not None or settings.agent_configured:
            return {"status": "ok", "model": settings.agent_model}
        return {
            "status": "not_configured",
            "message": AgentNotConfiguredError().args[0],
        }

    async def screen_company(self, request: ScreeningRequest) -> ScreeningResponse:
        """Evaluate one company against one criterion; agent problems become an ``error`` result."""
        client = self._ensure_client()
        prompt = SCREENING_PROMPT.render(
            company_context=build_company_context(request.company.model_dump()),
            criteria_prompt=request.criteria_prompt,
        )
        outcome = await self._invoke_for_json(client, prompt, operation="screening")
        result = _screening_result(outcome)
        metrics.increment("screening.completed", tags={"result": result.result.value})
        logger.info(
            "screening.completed",
            extra={
                "company_id": request.company_id,
                "criteria_id": request.criteria_id,
                "result": result.result.value,
            },
        )
        return ScreeningResponse(
            company_id=request.company_id,
            criteria_id=request.criteria_id,
            result=result.result,
            remarks=result.remarks,
        )

    async def enrich_companies(
        self, companies: list[EnrichmentTarget], *, user_id: str | None = None
    ) -> EnrichmentResponse:
        """Fill missing fields company by company, in input order."""
        client = self._ensure_client()
        results = [
            await self._enrich_one(client, company, user_id=user_id) for company in companies
        ]
        updated = sum(1 for result in results if result.updated)
        failed = sum(1 for result in results if result.error)
        logger.info(
            "enrichment.completed",
            extra={"companies": len(results), "updated": updated, "failed": failed},
        )
        return EnrichmentResponse(
            success=True,
            message=f"Processed {len(results)} companies; updated {updated}.",
            results=results,
        )

    async def discover_companies(self, request: DiscoveryRequest) -> DiscoveryResponse:
        """Ask the agent for new candidates matching a thesis and store the new ones.

        Upstream agent failures propagate as ``AgentProviderError``; an
        unparseable answer is reported with ``count=0`` and the raw text.
        """
        client = self._ensure_client()
        thesis_record = self._load_thesis(request)
        thesis_text = (request.thesis or "").strip() or (thesis_record.content if thesis_record else "")
        count = self._resolve_sources_count(request, thesis_record)

        existing_names = [record.name for record in self._repositories.companies.list()]
        existing_names.extend(record.company_name for record in self._repositories.candidates.list())
        prompt = DISCOVERY_PROMPT.render(
            thesis=thesis_text,
            exclusions=", ".join(sorted(set(existing_names))) or "None",
            thesis_excerpt=thesis_text[:100],
            schema_fields=describe_fields(),
            count=count,
        )

        start = time.perf_counter()
        outcome = await self._invoke_for_json(
            client, prompt, operation="discovery", signature_key="companies"
        )
        if isinstance(outcome, UpstreamFailure):
            raise AgentProviderError(outcome.reason, code=outcome.code)
        if isinstance(outcome, ParseFailure):
            return DiscoveryResponse(
                count=0,
                message=outcome.reason,
                raw_response=outcome.raw_text[:_RAW_RESPONSE_PREVIEW],
            )

        candidates = filter_new_candidates(candidates_from_payload(outcome.payload), existing_names)
        discovered_at = self._clock()
        thesis_id = thesis_record.id if thesis_record else None

        def _insert(candidate: DiscoveredCompany) -> DiscoveryCandidateRecord:
            record = candidate.to_record(discovered_at=discovered_at, thesis_id=thesis_id)
            return self._repositories.candidates.add(record)

        batch = persist_each(candidates, _insert, label=lambda candidate: candidate.company_name)
        if thesis_record is not None:
            self._record_scan(thesis_record, discovered_at)

        metrics.record_batch(
            "discovery.candidates",
            succeeded=batch.success_count,
            failed=batch.failure_count,
            tags={"source": "thesis" if thesis_record else "adhoc"},
        )
        metrics.timing("discovery.latency_ms", (time.perf_counter() - start) * 1000)
        logger.info(
            "discovery.persisted",
            extra={
                "thesis_id": str(thesis_id) if thesis_id else None,
                "inserted": batch.success_count,
                "failed": batch.failure_count,
            },
        )
        message = None if batch.succeeded else "No new companies found"
        return DiscoveryResponse(
            count=batch.success_count,
            companies=[record.company_name for record in batch.succeeded],
            failed=batch.failure_count,
            message=message,
        )

    def _record_scan(self, thesis: InvestmentThesisRecord, scanned_at: datetime) -> None:
        """Stamp the thesis scan; a failure here never discards inserted candidates."""
        try:
            self._repositories.theses.update(
                thesis.id, scan_timestamps(thesis.scan_frequency, now=scanned_at)
            )
        except PersistenceError as exc:
            metrics.increment("discovery.scan_stamp_failed")
            logger.error(
                "discovery.scan_stamp_failed",
                extra={"thesis_id": str(thesis.id), "code": exc.code},
            )

    async def _enrich_one(
        self, client: AgentClient, target: EnrichmentTarget, *, user_id: str | None
    ) -> EnrichmentResult:
        company_id = str(target.id)
        try:
            record = self._repositories.companies.get(target.id)
            if record is None:
                return EnrichmentResult(company_id=company_id, updated=False, error="Company not found")

            existing = record.model_dump()
            missing = missing_enrichable_fields(existing)
            if not missing:
                return EnrichmentResult(company_id=company_id, updated=False)

            prompt = ENRICHMENT_PROMPT.render(
                company_info=build_company_summary(existing),
                missing_fields=", ".join(missing),
                field_reference=describe_fields(missing),
            )
            outcome = await self._invoke_for_json(client, prompt, operation="enrichment")
            if not isinstance(outcome, ParsedPayload):
                return EnrichmentResult(company_id=company_id, updated=False, error=outcome.reason)

            update = build_enrichment_update(existing, outcome.payload)
            if not update:
                return EnrichmentResult(company_id=company_id, updated=False)

            self._repositories.companies.update(target.id, update)
            self._repositories.logs.append(
                target.id, ACTION_ENRICHED, details={"fields": sorted(update)}, user_id=user_id
            )
            logger.info(
                "enrichment.updated",
                extra={"company_id": company_id, "fields": sorted(update)},
            )
            return EnrichmentResult(company_id=company_id, updated=True, fields_updated=list(update))
        except PipelineError as exc:
            logger.warning("enrichment.failed", extra={"company_id": company_id, "code": exc.code})
            return EnrichmentResult(company_id=company_id, updated=False, error=str(exc))

    async def _invoke_for_json(
        self,
        client: AgentClient,
        prompt: str,
        *,
        operation: str,
        signature_key: str | None = None,
    ) -> AgentOutcome:
        metrics.increment("agent.calls", tags={"operation": operation})
        try:
            raw_text = await client.complete([AgentMessage.user(prompt)])
        except AgentProviderError as exc:
            return UpstreamFailure(str(exc), code=exc.code)
        outcome = parse_json_payload(raw_text, signature_key=signature_key)
        if isinstance(outcome, ParseFailure):
            metrics.increment("agent.parse_failures", tags={"operation": operation})
        return outcome

    def _ensure_client(self) -> AgentClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def _load_thesis(self, request: DiscoveryRequest) -> InvestmentThesisRecord | None:
        if request.thesis_id is None:
            return None
        record = self._repositories.theses.get(request.thesis_id)
        if record is None:
            raise RecordNotFoundError(f"Investment thesis {request.thesis_id} not found")
        return record

    @staticmethod
    def _resolve_sources_count(
        request: DiscoveryRequest, thesis: InvestmentThesisRecord | None
    ) -> int:
        requested = request.sources_count or (thesis.sources_count if thesis else None)
        return min(requested or settings.default_sources_count, settings.max_sources_count)


def _screening_result(outcome: AgentOutcome) -> ScreeningResult:
    if not isinstance(outcome, ParsedPayload):
        return ScreeningResult.error(outcome.reason)
    raw_result = outcome.payload.get("result")
    try:
        result = ScreeningOutcome(str(raw_result).strip().lower())
    except ValueError:
        logger.warning("screening.invalid_result", extra={"result": repr(raw_result)})
        return ScreeningResult.error("AI response was not in expected format")
    remarks = outcome.payload.get("remarks")
    return ScreeningResult(result=result, remarks=str(remarks) if remarks is not None else "")


_ENGINE_INSTANCE: ScreeningEngine | None = None


def get_screening_engine() -> ScreeningEngine:
    """Return a singleton ScreeningEngine for API usage."""
    global _ENGINE_INSTANCE  # noqa: PLW0603
    if _ENGINE_INSTANCE is None:
        _ENGINE_INSTANCE = ScreeningEngine()
    return _ENGINE_INSTANCE
