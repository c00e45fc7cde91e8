from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from app.models.audit import ACTION_ENRICHED
from app.models.company import CompanyRecord
from app.models.discovery import DiscoveryCandidateRecord
from app.models.screening import (
    DiscoveryRequest,
    EnrichmentTarget,
    ScreenedCompany,
    ScreeningOutcome,
    ScreeningRequest,
)
from app.models.thesis import InvestmentThesisRecord
from app.services.pipeline.repositories import InMemoryRecordStore
from app.services.screening import engine as engine_module
from app.services.screening.engine import ScreeningEngine
from app.services.screening.errors import (
    AgentNotConfiguredError,
    AgentProviderError,
    PersistenceError,
    RecordNotFoundError,
)
from tests.helpers.agent_stub import StubAgentClient, upstream_error
from tests.helpers.metrics_stub import StubMetrics

FIXED_NOW = datetime(2024, 1, 1, 8, 30, tzinfo=UTC)


class FlakyCandidateStore(InMemoryRecordStore):
    """Fails the n-th insert to simulate a partial batch write."""

    def __init__(self, model, *, fail_on: int) -> None:
        super().__init__(model)
        self._fail_on = fail_on
        self._attempts = 0

    def add(self, record):
        self._attempts += 1
        if self._attempts == self._fail_on:
            raise PersistenceError("Failed to insert market_screening_results record.")
        return super().add(record)


def _engine(repositories, *responses) -> tuple[ScreeningEngine, StubAgentClient]:
    agent = StubAgentClient(responses or ("{}",))
    return ScreeningEngine(repositories=repositories, client=agent, clock=lambda: FIXED_NOW), agent


def _discovery_payload(*names: str, score: object = 80) -> str:
    return json.dumps(
        {"companies": [{"company_name": name, "match_score": score} for name in names]}
    )


def _screening_request(**company) -> ScreeningRequest:
    return ScreeningRequest(
        company_id="c-1",
        criteria_id="k-1",
        criteria_prompt="EBITDA margin above 15%",
        company=ScreenedCompany(name="Acme", **company),
    )


@pytest.mark.asyncio
async def test_discovery_persists_only_new_candidates(repositories):
    repositories.companies.add(CompanyRecord(name="Acme Inc"))
    engine, agent = _engine(repositories, _discovery_payload("Foo", "Acme"))

    response = await engine.discover_companies(DiscoveryRequest(thesis="Industrial software"))

    assert response.count == 1
    assert response.companies == ["Foo"]
    assert response.failed == 0
    stored = repositories.candidates.list()
    assert [record.company_name for record in stored] == ["Foo"]
    assert stored[0].is_added_to_pipeline is False
    assert stored[0].discovered_at == FIXED_NOW
    assert "Acme Inc" in agent.prompts[0]


@pytest.mark.asyncio
async def test_discovery_excludes_previous_candidates(repositories):
    engine, agent = _engine(repositories, _discovery_payload("Foo"), _discovery_payload("Foo"))

    first = await engine.discover_companies(DiscoveryRequest(thesis="Logistics"))
    second = await engine.discover_companies(DiscoveryRequest(thesis="Logistics"))

    assert first.count == 1
    assert second.count == 0
    assert second.message == "No new companies found"
    assert "Foo" in agent.prompts[1]


@pytest.mark.asyncio
async def test_discovery_reports_partial_batch_failure(repositories):
    repositories.candidates = FlakyCandidateStore(DiscoveryCandidateRecord, fail_on=2)
    engine, _ = _engine(repositories, _discovery_payload("Alpha", "Bravo", "Charlie"))

    response = await engine.discover_companies(DiscoveryRequest(thesis="Healthcare IT"))

    assert response.count == 2
    assert response.failed == 1
    assert response.companies == ["Alpha", "Charlie"]


@pytest.mark.asyncio
async def test_discovery_emits_batch_metrics(repositories, monkeypatch):
    stub = StubMetrics()
    monkeypatch.setattr(engine_module, "metrics", stub)
    repositories.candidates = FlakyCandidateStore(DiscoveryCandidateRecord, fail_on=1)
    engine, _ = _engine(repositories, _discovery_payload("Alpha", "Bravo"))

    await engine.discover_companies(DiscoveryRequest(thesis="Healthcare IT"))

    assert stub.counted("discovery.candidates.succeeded") == 1
    assert stub.counted("discovery.candidates.failed") == 1
    assert stub.counted("agent.calls") == 1
    assert any(call["metric"] == "discovery.latency_ms" for call in stub.timing_calls)
    batch_call = next(
        call for call in stub.increment_calls if call["metric"] == "discovery.candidates.succeeded"
    )
    assert batch_call["tags"] == {"source": "adhoc"}


@pytest.mark.asyncio
async def test_discovery_rejects_invalid_scores_per_field(repositories):
    engine, _ = _engine(repositories, _discovery_payload("Foo", score=250))

    response = await engine.discover_companies(DiscoveryRequest(thesis="Fintech"))

    assert response.count == 1
    assert repositories.candidates.list()[0].match_score is None


@pytest.mark.asyncio
async def test_discovery_parse_failure_returns_raw_text(repositories):
    engine, _ = _engine(repositories, "I could not find anything relevant.")

    response = await engine.discover_companies(DiscoveryRequest(thesis="Fintech"))

    assert response.count == 0
    assert response.message == "AI response was not in expected format"
    assert response.raw_response == "I could not find anything relevant."
    assert repositories.candidates.list() == []


@pytest.mark.asyncio
async def test_discovery_upstream_failure_propagates(repositories):
    engine, _ = _engine(repositories, upstream_error())

    with pytest.raises(AgentProviderError) as excinfo:
        await engine.discover_companies(DiscoveryRequest(thesis="Fintech"))

    assert excinfo.value.code == "502_AGENT_UPSTREAM"
    assert repositories.candidates.list() == []


@pytest.mark.asyncio
async def test_discovery_from_thesis_updates_scan_schedule(repositories):
    thesis = repositories.theses.add(
        InvestmentThesisRecord(
            title="DACH SaaS", content="Vertical SaaS in DACH", sources_count=3
        )
    )
    engine, agent = _engine(repositories, _discovery_payload("Foo"))

    response = await engine.discover_companies(DiscoveryRequest(thesis_id=thesis.id))

    assert response.count == 1
    assert "Vertical SaaS in DACH" in agent.prompts[0]
    assert "Find 3 companies." in agent.prompts[0]
    updated = repositories.theses.get(thesis.id)
    assert updated.last_scan_at == FIXED_NOW
    assert updated.next_scan_at == FIXED_NOW + timedelta(days=7)
    assert repositories.candidates.list()[0].thesis_id == thesis.id


@pytest.mark.asyncio
async def test_discovery_keeps_inserts_when_scan_stamp_fails(repositories, monkeypatch):
    thesis = repositories.theses.add(InvestmentThesisRecord(title="Nordics", content="Nordic SaaS"))
    engine, _ = _engine(repositories, _discovery_payload("Foo", "Bar"))

    def failing_update(record_id, values):
        raise PersistenceError("Failed to update investment_theses record.")

    monkeypatch.setattr(repositories.theses, "update", failing_update)

    response = await engine.discover_companies(DiscoveryRequest(thesis_id=thesis.id))

    assert response.count == 2
    assert response.companies == ["Foo", "Bar"]
    assert len(repositories.candidates.list()) == 2
    assert repositories.theses.get(thesis.id).last_scan_at is None


@pytest.mark.asyncio
async def test_discovery_caps_requested_count(repositories):
    engine, agent = _engine(repositories, _discovery_payload("Foo"))

    await engine.discover_companies(DiscoveryRequest(thesis="Fintech", sources_count=500))

    assert "Find 25 companies." in agent.prompts[0]


@pytest.mark.asyncio
async def test_discovery_with_unknown_thesis_raises(repositories):
    engine, agent = _engine(repositories)

    with pytest.raises(RecordNotFoundError):
        await engine.discover_companies(DiscoveryRequest(thesis_id=uuid4()))

    assert agent.calls == []


@pytest.mark.asyncio
async def test_screening_returns_agent_verdict(repositories):
    engine, agent = _engine(repositories, '{"result": "PASS", "remarks": "Margin is 22%"}')

    response = await engine.screen_company(_screening_request(ebitda_2024_usd_mn=22.0))

    assert response.result is ScreeningOutcome.PASS
    assert response.remarks == "Margin is 22%"
    assert response.company_id == "c-1"
    assert "EBITDA margin above 15%" in agent.prompts[0]
    assert "EBITDA 2024: $22.00M" in agent.prompts[0]


@pytest.mark.asyncio
async def test_screening_unparseable_answer_is_error_result(repositories):
    engine, _ = _engine(repositories, "The company looks fine to me.")

    response = await engine.screen_company(_screening_request())

    assert response.result is ScreeningOutcome.ERROR
    assert response.remarks


@pytest.mark.asyncio
async def test_screening_unknown_verdict_is_error_result(repositories):
    engine, _ = _engine(repositories, '{"result": "maybe", "remarks": "unsure"}')

    response = await engine.screen_company(_screening_request())

    assert response.result is ScreeningOutcome.ERROR
    assert response.remarks == "AI response was not in expected format"


@pytest.mark.asyncio
async def test_screening_upstream_failure_is_error_result(repositories):
    engine, _ = _engine(repositories, upstream_error("504_AGENT_TIMEOUT"))

    response = await engine.screen_company(_screening_request())

    assert response.result is ScreeningOutcome.ERROR
    assert "Agent request failed" in response.remarks


@pytest.mark.asyncio
async def test_screening_without_agent_raises(repositories):
    engine = ScreeningEngine(repositories=repositories)

    assert engine.agent_status()["status"] == "not_configured"
    with pytest.raises(AgentNotConfiguredError):
        await engine.screen_company(_screening_request())


@pytest.mark.asyncio
async def test_enrichment_fills_only_missing_fields(repositories):
    record = repositories.companies.add(CompanyRecord(name="Acme", revenue_2024_usd_mn=100.0))
    engine, agent = _engine(
        repositories, '{"revenue_2024_usd_mn": 120.0, "ebitda_2024_usd_mn": 18.5, "segment": null}'
    )

    response = await engine.enrich_companies(
        [EnrichmentTarget(id=record.id, name="Acme")], user_id="analyst-1"
    )

    assert response.success is True
    result = response.results[0]
    assert result.updated is True
    assert result.fields_updated == ["ebitda_2024_usd_mn"]
    stored = repositories.companies.get(record.id)
    assert stored.revenue_2024_usd_mn == 100.0
    assert stored.ebitda_2024_usd_mn == 18.5
    logs = repositories.logs.list_for_company(record.id)
    assert [log.action for log in logs] == [ACTION_ENRICHED]
    assert logs[0].details == {"fields": ["ebitda_2024_usd_mn"]}
    assert logs[0].user_id == "analyst-1"
    prompt = agent.prompts[0]
    missing_section = prompt.split("## Missing Fields to Find")[1].split("## Field Reference")[0]
    assert "ebitda_2024_usd_mn" in missing_section
    assert "revenue_2024_usd_mn" not in missing_section


@pytest.mark.asyncio
async def test_enrichment_reports_each_company_separately(repositories):
    good = repositories.companies.add(CompanyRecord(name="Good Co"))
    broken = repositories.companies.add(CompanyRecord(name="Broken Co"))
    engine, _ = _engine(repositories, '{"geography": "France"}', upstream_error())

    response = await engine.enrich_companies(
        [
            EnrichmentTarget(id=good.id, name="Good Co"),
            EnrichmentTarget(id=broken.id, name="Broken Co"),
            EnrichmentTarget(id=uuid4(), name="Ghost Co"),
        ]
    )

    assert [result.updated for result in response.results] == [True, False, False]
    assert response.results[1].error.startswith("Agent request failed")
    assert response.results[2].error == "Company not found"
    assert response.message == "Processed 3 companies; updated 1."
    assert repositories.companies.get(good.id).geography == "France"


@pytest.mark.asyncio
async def test_enrichment_skips_complete_companies(repositories):
    complete = {
        "segment": "Software",
        "geography": "US",
        "company_focus": "ERP",
        "ownership": "Private",
        "revenue_2022_usd_mn": 1.0,
        "revenue_2023_usd_mn": 2.0,
        "revenue_2024_usd_mn": 3.0,
        "ebitda_2022_usd_mn": 0.1,
        "ebitda_2023_usd_mn": 0.2,
        "ebitda_2024_usd_mn": 0.3,
        "ev_2024": 10.0,
    }
    record = repositories.companies.add(CompanyRecord(name="Done Co", **complete))
    engine, agent = _engine(repositories)

    response = await engine.enrich_companies([EnrichmentTarget(id=record.id, name="Done Co")])

    assert response.results[0].updated is False
    assert response.results[0].error is None
    assert agent.calls == []
