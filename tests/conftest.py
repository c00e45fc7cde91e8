import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from app.clients.object_store import InMemoryObjectStore
from app.config import settings
from app.main import app
from app.services.chat import ConversationStore, get_conversation_store
from app.services.meeting_notes import MeetingNotesService, get_meeting_notes_service
from app.services.pipeline.manager import PipelineManager, get_pipeline_manager
from app.services.pipeline.repositories import build_memory_repositories
from app.services.screening.engine import ScreeningEngine, get_screening_engine
from tests.helpers.agent_stub import StubAgentClient


class _SyncASGIClient:
    """Minimal synchronous wrapper around httpx.AsyncClient for ASGI apps."""

    def __init__(self, app):
        transport = httpx.ASGITransport(app=app)
        self._client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    def request(self, method: str, url: str, **kwargs):
        return asyncio.run(self._client.request(method, url, **kwargs))

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def patch(self, url: str, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)

    def close(self) -> None:
        asyncio.run(self._client.aclose())


@pytest.fixture
def client():
    """Create test client compatible with older/newer httpx releases."""
    try:
        test_client = TestClient(app)
        yield test_client
    except TypeError:
        fallback_client = _SyncASGIClient(app)
        try:
            yield fallback_client
        finally:
            fallback_client.close()


@pytest.fixture(autouse=True)
def _no_external_credentials(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_service_key", None)
    monkeypatch.setattr(settings, "database_url", None)


@pytest.fixture
def repositories():
    return build_memory_repositories()


@pytest.fixture
def agent():
    return StubAgentClient()


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def services(repositories, agent, object_store):
    """Wire in-memory services into the app for the duration of a test."""
    engine = ScreeningEngine(repositories=repositories, client=agent)
    manager = PipelineManager(repositories)
    notes = MeetingNotesService(repositories=repositories, store=object_store, client=agent)
    conversations = ConversationStore()
    app.dependency_overrides[get_screening_engine] = lambda: engine
    app.dependency_overrides[get_pipeline_manager] = lambda: manager
    app.dependency_overrides[get_meeting_notes_service] = lambda: notes
    app.dependency_overrides[get_conversation_store] = lambda: conversations
    try:
        yield {
            "engine": engine,
            "manager": manager,
            "notes": notes,
            "conversations": conversations,
            "repositories": repositories,
            "agent": agent,
        }
    finally:
        app.dependency_overrides.clear()
