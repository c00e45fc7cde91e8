from __future__ import annotations

from contextlib import contextmanager

import pytest

from app.api.routes.chat import get_chat_service
from app.main import app
from app.services.chat import ChatService, ConversationStore
from tests.helpers.agent_stub import StubAgentClient


@contextmanager
def _override_chat(service: ChatService):
    app.dependency_overrides[get_chat_service] = lambda: service
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_chat_service, None)


@pytest.fixture
def conversations() -> ConversationStore:
    return ConversationStore()


def test_chat_reply_and_reset(client, conversations):
    agent = StubAgentClient(["Acme is at L2."])
    with _override_chat(ChatService(conversations, client=agent)):
        reply = client.post("/api/chat", json={"message": "Where is Acme?", "sessionId": "s-1"})
        status = client.get("/api/chat")
        reset = client.delete("/api/chat?sessionId=s-1")
        reset_again = client.delete("/api/chat?sessionId=s-1")

    assert reply.status_code == 200
    assert reply.json() == {"response": "Acme is at L2.", "sessionId": "s-1"}
    assert status.json()["status"] == "ok"
    assert reset.json() == {"success": True, "cleared": True}
    assert reset_again.json() == {"success": True, "cleared": False}


def test_chat_defaults_session(client, conversations):
    agent = StubAgentClient(["Hi"])
    with _override_chat(ChatService(conversations, client=agent)):
        reply = client.post("/api/chat", json={"message": "Hello"})

    assert reply.json()["sessionId"] == "default"
    assert len(conversations.history("default")) == 2


def test_chat_stream_returns_plain_text(client, conversations):
    agent = StubAgentClient(fragments=["Three ", "targets ", "match."])
    with _override_chat(ChatService(conversations, client=agent)):
        response = client.post("/api/chat/stream", json={"message": "Summarise", "sessionId": "s"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Three targets match."
    assert conversations.history("s")[-1].content == "Three targets match."


def test_chat_requires_message(client, conversations):
    with _override_chat(ChatService(conversations, client=StubAgentClient())):
        response = client.post("/api/chat", json={"message": ""})

    assert response.status_code == 400


def test_chat_without_agent_is_unavailable(client, services):
    reply = client.post("/api/chat", json={"message": "Hello"})
    stream = client.post("/api/chat/stream", json={"message": "Hello"})
    status = client.get("/api/chat")

    assert reply.status_code == 503
    assert stream.status_code == 503
    assert stream.json()["code"] == "503_AGENT_NOT_CONFIGURED"
    assert status.json() == {"status": "not_configured"}
