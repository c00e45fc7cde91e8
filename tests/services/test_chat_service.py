from __future__ import annotations

import pytest

from app.clients.agent import AgentMessage
from app.services.chat import ChatService, ConversationStore, chat_system_prompt
from app.services.screening.errors import AgentNotConfiguredError
from tests.helpers.agent_stub import StubAgentClient


def test_store_trims_to_most_recent_messages():
    store = ConversationStore(max_messages=3)
    store.append("s", *(AgentMessage.user(str(index)) for index in range(5)))

    assert [message.content for message in store.history("s")] == ["2", "3", "4"]
    assert store.history("other") == []
    assert store.clear("s") is True
    assert store.clear("s") is False


def test_system_prompt_names_stage_range():
    prompt = chat_system_prompt()

    assert "L0 (sourcing)" in prompt
    assert "L5 (closing)" in prompt


@pytest.mark.asyncio
async def test_reply_carries_session_history():
    agent = StubAgentClient(["First answer", "Second answer"])
    service = ChatService(ConversationStore(), client=agent)

    await service.reply("deal-room", "Which targets are in L2?")
    answer = await service.reply("deal-room", "And their EBITDA?")

    assert answer == "Second answer"
    assert [message.content for message in agent.calls[1]] == [
        "Which targets are in L2?",
        "First answer",
        "And their EBITDA?",
    ]
    await service.reply("fresh", "Hello")
    assert len(agent.calls[2]) == 1


@pytest.mark.asyncio
async def test_stream_reply_records_joined_answer():
    agent = StubAgentClient(fragments=["Acme ", "looks ", "promising."])
    store = ConversationStore()
    service = ChatService(store, client=agent)

    fragments = [fragment async for fragment in service.stream_reply("s", "Thoughts on Acme?")]

    assert fragments == ["Acme ", "looks ", "promising."]
    assert store.history("s")[-1] == AgentMessage.assistant("Acme looks promising.")
    assert agent.stream_closed is True


@pytest.mark.asyncio
async def test_abandoned_stream_closes_upstream():
    agent = StubAgentClient(fragments=["one", "two", "three"])
    store = ConversationStore()
    service = ChatService(store, client=agent)

    stream = service.stream_reply("s", "Count")
    assert await stream.__anext__() == "one"
    await stream.aclose()

    assert agent.stream_closed is True
    assert store.history("s") == []


@pytest.mark.asyncio
async def test_reply_without_agent_raises():
    service = ChatService(ConversationStore())

    assert service.status() == {"status": "not_configured"}
    with pytest.raises(AgentNotConfiguredError):
        await service.reply("s", "Hello")
