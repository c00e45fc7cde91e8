"""Conversational agent with per-session history."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from threading import Lock

from app.clients.agent import AgentClient, AgentMessage, build_agent_client
from app.config import settings
from app.models.company import PipelineStage
from app.services.screening.prompts import CHAT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class ConversationStore:
    """In-process history keyed by session id, trimmed to ``max_messages``."""

    def __init__(self, max_messages: int | None = None) -> None:
        self._max_messages = max_messages or settings.chat_max_history
        self._sessions: dict[str, list[AgentMessage]] = defaultdict(list)
        self._lock = Lock()

    def history(self, session_id: str) -> list[AgentMessage]:
        with self._lock:
            return list(self._sessions.get(session_id, [])[-self._max_messages :])

    def append(self, session_id: str, *messages: AgentMessage) -> None:
        with self._lock:
            conversation = self._sessions[session_id]
            conversation.extend(messages)
            del conversation[: -self._max_messages]

    def clear(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None


def chat_system_prompt() -> str:
    stages = list(PipelineStage)
    return CHAT_SYSTEM_PROMPT.render(first_stage=stages[0].value, last_stage=stages[-1].value)


class ChatService:
    def __init__(
        self,
        store: ConversationStore,
        *,
        client: AgentClient | None = None,
        client_factory: Callable[[], AgentClient] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._client_factory = client_factory or (
            lambda: build_agent_client(system_prompt=chat_system_prompt())
        )

    def status(self) -> dict[str, str]:
        if self._client is not None or settings.agent_configured:
            return {"status": "ok", "model": settings.agent_model}
        return {"status": "not_configured"}

    async def reply(self, session_id: str, message: str) -> str:
        client = self.ensure_client()
        prompt = AgentMessage.user(message)
        answer = await client.complete([*self._store.history(session_id), prompt])
        self._store.append(session_id, prompt, AgentMessage.assistant(answer))
        logger.info("chat.replied", extra={"session_id": session_id, "chars": len(answer)})
        return answer

    async def stream_reply(self, session_id: str, message: str) -> AsyncIterator[str]:
        """Yield fragments; history is only recorded once the stream finishes."""
        client = self.ensure_client()
        prompt = AgentMessage.user(message)
        fragments: list[str] = []
        stream = client.stream([*self._store.history(session_id), prompt])
        try:
            async for fragment in stream:
                fragments.append(fragment)
                yield fragment
        finally:
            await stream.aclose()
        self._store.append(session_id, prompt, AgentMessage.assistant("".join(fragments)))
        logger.info("chat.streamed", extra={"session_id": session_id, "fragments": len(fragments)})

    def reset(self, session_id: str) -> bool:
        return self._store.clear(session_id)

    def ensure_client(self) -> AgentClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client


_STORE_INSTANCE: ConversationStore | None = None


def get_conversation_store() -> ConversationStore:
    global _STORE_INSTANCE  # noqa: PLW0603
    if _STORE_INSTANCE is None:
        _STORE_INSTANCE = ConversationStore()
    return _STORE_INSTANCE
