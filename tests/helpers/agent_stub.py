from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from app.clients.agent import AgentMessage
from app.services.screening.errors import AgentProviderError


class StubAgentClient:
    """Deterministic agent double.

    ``responses`` are returned in order (the last one repeats); an exception
    instance in the list is raised instead of returned.
    """

    def __init__(
        self,
        responses: Sequence[str | Exception] = ("{}",),
        *,
        fragments: Sequence[str] = (),
    ) -> None:
        self.calls: list[list[AgentMessage]] = []
        self.stream_closed = False
        self._fragments = list(fragments)
        self.respond_with(*responses)

    def respond_with(self, *responses: str | Exception) -> None:
        self._responses = list(responses) or ["{}"]
        self._cursor = 0

    async def complete(self, messages: Sequence[AgentMessage]) -> str:
        self.calls.append(list(messages))
        response = self._responses[min(self._cursor, len(self._responses) - 1)]
        self._cursor += 1
        if isinstance(response, Exception):
            raise response
        return response

    async def stream(self, messages: Sequence[AgentMessage]) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        try:
            for fragment in self._fragments:
                yield fragment
        finally:
            self.stream_closed = True

    @property
    def prompts(self) -> list[str]:
        return [call[-1].content for call in self.calls]


def upstream_error(code: str = "502_AGENT_UPSTREAM") -> AgentProviderError:
    return AgentProviderError("Agent request failed: boom", code=code)
