"""Adapter around the hosted LLM agent (OpenAI Chat Completions)."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.observability.metrics import metrics
from app.services.screening.errors import AgentNotConfiguredError, AgentProviderError

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class AgentMessage:
    """One conversation turn."""

    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "AgentMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "AgentMessage":
        return cls(role="assistant", content=content)


class AgentClient(Protocol):
    """Minimal contract for agent invocations."""

    async def complete(self, messages: Sequence[AgentMessage]) -> str:
        ...

    def stream(self, messages: Sequence[AgentMessage]) -> AsyncIterator[str]:
        ...


class OpenAIAgentClient:
    """Thin wrapper around the official async OpenAI SDK.

    The SDK's own retry loop is disabled; callers decide whether to retry.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str,
        temperature: float = 0.0,
        timeout: float = 120.0,
        system_prompt: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if not api_key and client is None:
            raise AgentNotConfiguredError()
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._temperature = temperature
        self._system_prompt = system_prompt

    async def complete(self, messages: Sequence[AgentMessage]) -> str:
        if not messages:
            raise ValueError("At least one message is required.")
        logger.debug("agent.invoke.started", extra={"messages": len(messages), "model": self._model})
        try:
            with metrics.timer("agent.latency_ms", tags={"mode": "complete"}):
                response = await self._client.chat.completions.create(
                    model=self._model,
                    temperature=self._temperature,
                    messages=self._payload(messages),
                )
        except openai.OpenAIError as exc:
            raise _wrap_provider_error(exc) from exc
        text = _extract_completion_text(response)
        logger.debug("agent.invoke.completed", extra={"chars": len(text)})
        return text

    async def stream(self, messages: Sequence[AgentMessage]) -> AsyncIterator[str]:
        """Yield text fragments; closing the iterator closes the upstream response."""
        if not messages:
            raise ValueError("At least one message is required.")
        try:
            upstream = await self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                messages=self._payload(messages),
                stream=True,
            )
        except openai.OpenAIError as exc:
            raise _wrap_provider_error(exc) from exc

        fragments = 0
        try:
            async for chunk in upstream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    fragments += 1
                    yield delta
        except openai.OpenAIError as exc:
            raise _wrap_provider_error(exc) from exc
        finally:
            await upstream.close()
            logger.debug("agent.stream.closed", extra={"fragments": fragments})

    def _payload(self, messages: Sequence[AgentMessage]) -> list[dict[str, str]]:
        payload = []
        if self._system_prompt:
            payload.append({"role": "system", "content": self._system_prompt})
        payload.extend({"role": message.role, "content": message.content} for message in messages)
        return payload


def _extract_completion_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise AgentProviderError("Agent response did not include any choices.", code="502_AGENT_UPSTREAM")
    content = getattr(choices[0].message, "content", None)
    if isinstance(content, list):
        return "".join(part.get("text", "") for part in content if isinstance(part, dict)).strip()
    return (content or "").strip()


def _wrap_provider_error(exc: openai.OpenAIError) -> AgentProviderError:
    if isinstance(exc, openai.APITimeoutError):
        code = "504_AGENT_TIMEOUT"
    elif isinstance(exc, openai.RateLimitError):
        code = "429_RATE_LIMIT"
    else:
        code = "502_AGENT_UPSTREAM"
    message = getattr(exc, "message", None) or str(exc)
    metrics.increment("agent.errors", tags={"code": code})
    logger.error("agent.upstream_error", extra={"code": code, "error": type(exc).__name__})
    return AgentProviderError(f"Agent request failed: {message}", code=code)


def build_agent_client(*, system_prompt: str | None = None) -> OpenAIAgentClient:
    """Create an agent client from settings; raises AgentNotConfiguredError without a key."""
    if not settings.openai_api_key:
        logger.error("agent.not_configured")
        raise AgentNotConfiguredError()
    return OpenAIAgentClient(
        settings.openai_api_key,
        model=settings.agent_model,
        temperature=settings.agent_temperature,
        timeout=settings.agent_timeout_seconds,
        system_prompt=system_prompt,
    )
