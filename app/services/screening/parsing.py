"""Best-effort extraction of JSON objects from free-form agent text."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()
_FENCE = re.compile(r"```[A-Za-z0-9_-]*")


@dataclass(frozen=True)
class ParsedPayload:
    """Agent text contained a usable JSON object."""

    payload: dict[str, Any]
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class ParseFailure:
    """Agent answered but no JSON object could be recovered."""

    reason: str
    raw_text: str = ""
    ok: bool = field(default=False, init=False)


@dataclass(frozen=True)
class UpstreamFailure:
    """The agent call itself failed."""

    reason: str
    code: str = "502_AGENT_UPSTREAM"
    ok: bool = field(default=False, init=False)


AgentOutcome = Union[ParsedPayload, ParseFailure, UpstreamFailure]


def parse_json_payload(raw_text: str, *, signature_key: str | None = None) -> ParsedPayload | ParseFailure:
    """Recover a JSON object from ``raw_text``.

    Attempts, in order: the whole (fence-stripped) text, the greedy span from
    the first ``{`` to the last ``}``, and, when ``signature_key`` is given,
    an object decoded from any ``{`` that precedes the key and contains it.
    """
    text = _strip_code_fences(raw_text or "")
    if "{" not in text:
        return ParseFailure("AI response was not in expected format", raw_text=raw_text or "")

    candidate = _loads_object(text)
    if _accepts(candidate, signature_key):
        return ParsedPayload(candidate)

    start = text.find("{")
    end = text.rfind("}")
    if end > start:
        candidate = _loads_object(text[start : end + 1])
        if _accepts(candidate, signature_key):
            return ParsedPayload(candidate)

    if signature_key:
        candidate = _keyed_extract(text, signature_key)
        if candidate is not None:
            return ParsedPayload(candidate)

    logger.warning(
        "agent.parse_error",
        extra={"signature_key": signature_key, "preview": text[:200]},
    )
    return ParseFailure("Failed to parse AI response", raw_text=raw_text)


def coerce_score(value: Any) -> float | None:
    """Return ``value`` as a 0-100 score, or None when it is not a valid score."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number) or number < 0 or number > 100:
        return None
    return number


def coerce_finite_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _strip_code_fences(raw_text: str) -> str:
    # Only the fence tokens go; JSON may share a line with them.
    return _FENCE.sub("", raw_text).strip()


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _accepts(candidate: dict[str, Any] | None, signature_key: str | None) -> bool:
    if candidate is None:
        return False
    return signature_key is None or signature_key in candidate


def _keyed_extract(text: str, signature_key: str) -> dict[str, Any] | None:
    key_index = text.find(f'"{signature_key}"')
    if key_index == -1:
        return None
    brace = text.find("{")
    while brace != -1 and brace < key_index:
        try:
            parsed, _ = _DECODER.raw_decode(text, brace)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and signature_key in parsed:
            return parsed
        brace = text.find("{", brace + 1)
    return None
