"""Per-request caller identity passed explicitly to handlers."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header


@dataclass(frozen=True)
class RequestContext:
    user_id: str | None = None


def get_request_context(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> RequestContext:
    user_id = (x_user_id or "").strip() or None
    return RequestContext(user_id=user_id)
