"""Object storage for meeting-note files (Supabase Storage REST API)."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol
from urllib.parse import quote
from uuid import uuid4

import httpx

from app.config import settings
from app.observability.metrics import metrics
from app.services.screening.errors import StorageError, StorageNotConfiguredError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def generate_meeting_note_key(file_name: str) -> str:
    """Unique object key: ``meeting-notes/<uuid>_<epoch-ms>_<sanitized name>``."""
    sanitized = _UNSAFE_KEY_CHARS.sub("_", file_name)
    return f"meeting-notes/{uuid4()}_{int(time.time() * 1000)}_{sanitized}"


class ObjectStore(Protocol):
    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        ...

    async def download(self, key: str) -> bytes:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def signed_url(
        self, key: str, *, expires_in: int | None = None, download_name: str | None = None
    ) -> str:
        ...

    async def signed_upload_url(self, key: str, *, expires_in: int | None = None) -> str:
        ...


@dataclass(frozen=True)
class SupabaseTarget:
    base_url: str
    service_key: str
    bucket: str

    @property
    def storage_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/storage/v1"

    def object_path(self, key: str) -> str:
        return f"{self.bucket}/{quote(key.lstrip('/'))}"

    def headers(self, **extra: str) -> dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            **extra,
        }


class SupabaseObjectStore:
    """Bounded-timeout client; requests are never retried."""

    def __init__(
        self,
        target: SupabaseTarget,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._target = target
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        await self._request(
            "POST",
            f"/object/{self._target.object_path(key)}",
            operation="upload",
            content=data,
            headers={"Content-Type": content_type or "application/octet-stream", "x-upsert": "true"},
        )
        logger.info("storage.uploaded", extra={"key": key, "bytes": len(data)})
        return key

    async def download(self, key: str) -> bytes:
        response = await self._request(
            "GET", f"/object/{self._target.object_path(key)}", operation="download"
        )
        return response.content

    async def delete(self, key: str) -> None:
        await self._request("DELETE", f"/object/{self._target.object_path(key)}", operation="delete")
        logger.info("storage.deleted", extra={"key": key})

    async def signed_url(
        self, key: str, *, expires_in: int | None = None, download_name: str | None = None
    ) -> str:
        response = await self._request(
            "POST",
            f"/object/sign/{self._target.object_path(key)}",
            operation="sign",
            json={"expiresIn": expires_in or settings.signed_url_ttl_seconds},
        )
        signed_path = _json_field(response, "signedURL")
        url = f"{self._target.storage_url}{signed_path}"
        if download_name:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}download={quote(download_name)}"
        return url

    async def signed_upload_url(self, key: str, *, expires_in: int | None = None) -> str:
        response = await self._request(
            "POST",
            f"/object/upload/sign/{self._target.object_path(key)}",
            operation="sign_upload",
            headers={"x-expires-in": str(expires_in or settings.upload_url_ttl_seconds)},
        )
        return f"{self._target.storage_url}{_json_field(response, 'url')}"

    async def _request(
        self, method: str, path: str, *, operation: str, headers: dict[str, str] | None = None, **kwargs: Any
    ) -> httpx.Response:
        url = f"{self._target.storage_url}{path}"
        try:
            with metrics.timer("storage.latency_ms", tags={"operation": operation}):
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.request(
                        method, url, headers=self._target.headers(**(headers or {})), **kwargs
                    )
        except httpx.HTTPError as exc:
            metrics.increment("storage.errors", tags={"operation": operation, "code": "network"})
            logger.error("storage.request_failed", extra={"operation": operation, "error": type(exc).__name__})
            raise StorageError(f"Object storage {operation} failed: {exc}", code="502_STORAGE_UPSTREAM") from exc
        if response.status_code in (401, 403):
            raise StorageError("Object storage authentication failed.", code="502_STORAGE_AUTH")
        if response.status_code == 404:
            raise StorageError("Object not found in storage.", code="404_OBJECT_NOT_FOUND")
        if response.is_error:
            metrics.increment(
                "storage.errors", tags={"operation": operation, "code": str(response.status_code)}
            )
            logger.error(
                "storage.request_rejected",
                extra={"operation": operation, "status": response.status_code},
            )
            raise StorageError(
                f"Object storage {operation} failed with status {response.status_code}.",
                code="502_STORAGE_UPSTREAM",
            )
        return response


def _json_field(response: httpx.Response, name: str) -> str:
    try:
        value = response.json().get(name)
    except ValueError as exc:
        raise StorageError("Object storage returned invalid JSON.", code="502_STORAGE_UPSTREAM") from exc
    if not isinstance(value, str) or not value:
        raise StorageError(f"Object storage response missing '{name}'.", code="502_STORAGE_UPSTREAM")
    return value if value.startswith("/") else f"/{value}"


class InMemoryObjectStore:
    """Process-local store for development and tests; URLs are not fetchable."""

    def __init__(self, base_url: str = "memory://storage") -> None:
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._base_url = base_url
        self._lock = Lock()

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self._objects[key] = (data, content_type)
        return key

    async def download(self, key: str) -> bytes:
        with self._lock:
            stored = self._objects.get(key)
        if stored is None:
            raise StorageError("Object not found in storage.", code="404_OBJECT_NOT_FOUND")
        return stored[0]

    async def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    async def signed_url(
        self, key: str, *, expires_in: int | None = None, download_name: str | None = None
    ) -> str:
        ttl = expires_in or settings.signed_url_ttl_seconds
        url = f"{self._base_url}/{key}?expires_in={ttl}"
        if download_name:
            url = f"{url}&download={quote(download_name)}"
        return url

    async def signed_upload_url(self, key: str, *, expires_in: int | None = None) -> str:
        ttl = expires_in or settings.upload_url_ttl_seconds
        return f"{self._base_url}/upload/{key}?expires_in={ttl}"

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._objects


def build_object_store() -> SupabaseObjectStore:
    """Create the storage client from settings; raises StorageNotConfiguredError without credentials."""
    if not settings.storage_configured:
        logger.error("storage.not_configured")
        raise StorageNotConfiguredError()
    target = SupabaseTarget(
        base_url=settings.supabase_url or "",
        service_key=settings.supabase_service_key or "",
        bucket=settings.supabase_bucket,
    )
    return SupabaseObjectStore(target, timeout=settings.storage_timeout_seconds)
