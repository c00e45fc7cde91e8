"""Shared error classes for the screening engine, pipeline manager and adapters."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base exception carrying a status-prefixed error code."""

    def __init__(self, message: str, code: str = "500_PIPELINE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class AgentNotConfiguredError(PipelineError):
    """Raised when no LLM agent credentials are available."""

    def __init__(
        self, message: str = "Agent not available. Please ensure OPENAI_API_KEY is set."
    ) -> None:
        super().__init__(message, code="503_AGENT_NOT_CONFIGURED")


class AgentProviderError(PipelineError):
    """Raised when the upstream agent call fails."""


class StorageNotConfiguredError(PipelineError):
    """Raised when object storage credentials are missing."""

    def __init__(
        self,
        message: str = "Object storage not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY.",
    ) -> None:
        super().__init__(message, code="503_STORAGE_NOT_CONFIGURED")


class StorageError(PipelineError):
    """Raised when the object store rejects a request."""


class PersistenceError(PipelineError):
    """Raised when a repository fails to read or write a record."""


class RecordNotFoundError(PipelineError):
    """Raised when a referenced record does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="404_NOT_FOUND")


class StageTransitionError(PipelineError):
    """Raised when a promotion would regress or overrun the pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="409_INVALID_STAGE")


class DocumentExtractionError(PipelineError):
    """Raised when text cannot be extracted from an uploaded document."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="422_EXTRACTION_FAILED")


def status_for_code(code: str) -> int:
    """Translate a status-prefixed error code into an HTTP status."""
    prefix = code.split("_", 1)[0]
    if prefix.isdigit() and 400 <= int(prefix) <= 599:
        return int(prefix)
    return 500
