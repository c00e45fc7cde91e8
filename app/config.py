from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Deal Pipeline Tracker"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5
    db_auto_create_schema: bool = False

    # Agent
    openai_api_key: str | None = None
    agent_model: str = "gpt-4o-mini"
    agent_temperature: float = 0.0
    agent_timeout_seconds: float = 120.0
    chat_max_history: int = 20

    # Discovery
    default_sources_count: int = 5
    max_sources_count: int = 25

    # Object storage (meeting notes)
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_bucket: str = "mna-meeting-notes"
    storage_timeout_seconds: float = 30.0
    signed_url_ttl_seconds: int = 3600
    upload_url_ttl_seconds: int = 900

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "pipeline"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    @property
    def agent_configured(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
