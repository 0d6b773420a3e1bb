"""Centralized configuration using Pydantic BaseSettings"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration with environment variable support"""

    # GitHub source
    # Note: Additional repositories can be listed in sources.yaml
    github_token: str | None = Field(
        default=None, description="GitHub token (classic or fine-grained) for API access"
    )
    github_api_url: str = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )
    repository: str = Field(
        default="hashicorp/terraform-provider-azurerm",
        description="Repository to index, in owner/name form",
    )
    resource_prefix: str = Field(
        default="azurerm", description="Provider resource name prefix (e.g. azurerm)"
    )

    # HTTP client
    http_timeout_seconds: float = Field(
        default=30.0, ge=1.0, le=600.0, description="HTTP timeout for GitHub requests"
    )
    cache_ttl_seconds: int = Field(
        default=600, ge=0, description="Time-to-live of cached GitHub API responses"
    )
    rate_limit_window_seconds: int = Field(
        default=3600, ge=1, description="Window after which the request quota refills"
    )

    # Database
    db_path: str = Field(default="./data/provider_index.db", description="SQLite database path")

    # Sync
    sync_workers: int = Field(
        default=4, ge=1, le=32, description="Maximum concurrent repository sync workers"
    )
    sync_interval_hours: int = Field(
        default=24, ge=1, le=168, description="Interval between scheduled incremental syncs"
    )
    changelog_file: str = Field(
        default="CHANGELOG.md", description="Changelog file name at the repository root"
    )
    max_release_history: int = Field(
        default=40, ge=1, le=500, description="Maximum number of changelog releases retained"
    )
    tag_max_pages: int = Field(
        default=5, ge=1, le=50, description="Maximum pages of tags fetched (100 per page)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level for the CLI")

    # OpenTelemetry
    otel_logging_enabled: bool = Field(
        default=False, description="Emit sync job results as OpenTelemetry log records"
    )
    otel_tracing_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry tracing for HTTP requests"
    )
    otel_endpoint: str = Field(
        default="http://localhost:4318",
        description="OpenTelemetry collector endpoint (HTTP/protobuf)",
    )
    otel_service_name: str = Field(
        default="provider-index", description="Service name for OpenTelemetry"
    )
    otel_service_version: str = Field(
        default="0.1.0", description="Service version for OpenTelemetry"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


# Global config instance
config = AppConfig()
