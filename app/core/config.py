"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Cross-field rules are validated at load time.
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment and .env."""

    # App
    app_name: str = "flowline"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str | None = None

    # Database: "postgres" (asyncpg) or "sqlite" (aiosqlite, local/dev)
    database_backend: str = "sqlite"
    database_url: str = "sqlite+aiosqlite:///./flowline.db"
    database_echo: bool = False
    database_auto_create: bool = False
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:8080"

    # Tenant
    tenant_header_name: str = "X-Tenant-ID"

    # Request / middleware
    request_id_header: str = "X-Request-ID"
    correlation_id_header: str = "X-Correlation-ID"
    webhook_signature_header: str = "X-Webhook-Signature-256"

    # Rate limiting (slowapi); applied to write endpoints
    rate_limit_enabled: bool = True
    rate_limit_writes: str = "120/minute"

    # Engine defaults
    engine_max_retries_cap: int = 10
    engine_handler_timeout_seconds: float | None = None
    metrics_strategy: str = "optimistic"
    metrics_max_attempts: int = 5

    # Run scheduler (background loop started by lifespan)
    scheduler_enabled: bool = True
    scheduler_interval_seconds: float = 5.0
    scheduler_batch_size: int = 50
    orphaned_run_timeout_seconds: int = 900
    execution_retention_days: int = 30

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_backend_and_engine(self) -> "Settings":
        """Validate database backend, URL driver and engine knobs."""
        if self.database_backend == "postgres":
            if not self.database_url.startswith("postgresql"):
                raise ValueError(
                    "DATABASE_URL must be a postgresql+asyncpg URL when database_backend is 'postgres'."
                )
        elif self.database_backend == "sqlite":
            if not self.database_url.startswith("sqlite"):
                raise ValueError(
                    "DATABASE_URL must be a sqlite+aiosqlite URL when database_backend is 'sqlite'."
                )
        else:
            raise ValueError(
                f"database_backend must be 'postgres' or 'sqlite', got: {self.database_backend!r}"
            )
        if self.metrics_strategy not in ("optimistic", "atomic"):
            raise ValueError(
                f"metrics_strategy must be 'optimistic' or 'atomic', got: {self.metrics_strategy!r}"
            )
        if self.metrics_max_attempts < 1:
            raise ValueError("metrics_max_attempts must be at least 1")
        if self.scheduler_interval_seconds <= 0:
            raise ValueError("scheduler_interval_seconds must be positive")
        if self.telemetry_exporter not in ("console", "otlp", "none"):
            raise ValueError(
                f"telemetry_exporter must be 'console', 'otlp' or 'none', got: {self.telemetry_exporter!r}"
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.
    """
    return Settings()
