"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class AuditEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with SCHEMA_AUDIT_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEMA_AUDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: AuditEnv = AuditEnv.DEV
    debug: bool = False

    # State store (check nodes, audit runs, results)
    database_url: str = "sqlite+aiosqlite:///.schema_audit/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Guardrails for operator-authored SQL
    statement_timeout_ms: int = Field(default=2500, gt=0)
    row_cap: int = Field(default=100, gt=0)
    sample_rows: int = Field(default=25, ge=0)

    # Built-in checks
    builtin_sample_rows: int = Field(default=50, ge=0)
    fk_violation_sample_limit: int = Field(default=25, ge=0)

    # Target database
    target_connect_timeout_seconds: float = 10.0
    target_application_name: str = "schema-audit"

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
