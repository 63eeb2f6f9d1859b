"""Engine settings for stepflow.

``StepflowSettings`` holds the defaults the composition root uses to build
a registry, a step builder and a parallel engine.  Components never read
settings on their own; they receive explicit policy objects.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not runtime
    - **Environment-driven:** Reads ``STEPFLOW_*`` env vars and ``.env``
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> import os
    >>> os.environ["STEPFLOW_PARALLEL_TIMEOUT_SECONDS"] = "5"
    >>> reset_settings()
    >>> get_settings().parallel_timeout_seconds
    5.0

Tags:
    settings, configuration, pydantic, environment, stepflow
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StepflowSettings(BaseSettings):
    """Engine-wide defaults.

    Fields
    ──────
    log_level                    : structlog log level
    json_logs                    : JSON output (None = auto-detect from TTY)
    service_name                 : ``service.name`` field in every log line
    parallel_max_concurrency     : simultaneous steps in one parallel batch
    parallel_timeout_seconds     : per-attempt timeout for parallel steps
    parallel_retry_attempts      : extra attempts after the first failure
    parallel_retry_delay_seconds : pause between attempts
    step_cache_size              : built step instances kept by StepBuilder
    default_step_version         : version assigned when a config omits it
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = "stepflow"

    # ── Parallel execution ───────────────────────────────────────
    parallel_max_concurrency: int = Field(default=10, ge=1)
    parallel_timeout_seconds: float = Field(default=30.0, gt=0)
    parallel_retry_attempts: int = Field(default=0, ge=0)
    parallel_retry_delay_seconds: float = Field(default=1.0, ge=0)

    # ── Steps ────────────────────────────────────────────────────
    step_cache_size: int = Field(default=256, ge=0)
    default_step_version: str = "1.0.0"


@lru_cache(maxsize=1)
def get_settings() -> StepflowSettings:
    """Return the process-wide settings instance (cached)."""
    return StepflowSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()


__all__ = ["StepflowSettings", "get_settings", "reset_settings"]
