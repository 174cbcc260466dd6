"""Agent runtime configuration management."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent runtime configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTRUNTIME_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # General
    log_level: str = "INFO"
    debug: bool = False
    timeline_topic: str = Field(
        default="agent://timeline",
        description="Topic every timeline event is published under",
    )
    working_dir: Optional[Path] = Field(
        default=None,
        description="Root used for pre-execution snapshots (cwd if unset)",
    )

    # Attempt loop
    max_retries: int = Field(default=3, description="Retries after the first attempt")
    retry_backoff_seconds: float = Field(default=1.0, description="Fixed backoff between attempts")
    retry_validation_errors: bool = Field(
        default=True,
        description="Treat validation errors like any other invocation failure",
    )
    snapshot_enabled: bool = Field(default=True, description="Request a snapshot before execution")

    # Local execution
    max_tool_candidates: int = Field(default=3, description="Tools considered per attempt")
    diagnosis_excerpt_chars: int = Field(
        default=200, description="Error excerpt length echoed by generic corrections"
    )

    # External planner delegation
    planner_wait_for_completion: bool = Field(
        default=False,
        description="Poll the planner until the goal finishes instead of returning on submit",
    )
    planner_timeout_seconds: float = Field(default=300.0, description="Planner wall-clock ceiling")
    planner_poll_interval_seconds: float = Field(default=1.0, description="Planner status poll cadence")

    # Scheduler
    scheduler_poll_interval_seconds: float = Field(default=0.5, description="Idle dequeue cadence")
    max_concurrent_tasks: int = Field(default=4, description="Tasks executed at once by the scheduler")

    # Built-in tools
    allowed_commands: list[str] = Field(
        default_factory=list,
        description="Executables the run_command tool may launch",
    )
    command_timeout_seconds: float = Field(default=300.0, description="run_command ceiling")

    # Webhook event sink
    event_webhook_url: Optional[str] = None
    event_webhook_auth_token: Optional[str] = None
    event_webhook_timeout_ms: int = 500

    # Webhook circuit breaker
    event_webhook_circuit_breaker_enabled: bool = Field(
        default=True, description="Enable circuit breaker for webhook delivery"
    )
    event_webhook_failure_threshold: int = Field(
        default=5, description="Failures before opening circuit"
    )
    event_webhook_reset_timeout_seconds: int = Field(
        default=60, description="Seconds before attempting half-open"
    )

    # Validators
    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Reject negative retry bounds."""
        if v < 0:
            raise ValueError(f"max_retries must be >= 0, got {v}")
        return v

    @field_validator(
        "retry_backoff_seconds",
        "planner_poll_interval_seconds",
        "scheduler_poll_interval_seconds",
    )
    @classmethod
    def validate_non_negative_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Interval must be >= 0, got {v}")
        return v

    @field_validator("max_tool_candidates", "max_concurrent_tasks", "diagnosis_excerpt_chars")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}")
        return v

    @field_validator("event_webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate webhook URL is HTTP(S)."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got {v}")
        return v

    def resolve_working_dir(self, override: Optional[str] = None) -> Path:
        """Return the snapshot root for a task."""
        if override:
            return Path(override)
        if self.working_dir is not None:
            return self.working_dir
        return Path.cwd()


settings = Settings()
