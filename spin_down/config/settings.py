"""Configuration management for the hibernation and wake flows.

Settings are read from environment variables (no prefix, so the variable
names set on the Lambda functions are used as-is) with defaults for every
timing budget. One instance is cached per process; the Lambda handlers and
the CLI construct their client bundle from it.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError


class StartupStrategy(str, Enum):
    """How the startup flow absorbs backend boot latency."""

    REPLAY_RETRY = "replay_retry"
    WAIT_FOR_READY = "wait_for_ready"


class SpinDownSettings(BaseSettings):
    """Main configuration class for the spin-down controller.

    Args:
        ecs_cluster_name: ECS cluster hosting the backend service.
        ecs_service_name: ECS service scaled between 0 and 1 tasks.
        rds_instance_id: RDS instance powered down while idle.
        listener_arn: ALB listener holding the placeholder and backend rules.
        domain_name: Public host used to rebuild absolute backend URLs.
        placeholder_rule_arn: Stored ARN of the placeholder rule.
        backend_rule_arn: Stored ARN of the backend rule.
        startup_strategy: Whether startup waits for readiness before replay.
        replay_max_attempts: Attempt cap for request replay.
        retry_after_seconds: Retry-After hint returned with 503 responses.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Resource identifiers
    ecs_cluster_name: str = Field(description="ECS cluster name")
    ecs_service_name: str = Field(description="ECS service name")
    rds_instance_id: str = Field(description="RDS DB instance identifier")
    aws_region: Optional[str] = Field(
        default=None, description="AWS region (None uses the session default)"
    )

    # Routing
    listener_arn: Optional[str] = Field(
        default=None, description="ALB listener ARN used for rule discovery"
    )
    placeholder_rule_arn: Optional[str] = Field(
        default=None, description="Listener rule forwarding to the placeholder"
    )
    backend_rule_arn: Optional[str] = Field(
        default=None, description="Listener rule forwarding to the backend"
    )
    placeholder_target_group_arn: Optional[str] = Field(
        default=None, description="Target group of the placeholder Lambda"
    )
    backend_target_group_arn: Optional[str] = Field(
        default=None, description="Target group of the backend service"
    )
    placeholder_target_marker: str = Field(
        default="Lambd",
        min_length=1,
        description="Substring identifying the placeholder target group ARN",
    )

    # Replay target
    domain_name: Optional[str] = Field(
        default=None, description="Public domain name of the backend"
    )
    backend_url_scheme: Literal["http", "https"] = Field(
        default="https", description="Scheme used when rebuilding backend URLs"
    )

    # Drain (shutdown)
    drain_poll_interval_seconds: float = Field(default=5.0, ge=0.0)
    drain_max_attempts: int = Field(default=12, ge=1)

    # Readiness (startup)
    startup_strategy: StartupStrategy = Field(default=StartupStrategy.REPLAY_RETRY)
    readiness_poll_interval_seconds: float = Field(default=10.0, ge=0.0)
    readiness_max_attempts: int = Field(default=30, ge=1)
    readiness_includes_database: bool = Field(default=True)

    # Replay
    replay_retry_interval_seconds: float = Field(default=5.0, ge=0.0)
    replay_max_attempts: int = Field(default=50, ge=1)
    post_ready_replay_attempts: int = Field(default=3, ge=1)
    replay_request_timeout_seconds: float = Field(default=10.0, gt=0.0)
    rule_propagation_delay_seconds: float = Field(default=3.0, ge=0.0)
    retry_after_seconds: int = Field(default=30, ge=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @model_validator(mode="after")
    def _check_rule_identity(self) -> "SpinDownSettings":
        stored = [self.placeholder_rule_arn, self.backend_rule_arn]
        if any(stored) and not all(stored):
            raise ValueError(
                "PLACEHOLDER_RULE_ARN and BACKEND_RULE_ARN must be set together"
            )
        if not all(stored) and not self.listener_arn:
            raise ValueError(
                "LISTENER_ARN is required when rule ARNs are not configured"
            )
        return self

    @property
    def backend_base_url(self) -> Optional[str]:
        """Absolute base URL of the backend, or None without a domain name."""
        if not self.domain_name:
            return None
        return f"{self.backend_url_scheme}://{self.domain_name.rstrip('/')}"

    def require_backend_base_url(self) -> str:
        """Return the backend base URL, or fail when DOMAIN_NAME is unset.

        ALB events only carry a path, so the wake handler cannot replay
        anything without it.

        Raises:
            ConfigurationError: If DOMAIN_NAME is not configured.
        """
        base_url = self.backend_base_url
        if base_url is None:
            raise ConfigurationError("DOMAIN_NAME is required to replay wake requests")
        return base_url

    @property
    def replay_attempt_budget(self) -> int:
        """Replay attempts allowed for the configured startup strategy.

        When startup already waited for readiness, replay only needs a short
        budget; the long budget belongs to the retry-only strategy.
        """
        if self.startup_strategy is StartupStrategy.WAIT_FOR_READY:
            return self.post_ready_replay_attempts
        return self.replay_max_attempts


# Global settings instance
_settings: Optional[SpinDownSettings] = None


def _load(**kwargs) -> SpinDownSettings:
    try:
        return SpinDownSettings(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid spin-down configuration: {e}") from e


def get_settings() -> SpinDownSettings:
    """Get global settings instance.

    Returns:
        SpinDownSettings: Singleton settings instance.

    Raises:
        ConfigurationError: If required variables are missing or invalid.
    """
    global _settings
    if _settings is None:
        _settings = _load()
    return _settings


def update_settings(**kwargs) -> SpinDownSettings:
    """Replace the global settings with a new instance built from overrides."""
    global _settings
    _settings = _load(**kwargs)
    return _settings


def reset_settings() -> None:
    """Clear the cached settings so the environment is read again."""
    global _settings
    _settings = None
