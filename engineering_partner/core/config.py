"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from engineering_partner.llm.retry import RetryPolicy
from engineering_partner.llm.selection import ModelTable


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Anthropic API
    anthropic_api_key: SecretStr = Field(
        ...,
        description="Anthropic API key for Claude access",
    )

    # Logging
    partner_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    partner_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    partner_log_dir: str = Field(
        default="logs",
        description="Directory for rotating log files",
    )

    # Model selection
    partner_fast_model: str = Field(
        default="claude-3-5-haiku-latest",
        description="Model used for fast-tier tasks (setup scaffolding, queries)",
    )
    partner_quality_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for quality-tier tasks (everything else)",
    )
    partner_max_tokens: int = Field(
        default=8000,
        ge=256,
        description="Maximum output tokens per model call",
    )

    # Retry policy
    partner_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum retries per model call",
    )
    partner_retry_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Backoff after a generic provider failure",
    )
    partner_rate_limit_delay_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Backoff after a rate-limit response",
    )

    # Workflow pacing
    partner_unit_delay_seconds: float = Field(
        default=1.5,
        ge=0,
        description="Pause between scheduled units of work",
    )
    partner_max_search_iterations: int = Field(
        default=25,
        ge=1,
        le=100,
        description="Iteration budget for risk/resource discovery",
    )
    partner_qa_max_attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Doer/QA attempts per unit; 1 makes QA rejection terminal",
    )

    # Storage
    partner_project_dir: str = Field(
        default="./projects",
        description="Directory holding JSON project documents",
    )

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy injected into the model invoker."""
        return RetryPolicy(
            max_retries=self.partner_max_retries,
            retry_delay_seconds=self.partner_retry_delay_seconds,
            rate_limit_delay_seconds=self.partner_rate_limit_delay_seconds,
        )

    def model_table(self) -> ModelTable:
        """Build the tier -> model lookup injected into the model invoker."""
        return ModelTable(
            fast=self.partner_fast_model,
            quality=self.partner_quality_model,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.partner_max_retries
        3
    """
    return Settings()  # type: ignore[call-arg]


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
