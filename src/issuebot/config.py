"""Bot configuration using pydantic-settings.

This module defines the BotSettings class that reads configuration from
environment variables with the ISSUEBOT_ prefix. The settings object is
built once at startup and handed to every component explicitly; nothing
in the pipeline reads the environment on its own.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SKIP_LABELS = ["duplicate", "invalid", "wontfix", "spam"]


class SafetyPolicy(BaseModel):
    """Thresholds consulted by the fix safety gate."""

    model_config = {"frozen": True}

    confidence_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum edit-set confidence required for auto-apply",
    )
    max_auto_fix_complexity: int = Field(
        default=3,
        ge=0,
        description="Maximum number of files an auto-fix may touch",
    )


class BotSettings(BaseSettings):
    """Issue bot configuration from environment variables.

    All environment variables are prefixed with ISSUEBOT_ (e.g.,
    ISSUEBOT_GITHUB_TOKEN). The instance is frozen after construction.

    Required fields (must be set via environment variables):
    - github_token: GitHub API token for comments, labels, branches and PRs
    - llm_api_key: API key for the completion endpoint
    """

    model_config = SettingsConfigDict(
        env_prefix="ISSUEBOT_",
        case_sensitive=False,
        frozen=True,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_api_url: str = "https://api.github.com"

    # Webhook signature secret; empty disables signature verification
    webhook_secret: str = ""

    # Mention handle used in comment commands (@issues-bot analyze)
    bot_name: str = "issues-bot"

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    llm_api_key: str

    # Empty means the provider default endpoint
    llm_base_url: str = ""

    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 2000
    llm_timeout: float = 60.0

    # -------------------------------------------------------------------------
    # Feature Flags
    # -------------------------------------------------------------------------
    issue_analysis_enabled: bool = True
    auto_fix_enabled: bool = False
    max_auto_fix_complexity: int = 3
    confidence_threshold: float = 0.8
    skip_labels: List[str] = Field(default_factory=lambda: list(DEFAULT_SKIP_LABELS))

    # -------------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------------
    # Requests allowed per repository within one window
    rate_limit_max: int = 100
    rate_limit_window_seconds: float = 900.0

    # -------------------------------------------------------------------------
    # Storage Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; empty selects the in-memory store
    database_url: str = ""

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token", "llm_api_key")
    @classmethod
    def validate_not_empty(cls, v: str, info) -> str:
        """Validate that credentials are not empty."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v

    @field_validator("github_api_url")
    @classmethod
    def validate_github_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_api_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("llm_base_url")
    @classmethod
    def validate_llm_base_url(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("llm_base_url must start with http:// or https://")
        return v

    @field_validator("bot_name")
    @classmethod
    def validate_bot_name(cls, v: str) -> str:
        v = v.strip().lstrip("@")
        if not v:
            raise ValueError("bot_name cannot be empty")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("llm_temperature must be between 0 and 2")
        return v

    @field_validator("llm_max_tokens", "rate_limit_max")
    @classmethod
    def validate_positive_int(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @field_validator("llm_timeout", "rate_limit_window_seconds")
    @classmethod
    def validate_positive_float(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("max_auto_fix_complexity")
    @classmethod
    def validate_complexity(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_auto_fix_complexity cannot be negative")
        return v

    @field_validator("confidence_threshold")
    @classmethod
    def validate_confidence_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("confidence_threshold must be between 0 and 1")
        return v

    @field_validator("skip_labels")
    @classmethod
    def normalize_skip_labels(cls, v: List[str]) -> List[str]:
        """Lowercase skip labels so comparisons are case-insensitive."""
        return [label.strip().lower() for label in v if label and label.strip()]

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v and not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log_level: {v}")
        return level

    def safety_policy(self) -> SafetyPolicy:
        """Build the gate policy from the configured thresholds."""
        return SafetyPolicy(
            confidence_threshold=self.confidence_threshold,
            max_auto_fix_complexity=self.max_auto_fix_complexity,
        )


def get_settings() -> BotSettings:
    """Create and return a BotSettings instance.

    Returns:
        BotSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return BotSettings()
