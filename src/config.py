"""Application configuration via pydantic-settings.

All secrets are loaded from environment variables (.env file).
Settings are organized into logical groups and composed into a single Settings object.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """External data gateway (document store) connection settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    gateway_base_url: str = Field(
        default="https://qa.gateway.intelligenceindustrielle.com",
        description="Data gateway base URL",
    )
    gateway_bearer_token: str = Field(default="", description="Bearer token for the data gateway")
    app_identifier: str = Field(
        default="technical-drawing-analyzer",
        description="Tag stored on every document so several apps can share one collection",
    )
    gateway_timeout: float = Field(default=30.0, description="Gateway request timeout in seconds")


class AISettings(BaseSettings):
    """External AI drawing-analysis endpoint configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ai_endpoint_url: str = Field(
        default="http://localhost:5678/webhook/analyze-drawing",
        description="Multipart endpoint receiving the drawing and the instruction",
    )
    ai_action: str = Field(default="GEMINI_FILE_LIGHT", description="Action tag sent with each request")
    ai_timeout: float = Field(default=180.0, description="AI analysis timeout in seconds")
    ai_max_attempts: int = Field(default=2, ge=1, description="Attempts before giving up on unparseable output")


class WorkflowSettings(BaseSettings):
    """Analysis workflow tuning."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    autosave_debounce_seconds: float = Field(default=2.0, description="Quiet period before an edit autosave")
    draft_retention_days: int = Field(default=30, description="Drafts untouched this long are cleaned up")


class Settings(BaseSettings):
    """Root settings composing all sub-settings.

    Usage:
        settings = Settings()
        settings.gateway.gateway_base_url
        settings.ai.ai_timeout
        settings.workflow.autosave_debounce_seconds
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="DEBUG")

    # Composed settings (loaded from same .env)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    ai: AISettings = Field(default_factory=AISettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Module-level singleton — import this wherever settings are needed.
settings = Settings()
