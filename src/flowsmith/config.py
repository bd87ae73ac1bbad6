"""Configuration management for Flowsmith."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from flowsmith.errors import ConfigurationError
from flowsmith.gateway import RetryPolicy


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWSMITH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("api_key", "FLOWSMITH_API_KEY", "API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"),
        description="Credential for the generative AI provider",
    )
    blueprint_model: str = Field(default="gemini-3-pro-preview", description="Model used to design blueprints")
    chat_model: str = Field(default="gemini-3-flash-preview", description="Model used for chat advice")
    vision_model: str = Field(default="gemini-3-pro-preview", description="Model used for image analysis")
    speech_model: str = Field(default="gemini-2.5-flash-preview-tts", description="Model used for speech")
    simulation_model: str = Field(default="gemini-3-flash-preview", description="Model used for dry runs")
    thinking_budget: int = Field(default=4000, ge=0, description="Thinking token budget for blueprint design")

    # Invocation Configuration
    max_attempts: int = Field(default=3, ge=1, description="Initial attempt plus retries")
    initial_delay_ms: int = Field(default=1000, ge=0, description="Delay before the first retry")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Delay growth factor per retry")
    attempt_timeout_seconds: float | None = Field(default=60.0, gt=0, description="Deadline for one attempt")

    # Audio Configuration
    speech_sample_rate: int = Field(default=24000, gt=0, description="Sample rate of provider PCM audio")
    speech_channels: int = Field(default=1, ge=1, description="Channel count of provider PCM audio")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def resolved_api_key(self) -> str | None:
        if self.api_key and self.api_key.strip():
            return self.api_key.strip()
        return None

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay_ms=self.initial_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
        )


def load_settings(**overrides: Any) -> Settings:
    """Load settings from the environment and ``.env``, applying explicit overrides."""
    updates = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**updates)
    except ValidationError as exc:
        problems = [f"{_field_name(error)}: {error['msg']}" for error in exc.errors()]
        fields = sorted({_field_name(error) for error in exc.errors()})
        raise ConfigurationError(
            f"Invalid configuration ({'; '.join(problems)}). Fix the matching FLOWSMITH_* variable or .env entry.",
            fields=fields,
        ) from exc


def _field_name(error: Any) -> str:
    return ".".join(str(part) for part in error["loc"]) or "settings"
