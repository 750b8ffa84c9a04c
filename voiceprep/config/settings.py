"""
Application settings and configuration management.

Uses pydantic-settings for environment variable loading.
"""

from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "VoicePrep"
    app_version: str = "0.1.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Model gateway (OpenAI-compatible chat completions)
    llm_host: str = ""
    llm_token: str = ""
    reasoning_endpoint: str = "/serving-endpoints/gemini-pro/invocations"
    fast_endpoint: str = "/serving-endpoints/gemini-flash/invocations"
    llm_timeout_seconds: float = 60.0

    # Interview flow
    default_question_count: int = 8
    max_followups_per_question: int = Field(default=1, ge=0)
    fallback_location: str = "/"
    language_code: str = "en-US"

    # Turn-taking timing
    capture_restart_backoff_ms: int = 300
    capture_error_backoff_ms: int = 500
    synthesis_timeout_seconds: float = 30.0
    evaluation_timeout_seconds: float = 20.0  # grace period for display-only scoring
    followup_timeout_seconds: float = 15.0
    elapsed_tick_seconds: float = 1.0

    # Interviewer voice
    voice_rate: float = 1.0
    voice_pitch: float = 1.0
    voice_volume: float = Field(default=1.0, ge=0.0, le=1.0)
    voice_name: str | None = None

    # CORS - stored as comma-separated string in env
    # Uses validation_alias to read from CORS_ORIGINS env var
    cors_origins_str: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        validation_alias="cors_origins"
    )

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @computed_field
    @property
    def llm_configured(self) -> bool:
        """Whether a model gateway is available for AI features."""
        return bool(self.llm_host and self.llm_token)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
