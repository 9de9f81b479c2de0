"""Configuration settings for CPA Alerts."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persisted store
    store_path: str | None = Field(
        default=None,
        validation_alias="CPA_ALERTS_STORE_PATH",
        description="Directory for the JSON store (None keeps data in memory)",
    )
    store_latency_min: float = Field(
        default=0.0, validation_alias="CPA_ALERTS_STORE_LATENCY_MIN"
    )
    store_latency_max: float = Field(
        default=0.0, validation_alias="CPA_ALERTS_STORE_LATENCY_MAX"
    )
    store_timeout: float = Field(
        default=5.0,
        validation_alias="CPA_ALERTS_STORE_TIMEOUT",
        description="Seconds before a store call is reported as failed",
    )

    # Firm details used in reminder emails
    firm_name: str = Field(
        default="Johnson & Associates CPA", validation_alias="CPA_ALERTS_FIRM_NAME"
    )
    portal_base_url: str = Field(
        default="https://pay.aiwyn.com/firm-demo",
        validation_alias="CPA_ALERTS_PORTAL_BASE_URL",
    )

    # Optional LLM drafting
    anthropic_api_key: SecretStr | None = Field(
        default=None, validation_alias="ANTHROPIC_API_KEY"
    )
    claude_model: str = Field(default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL")
    llm_max_tokens: int = Field(default=1000, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
