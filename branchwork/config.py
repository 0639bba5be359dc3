"""
Configuration management for Branchwork.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Every field can be overridden by the environment variable of the same
    name (case-insensitive) or by an entry in ``.env``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Branchwork")
    debug: bool = Field(default=False)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_workers: int = Field(default=1)

    # Database
    database_url: str = Field(default="sqlite:///./branchwork.db")

    # Logging
    log_level: str = Field(default="INFO")

    # AI provider selection
    ai_provider: Optional[str] = Field(
        default=None,
        description="Force a provider: 'openai', 'xai' or 'ollama'. Empty = auto-detect.",
    )
    ai_timeout_seconds: float = Field(default=30.0, gt=0)
    ai_max_retries: int = Field(default=3, ge=1)

    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_default_model: str = Field(default="gpt-4o-mini")

    xai_api_key: Optional[str] = Field(default=None)
    xai_base_url: str = Field(default="https://api.x.ai/v1")
    xai_default_model: str = Field(default="grok-3-fast")

    ollama_enabled: bool = Field(default=False)
    ollama_base_url: str = Field(default="http://localhost:11434/v1")
    ollama_default_model: str = Field(default="llama3.1")

    # Summarization
    summary_min_messages: int = Field(default=10, ge=1)
    summary_every_n_messages: int = Field(default=10, ge=1)
    summary_max_messages: int = Field(default=50, ge=1)
    summary_temperature: float = Field(default=0.3, ge=0, le=2)
    summary_model: Optional[str] = Field(default=None)
    summary_trigger_timeout_ms: int = Field(default=30000, gt=0)

    # Context building
    context_message_limit: int = Field(default=20, ge=1, le=100)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
