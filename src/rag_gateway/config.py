"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )
    openai_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "openai_base_url"),
    )
    gemini_default_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_DEFAULT_MODEL", "gemini_default_model"),
    )
    openai_default_model: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("OPENAI_DEFAULT_MODEL", "openai_default_model"),
    )
    openai_assistant_model: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices(
            "OPENAI_ASSISTANT_MODEL",
            "openai_assistant_model",
        ),
    )
    key_validation_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("KEY_VALIDATION_MODEL", "key_validation_model"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("REQUEST_TIMEOUT", "request_timeout"),
        ge=1,
    )
    resource_registry_size: int = Field(
        default=1024,
        ge=1,
        validation_alias=AliasChoices(
            "RESOURCE_REGISTRY_SIZE",
            "resource_registry_size",
        ),
        description="Idle OpenAI sessions remembered for idempotent resource creation.",
    )

    # Vector store ingestion polling
    ingestion_poll_interval: float = Field(
        default=1.0,
        ge=0,
        validation_alias=AliasChoices(
            "INGESTION_POLL_INTERVAL",
            "ingestion_poll_interval",
        ),
    )
    ingestion_poll_backoff: float = Field(
        default=1.5,
        ge=1,
        validation_alias=AliasChoices(
            "INGESTION_POLL_BACKOFF",
            "ingestion_poll_backoff",
        ),
    )
    ingestion_poll_max_interval: float = Field(
        default=10.0,
        ge=0,
        validation_alias=AliasChoices(
            "INGESTION_POLL_MAX_INTERVAL",
            "ingestion_poll_max_interval",
        ),
    )
    ingestion_max_attempts: Optional[int] = Field(
        default=120,
        ge=1,
        validation_alias=AliasChoices(
            "INGESTION_MAX_ATTEMPTS",
            "ingestion_max_attempts",
        ),
    )
    ingestion_deadline: Optional[float] = Field(
        default=600.0,
        gt=0,
        validation_alias=AliasChoices("INGESTION_DEADLINE", "ingestion_deadline"),
        description="Seconds before an in-progress ingestion is abandoned.",
    )

    def default_model_for(self, provider: str) -> str:
        if provider == "openai":
            return self.openai_default_model
        return self.gemini_default_model


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
