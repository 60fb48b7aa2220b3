"""Application settings for the hybrid answering pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from ``HYBRIDQA_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HYBRIDQA_",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Core application settings
    app_env: Literal["development", "staging", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_logs: bool = True

    # Provider credentials are read without the prefix
    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_API_KEY", "HYBRIDQA_GOOGLE_API_KEY"),
    )

    # Models
    retrieval_model: str = "gemini-2.5-pro"
    web_search_model: str = "gemini-2.0-flash"
    general_model: str = "gemini-2.0-flash"

    # Stage budgets in seconds
    document_retrieval_timeout: float = 60.0
    web_augmentation_timeout: float = 60.0
    general_fallback_timeout: float = 30.0

    # Document retrieval retry
    retrieval_max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    retryable_status_codes: set[int] = Field(default_factory=lambda: {429, 500, 503})

    # Web search
    web_max_attempts: int = Field(default=3, ge=1)
    web_requests_per_minute: int = Field(default=10, ge=1)
    web_min_interval: float = Field(default=1.0, ge=0.0)

    # Enhancement gate
    min_web_confidence: float = 0.3
    min_web_answer_length: int = Field(default=100, ge=0)

    # Answer cache
    system_prompt_ttl: float = 3600.0
    conversation_ttl: float = 1800.0
    enhancement_ttl: float = 600.0
    cache_sweep_interval: float = 300.0
    cache_max_entries: int = Field(default=10_000, ge=1)

    # Upstream context cache
    context_cache_ttl: int = 3600
    context_cache_sweep_interval: float = 600.0
    context_cache_max_entries: int = Field(default=1_000, ge=1)

    # Knowledge stores
    store_registry_path: str = "store-registry.json"
    store_seeds_path: str | None = None
    import_poll_interval: float = 5.0

    @field_validator(
        "document_retrieval_timeout",
        "web_augmentation_timeout",
        "general_fallback_timeout",
        "system_prompt_ttl",
        "conversation_ttl",
        "enhancement_ttl",
        "cache_sweep_interval",
        "context_cache_ttl",
        "context_cache_sweep_interval",
        "import_poll_interval",
    )
    @classmethod
    def validate_positive(cls, v):
        """Budgets, TTLs and intervals must be positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("min_web_confidence")
    @classmethod
    def validate_confidence(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("min_web_confidence must be within [0, 1]")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
