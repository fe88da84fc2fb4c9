"""
Application settings and configuration management.

This module handles all environment variables, API keys, and application
configuration using Pydantic settings management for type safety and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are stored as SecretStr to prevent accidental logging.
    Settings are validated on load and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # API Keys (may also be supplied per analysis)
    google_api_key: Optional[SecretStr] = Field(default=None, alias="GOOGLE_API_KEY")
    google_cse_id: Optional[SecretStr] = Field(default=None, alias="GOOGLE_CSE_ID")

    # Application Configuration
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        alias="APP_ENV"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Page fetching
    fetch_timeout_ms: int = Field(default=10000, ge=1, alias="FETCH_TIMEOUT_MS")
    fetch_batch_delay_ms: int = Field(default=1000, ge=0, alias="FETCH_BATCH_DELAY_MS")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
        ),
        alias="USER_AGENT",
    )

    # Pipeline throttling
    competitor_delay_ms: int = Field(default=500, ge=0, alias="COMPETITOR_DELAY_MS")

    # Provider limits
    max_search_results: int = Field(default=10, ge=1, le=10, alias="MAX_SEARCH_RESULTS")
    nlp_max_chars: int = Field(default=1_000_000, ge=1, alias="NLP_MAX_CHARS")
    provider_timeout_seconds: float = Field(default=30.0, gt=0, alias="PROVIDER_TIMEOUT_SECONDS")

    # Output Settings
    output_dir: Path = Field(default=Path("outputs/reports"), alias="OUTPUT_DIR")
    export_format: Literal["json", "csv", "fullcontent"] = Field(
        default="json",
        alias="EXPORT_FORMAT"
    )

    @field_validator("output_dir", mode="before")
    @classmethod
    def validate_directories(cls, v: str | Path) -> Path:
        """Normalize output directory to a Path."""
        return Path(v)

    def has_google_credentials(self) -> bool:
        """Check whether both Google credentials are configured."""
        return bool(self.google_api_key and self.google_cse_id)

    def get_search_provider(self) -> str:
        """Determine which search provider to use based on available keys."""
        if self.has_google_credentials():
            return "google"
        return "none"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
