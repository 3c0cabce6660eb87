"""
Configuration settings for the travel catalog sync client.

Uses environment variables (prefixed ``CATALOG_``) with sensible defaults
for local development.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API
    api_url: str = "http://localhost:5000/api"
    api_timeout: float = Field(default=30.0, gt=0)

    # Session persistence
    storage_dir: Path = Field(default_factory=lambda: Path.home() / ".travel_catalog")
    storage_db_name: str = "session.db"
    token_key: str = "token"
    user_key: str = "user"

    # Catalog
    all_regions_value: str = "All"
    new_item_window_days: int = Field(default=2, ge=0)
    max_attachment_bytes: int = Field(default=5 * 1024 * 1024, gt=0)

    debug: bool = False

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        return v.rstrip("/")

    @property
    def storage_path(self) -> Path:
        """Full path to the session database."""
        return Path(self.storage_dir) / self.storage_db_name


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
