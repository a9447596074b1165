"""
Configuration and settings for the wardrobe backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REMBG_MODEL_VERSION = (
    "cjwbw/rembg:fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003"
)


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    log_level: str = Field(default="INFO")

    # Durable store; any SQLAlchemy URL (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    # An unreachable database at startup degrades to the in-memory store.
    fallback_to_memory: bool = Field(default=True)
    # Write routes create unknown user ids on first use.
    auto_provision_users: bool = Field(default=True)

    # Processed garment images
    images_dir: str = Field(default="data/images")
    images_url_path: str = Field(default="/images")
    verify_images: bool = Field(default=True)

    # Background removal (Replicate)
    replicate_api_token: Optional[str] = Field(default=None)
    replicate_api_url: str = Field(default="https://api.replicate.com/v1")
    rembg_model_version: str = Field(default=DEFAULT_REMBG_MODEL_VERSION)
    background_removal_timeout_seconds: float = Field(default=120.0, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
