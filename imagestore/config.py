"""Application configuration for the image store service."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings sourced from environment variables."""

    store_root_dir: Path = Field(default=Path("./data/store"))
    store_fan_out: int = Field(
        default=3,
        ge=0,
        description="Number of single-character directory levels a token is split into.",
    )
    store_token_bytes: int = Field(
        default=18,
        ge=1,
        description="Random bytes drawn for every new container token.",
    )
    store_create_attempts: int = Field(
        default=10,
        ge=1,
        description="How many fresh tokens to try before giving up on an upload.",
    )
    store_source_filename: str = Field(default="source.jpeg")
    store_metadata_filename: str = Field(default="metadata.txt")
    store_source_quality: int = Field(
        default=75,
        ge=0,
        le=100,
        description="JPEG quality used when re-encoding uploads into the source image.",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
    )

    @field_validator("store_source_filename", "store_metadata_filename")
    @classmethod
    def _validate_reserved_name(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or value in {".", ".."}:
            raise ValueError("Reserved filenames must be plain, non-empty names.")
        return value

    @model_validator(mode="after")
    def _check_reserved_names_differ(self) -> "Settings":
        if self.store_source_filename == self.store_metadata_filename:
            raise ValueError("STORE_SOURCE_FILENAME and STORE_METADATA_FILENAME must differ.")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    settings = Settings()
    settings.store_root_dir.mkdir(parents=True, exist_ok=True)
    return settings
