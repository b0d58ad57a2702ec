"""Process configuration."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Settings loaded from ``DINNER_TABLE_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="DINNER_TABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store
    store_backend: Literal["memory", "firestore"] = "memory"
    firebase_credentials_path: str | None = Field(
        default=None,
        description="Path to a Firebase service account JSON file",
    )
    firebase_config_json: str | None = Field(
        default=None,
        description="Raw service account JSON, takes precedence over the path",
    )
    # Reject table writes whose snapshot went stale instead of last-write-wins
    optimistic_writes: bool = True

    # Defaults for the shared settings document when it does not exist yet
    default_max_people_per_table: int = Field(default=5, ge=2)
    default_consider_location: bool = False

    # Demo affordance: lets any signed in user grant themselves the admin role
    allow_self_admin: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"


@lru_cache
def get_config() -> Config:
    return Config()
