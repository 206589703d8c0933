"""
Configuration settings for the AMC practice analytics library.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Supabase
    # ========================================
    supabase_url: str = Field(
        default="",
        description="Supabase project URL (https://<project>.supabase.co)",
    )
    supabase_anon_key: str = Field(
        default="",
        description="Supabase anon key sent as the apikey header",
    )
    problem_data_table: str = Field(
        default="user_problem_data",
        description="Table holding one analytics row per user",
    )
    session_auth_path: str = Field(
        default="/functions/v1/session-auth",
        description="Edge function exchanging Firebase ID tokens for session tokens",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Transport timeout for Supabase requests",
    )

    # ========================================
    # Sync Behavior
    # ========================================
    refresh_interval_seconds: float = Field(
        default=2.0,
        description="How often pending count and stats are re-read for display",
    )
    auto_save_threshold: int = Field(
        default=5,
        description="Pending attempts that trigger an automatic flush",
    )
    timing_retention_days: int = Field(
        default=90,
        description="Days of daily timing records kept on the aggregate",
    )

    # ========================================
    # Emergency Snapshots
    # ========================================
    emergency_dir: Path = Field(
        default=Path.home() / ".amc" / "emergency",
        description="Directory for emergency snapshot files",
    )
    emergency_max_age_hours: int = Field(
        default=24,
        description="Snapshots older than this are discarded on recovery",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def has_supabase_configured(self) -> bool:
        """Check if the remote store is reachable in principle."""
        return bool(self.supabase_url and self.supabase_anon_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
