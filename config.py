"""
Configuration settings for studymate.

Uses Pydantic Settings for environment variable management with .env file support.
User overrides saved with `studymate configure` are layered on top at runtime
(see studymate.state.AppState.load).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path.home() / ".studymate"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Remote File Store (GitHub contents API)
    # ========================================
    github_token: str = Field(
        default="",
        description="GitHub personal access token for the progress repository",
    )
    repo_owner: str = Field(
        default="",
        description="Owner of the repository that stores conversations and progress",
    )
    repo_name: str = Field(
        default="",
        description="Name of the repository that stores conversations and progress",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )

    # ========================================
    # Generation (language-model proxy)
    # ========================================
    ai_api_key: str = Field(
        default="",
        description="API key forwarded to the generation proxy",
    )
    proxy_url: str = Field(
        default="",
        description="Generation proxy endpoint (empty disables generation)",
    )
    ai_model: str = Field(
        default="qwen-turbo",
        description="Model name forwarded to the generation proxy",
    )
    conversation_window: int = Field(
        default=10,
        description="Most recent conversation entries kept before a new turn",
    )

    # ========================================
    # Notion (optional synced sessions database)
    # ========================================
    notion_api_key: str = Field(
        default="",
        description="Notion integration API key",
    )
    notion_version: str = Field(
        default="2022-06-28",
        description="Notion API version",
    )
    sessions_db_id: str | None = Field(
        default=None,
        description="Notion Sessions (study session logs) database ID",
    )
    protect_notion: bool = Field(
        default=False,
        description="Prevent writes to Notion (safety flag)",
    )
    dry_run: bool = Field(
        default=False,
        description="Log actions without making changes",
    )

    # ========================================
    # Local cache
    # ========================================
    local_cache_url: str = Field(
        default=f"sqlite:///{DATA_DIR / 'cache.db'}",
        description="SQLAlchemy URL of the local state cache",
    )

    # ========================================
    # Reminders
    # ========================================
    reminder_interval_seconds: int = Field(
        default=60,
        description="Period of the reminder check",
    )
    history_refresh_seconds: int = Field(
        default=10,
        description="Period of the conversation history refresh",
    )
    daily_minimum_minutes: int = Field(
        default=30,
        description="Daily study floor below which the daily reminder fires",
    )
    notifications_enabled: bool = Field(
        default=True,
        description="Permission to show desktop/console notifications",
    )

    # ========================================
    # UI & Logging
    # ========================================
    ui_theme: Literal["light", "dark"] = Field(
        default="light",
        description="Console theme",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for remote store and proxy requests",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helpers
    # ========================================

    @property
    def has_remote_store(self) -> bool:
        """Check if the GitHub store is fully configured."""
        return bool(self.github_token and self.repo_owner and self.repo_name)

    def public_dict(self) -> dict[str, Any]:
        """Settings without secrets, for display."""
        data = self.model_dump()
        for key in ("github_token", "ai_api_key", "notion_api_key"):
            if data.get(key):
                data[key] = "***"
        return data


# Fields that `studymate configure` may override from the local cache
USER_CONFIG_FIELDS = (
    "github_token",
    "repo_owner",
    "repo_name",
    "ai_api_key",
    "proxy_url",
    "ai_model",
    "notion_api_key",
    "sessions_db_id",
    "ui_theme",
)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
