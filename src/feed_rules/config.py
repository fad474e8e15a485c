# ABOUTME: Centralized configuration using Pydantic Settings.
# ABOUTME: Loads rule engine, database, and server settings from environment and .env file.

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    db_path: Path = Path("./feed_rules.db")

    # Rule evaluation
    regex_timeout_ms: int = 100
    default_rule_priority: int = 100
    max_rule_name_length: int = 200

    # Notifications
    notification_channel: str = "RuleEngine"
    notification_duration_seconds: int = 7

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Logging
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        """Build async SQLite connection URL."""
        return f"sqlite+aiosqlite:///{self.db_path}"

    @property
    def regex_timeout(self) -> float:
        """Regex match timeout in seconds."""
        return self.regex_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
