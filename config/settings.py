"""Configuration management using pydantic-settings."""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./league.db"

    # Group tabs shown by the front end (standings still include other labels)
    group_labels: List[str] = ["A", "B", "C", "D"]

    # Live match clock
    minute_tick_seconds: float = 60.0
    auto_minute_cap: int = 90
    max_minute: int = 120
    ticker_enabled: bool = True

    # Admin sessions
    session_ttl_hours: int = 24

    # Change notifications kept for polling clients
    change_feed_size: int = 500

    # Hosted backend (only used by the import command)
    hosted_store_url: Optional[str] = None
    hosted_store_key: Optional[str] = None
    hosted_store_timeout: int = 30

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
