"""
Configuration & Settings
Local Competitor Watch
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Local Competitor Watch"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DASHBOARD_URL: str = "http://localhost:5173/dashboard"

    # Database
    # Unset -> in-memory store. Any SQLAlchemy async URL selects the SQL store,
    # e.g. "sqlite+aiosqlite:///./competitor_watch.db".
    DATABASE_URL: Optional[str] = None

    # Places provider
    GOOGLE_API_KEY: Optional[str] = None
    PLACES_TIMEOUT: float = 15.0
    PLACES_PAGE_SIZE: int = 20
    MAX_REVIEWS_PER_COMPETITOR: int = 5

    # Language model
    ANTHROPIC_API_KEY: Optional[str] = None
    ANALYSIS_MODEL: str = "claude-haiku-4-5-20251001"
    ANALYSIS_MAX_TOKENS: int = 4096
    ANALYSIS_TIMEOUT: float = 90.0

    # Report generation
    DEFAULT_RADIUS: int = 1500
    DEFAULT_LANGUAGE: str = "en"
    REPORT_STALE_AFTER_SECONDS: int = 300
    SELF_MATCH_MIN_SIMILARITY: float = 0.6
    SELF_MATCH_MAX_DISTANCE_METERS: float = 250.0

    # Weekly scheduler (weekday: Monday=0)
    SCHEDULER_ENABLED: bool = True
    SCHEDULE_WEEKDAY: int = 0
    SCHEDULE_HOUR: int = 6
    SCHEDULE_MINUTE: int = 0
    SCHEDULER_MAX_CONCURRENT_USERS: int = 4
    CRON_SECRET: Optional[str] = None

    # Anonymous preview requests, fixed window per client address
    ANONYMOUS_RATE_LIMIT: str = "5/hour"

    # Notifications
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_FROM: str = "Local Competitor Watch <noreply@competitorwatch.local>"
    NOTIFY_WEBHOOK_URL: Optional[str] = None
    NOTIFY_TIMEOUT: int = 20

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
