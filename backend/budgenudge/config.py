"""
Application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "BudgeNudge"
    log_format: str = "text"  # text, json
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./data/db.sqlite"
    database_timeout_seconds: float = 10.0

    # Local calendar
    timezone: str = "America/New_York"
    holiday_country: str = "US"

    # Pattern detection
    lookback_days: int = 180
    min_occurrences: int = 3
    amount_rsd_threshold: float = 0.20
    amount_outlier_factor: float = 5.0

    # Business-day adjustment per prediction source: none, preceding, following
    bill_business_day_direction: str = "none"
    income_business_day_direction: str = "preceding"

    # Pacing
    pacing_over_ratio: float = 1.3
    pacing_under_ratio: float = 0.7
    pacing_baseline_periods: int = 3
    pacing_auto_select_count: int = 5

    # Notifications
    sms_char_budget: int = 320
    default_send_time: str = "08:00"
    scan_max_workers: int = 4
    call_timeout_seconds: float = 15.0

    # SMS provider
    sms_provider: str = "log"  # log, slicktext
    slicktext_api_key: Optional[str] = None
    slicktext_brand_id: Optional[str] = None
    slicktext_base_url: str = "https://dev.slicktext.com/v1"

    # Operator channel
    slack_webhook_url: Optional[str] = None

    # Trigger
    cron_secret: Optional[str] = None

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
