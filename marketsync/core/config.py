# marketsync/core/config.py

import os
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Marketplace API
    MARKETPLACE_PROVIDER: str = "stockx"
    MARKETPLACE_API_URL: str = "https://api.stockx.com"
    MARKETPLACE_API_KEY: str = ""
    MARKETPLACE_ACCESS_TOKEN: str = ""
    MARKETPLACE_TIMEOUT_SECONDS: float = 30.0
    MARKETPLACE_MAX_RETRIES: int = 2
    MARKETPLACE_MAX_BACKOFF_SECONDS: float = 30.0

    # Ingestion pacing (per-account rate limits on the marketplace side)
    INGEST_VARIANT_DELAY_SECONDS: float = 0.05
    INGEST_PRODUCT_DELAY_SECONDS: float = 0.3
    INGEST_SALES_HISTORY: bool = False
    PRICE_SNAPSHOT_BUCKET_SECONDS: int = 3600

    # Currencies / providers (comma separated)
    MARKET_CURRENCIES: str = "GBP,USD,EUR"
    DEFAULT_CURRENCY: str = "GBP"
    PROVIDER_PRIORITY: str = "stockx,alias"

    # Listings pagination
    LISTINGS_PAGE_SIZE: int = 100
    LISTINGS_MAX_PAGES: int = 100

    # Retention
    PRICE_RETENTION_DAYS: int = 30
    SALES_RETENTION_DAYS: int = 90
    DAILY_ROLLUP_RETENTION_DAYS: int = 395

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    SYNC_CRON_HOUR: str = "*/6"
    RETENTION_CRON_HOUR: int = 3
    SCHEDULER_MAX_CONCURRENT_USERS: int = 2

    model_config = SettingsConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def market_currencies(self) -> List[str]:
        return [c.upper() for c in _split_csv(self.MARKET_CURRENCIES)]

    @property
    def provider_priority(self) -> List[str]:
        return [p.lower() for p in _split_csv(self.PROVIDER_PRIORITY)]


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
