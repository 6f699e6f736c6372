"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"  # Self-trigger callback base
    log_level: str = "INFO"
    internal_api_token: str = ""
    allowed_origins: str = ""  # Comma-separated CORS origins

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Scrape queue
    max_concurrent_scrapes: int = 2
    scrape_lease_ttl_seconds: int = 300
    scrape_max_attempts: int = 3
    scrape_timeout_ms: int = 170000
    scrape_batch_size: int = 5
    scrape_worker_enabled: bool = False
    scrape_worker_poll_seconds: int = 60

    # Expired preview cleanup (run by the backstop worker)
    preview_cleanup_interval_seconds: int = 3600  # 0 disables
    preview_cleanup_batch_size: int = 100

    # Scraper providers
    generic_scraper_provider: str = "firecrawl"  # firecrawl | scraperapi | direct
    firecrawl_api_key: str = ""
    scraperapi_key: str = ""
    apify_api_token: str = ""

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_vision_model: str = "gpt-4o-mini"

    # Anthropic (fallback)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"

    # AI routing
    ai_primary_provider: str = "openai"  # openai | anthropic
    ai_timeout_seconds: int = 90
    ai_max_tokens: int = 4096
    ai_daily_budget_usd: float = 0.0  # 0 disables the budget check

    # Blob storage (S3-compatible)
    storage_bucket: str = "site-images"
    storage_endpoint_url: str = ""
    storage_region: str = "auto"
    storage_access_key_id: str = ""
    storage_secret_access_key: str = ""
    storage_public_url: str = ""

    # Upscaling
    replicate_api_token: str = ""
    upscale_enabled: bool = True

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
