"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Meta Marketing API
    META_ADS_TOKEN: str = ""  # System user token with ads_read permission
    META_API_VERSION: str = "v21.0"
    META_GRAPH_BASE_URL: str = "https://graph.facebook.com"
    META_TEST_MODE: bool = False  # Set to True only for local testing
    META_REQUEST_TIMEOUT_SECONDS: float = 30.0
    META_PAGE_SIZE: int = 100

    # Upper bound on cursor pages per listing (0 disables the cap)
    PLATFORM_MAX_PAGES: int = 1000

    # Sync chunking
    SYNC_CHUNK_GRANULARITY: str = "month"  # day, week, month, quarter, year
    SYNC_REQUEST_TIMEZONE: str = "UTC"
    FACT_INSERT_BATCH_SIZE: int = 100

    # Worker
    WORKER_CONCURRENCY: int = 5
    WORKER_POLL_INTERVAL_SECONDS: float = 1.0
    JOB_MAX_ATTEMPTS: int = 25
    JOB_BACKOFF_BASE_SECONDS: int = 2
    JOB_BACKOFF_MAX_SECONDS: int = 3600
    JOB_LOCK_TIMEOUT_MINUTES: int = 240

    # Error tracking (optional)
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in ("dev", "development", "test")


settings = Settings()
