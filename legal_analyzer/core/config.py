from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Google Gemini API (sentiment provider). Without a key the local
    # lexicon analysis is used.
    google_api_key: str | None = None
    sentiment_model: str = "gemini-2.5-flash"
    sentiment_timeout_seconds: float = 30.0
    sentiment_min_interval_seconds: float = 1.0

    # Queue backend. Redis is used when a URL is configured, the in-memory
    # queue otherwise.
    redis_url: str | None = None
    queue_name: str = "legal-analysis"
    queue_concurrency: int = 2
    queue_max_retries: int = 3
    queue_backoff_seconds: float = 1.0
    worker_poll_interval_seconds: float = 1.0
    # A claimed Redis job whose lease is not renewed for this long is requeued
    queue_stalled_timeout_seconds: float = 30.0

    # Result cache
    cache_ttl_seconds: float = 7200.0
    cache_check_period_seconds: float = 600.0

    # Text processing
    chunk_size: int = 3000
    min_chunk_size: int = 500
    # Chunks analyzed concurrently inside one job
    chunk_batch_size: int = 5
    # Only the leading chunks are sent to the sentiment provider
    sentiment_chunk_limit: int = 3
    max_text_size: int = 2_000_000
    # Texts at or above this size are queued instead of analyzed inline
    async_threshold: int = 50_000
    stored_text_preview: int = 5000

    # Finished analysis records older than this are swept periodically
    record_retention_days: int = 30
    record_cleanup_interval_seconds: float = 86400.0

    cors_origin: str = "*"
    log_level: str = "INFO"

    # Axiom / OpenTelemetry
    axiom_api_token: str | None = None
    axiom_domain: str = "api.axiom.co"
    axiom_dataset: str = "legal-text-analyzer"
    otel_service_name: str = "legal-text-analyzer"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
