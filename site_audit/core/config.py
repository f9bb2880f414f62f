"""
Environment-driven settings for the API, the workers and the crawler.
Every field has a default so the service boots against a local Redis.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Service
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Job store (Redis)
    REDIS_DSN: RedisDsn = Field("redis://localhost:6379/0", description="Job store connection string")
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0
    REDIS_CONNECT_TIMEOUT: float = 5.0
    JOB_KEY_PREFIX: str = "job:"
    JOB_TTL_SECONDS: int = Field(7 * 86400, ge=0)    # 0 keeps jobs forever
    JOB_STALL_TIMEOUT: float = Field(300.0, gt=0)   # seconds without progress
    JOB_QUEUE_TIMEOUT: float = Field(6 * 3600.0, gt=0)   # seconds a job may stay queued
    MAX_CONCURRENCY: int = Field(4, ge=1)

    # Worker queue (Celery)
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TASK_SOFT_TIME_LIMIT: int = 3600
    CELERY_TASK_TIME_LIMIT: int = 7200

    # Crawler
    CRAWLER_USER_AGENT: str = "SiteAuditBot/1.0 (+https://github.com/site-audit/bot)"
    CRAWLER_REQUEST_TIMEOUT: float = Field(30.0, gt=0)
    CRAWLER_DELAY_MS: int = Field(500, ge=0)
    CRAWLER_MAX_DELAY_MS: int = Field(30_000, ge=0)   # ceiling for any politeness delay
    CRAWLER_DEFAULT_MAX_PAGES: int = Field(100, ge=1)
    CRAWLER_MAX_PAGES_LIMIT: int = Field(5000, ge=1)
    CRAWLER_DEFAULT_MAX_DEPTH: int = Field(3, ge=0)
    CRAWLER_MAX_CONSECUTIVE_FAILURES: int = Field(5, ge=1)

    # Page score weights, normalized by their sum
    WEIGHT_META: float = Field(1.0, ge=0.0)
    WEIGHT_CONTENT: float = Field(1.0, ge=0.0)
    WEIGHT_TECHNICAL: float = Field(1.0, ge=0.0)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @model_validator(mode="after")
    def check_crawl_limits(self) -> "Settings":
        if self.CRAWLER_DEFAULT_MAX_PAGES > self.CRAWLER_MAX_PAGES_LIMIT:
            raise ValueError("CRAWLER_DEFAULT_MAX_PAGES exceeds CRAWLER_MAX_PAGES_LIMIT")
        if self.CRAWLER_MAX_DELAY_MS / 1000 >= self.JOB_STALL_TIMEOUT:
            raise ValueError("CRAWLER_MAX_DELAY_MS must be shorter than JOB_STALL_TIMEOUT")
        if self.WEIGHT_META + self.WEIGHT_CONTENT + self.WEIGHT_TECHNICAL <= 0:
            raise ValueError("At least one WEIGHT_* setting must be positive")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
