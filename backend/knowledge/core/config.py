"""Application configuration powered by Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    PROJECT_NAME: str = Field(default="Knowledge Ingestion Service")
    VERSION: str = Field(default="0.1.0")
    LOG_LEVEL: str = Field(default="INFO")

    DATABASE_URL: str = Field(default="postgresql+psycopg://postgres:postgres@db:5432/postgres")
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    MINIO_ENDPOINT: str = Field(default="minio:9000")
    MINIO_ACCESS_KEY: str = Field(default="minioadmin")
    MINIO_SECRET_KEY: str = Field(default="minioadmin")
    MINIO_SECURE: bool = Field(default=False)
    MINIO_REGION: str | None = Field(default=None)
    MINIO_STS_ENDPOINT: str | None = Field(default=None)
    MINIO_STS_DURATION_SECONDS: int = Field(default=3600)

    STORAGE_CONNECT_TIMEOUT: float = Field(default=5.0)
    STORAGE_READ_TIMEOUT: float = Field(default=30.0)
    STORAGE_MAX_RETRIES: int = Field(default=3)
    CREDENTIAL_REFRESH_MARGIN_SECONDS: int = Field(default=60)
    CREDENTIAL_FETCH_ATTEMPTS: int = Field(default=3)

    NAMESPACE_PREFIX: str = Field(default="kb")
    OBJECT_KEY_PREFIX: str = Field(default="knowledge-base")
    CHANNEL_DEFAULT_COUNTRY_CODE: str = Field(default="55")

    EXTRACTION_TIMEOUT_SECONDS: float = Field(default=20.0)
    EXTRACTION_MIN_CHARS: int = Field(default=10)

    INDEXING_SERVICE_URL: str | None = Field(default=None)
    INDEXING_SERVICE_TOKEN: str | None = Field(default=None)
    INDEXING_TIMEOUT: float = Field(default=30.0)
    INDEXING_SETTLE_SECONDS: float = Field(default=2.0)
    INDEXING_MAX_RETRIES: int = Field(default=3)
    INDEXING_RETRY_DELAY_SECONDS: int = Field(default=10)

    INGEST_COMPENSATE_ORPHANS: bool = Field(default=False)
    UPLOAD_MAX_BYTES: int = Field(default=25 * 1024 * 1024)

    API_TOKEN: str | None = Field(default=None)
    FRONTEND_URL: str = Field(default="http://localhost:3000")

    RATE_LIMIT_INGESTION: str = Field(default="60/minute")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> Settings:
    """Return cached settings instance to avoid repeated parsing."""

    if overrides:
        return Settings(**overrides)
    return Settings()


settings = get_settings()
