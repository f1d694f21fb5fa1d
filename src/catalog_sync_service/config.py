"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "catalog-sync-service"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # Remote Catalog (GraphQL Admin API)
    # -------------------------------------------------------------------------
    catalog_store_domain: str = "example.myshopify.com"
    catalog_api_version: str = "2024-10"
    catalog_access_token: str = ""
    catalog_api_timeout: int = 30
    catalog_throttle_max_attempts: int = 4
    catalog_throttle_backoff_min: float = 1.0
    catalog_throttle_backoff_max: float = 16.0

    @property
    def catalog_graphql_url(self) -> str:
        """Construct the GraphQL endpoint URL for the remote catalog."""
        return f"https://{self.catalog_store_domain}/admin/api/{self.catalog_api_version}/graphql.json"

    # -------------------------------------------------------------------------
    # Supplier Feed
    # -------------------------------------------------------------------------
    supplier_api_url: str = "https://api.stuller.com/v2/products"
    supplier_user: str = ""
    supplier_password: str = ""
    supplier_api_timeout: int = 120

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "catalog"
    postgres_password: str = ""
    postgres_db: str = "catalog_sync"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 1800
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous PostgreSQL connection URL (for Alembic)."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    # -------------------------------------------------------------------------
    # Sync Settings
    # -------------------------------------------------------------------------
    sync_update_chunk_size: int = 100
    sync_insert_chunk_size: int = 500
    sync_stocking_quantity: int = 100
    sync_lookup_cache_ttl_seconds: int = 600
    reconcile_interval_hours: int = 6

    # -------------------------------------------------------------------------
    # File Upload Settings
    # -------------------------------------------------------------------------
    file_ready_max_attempts: int = 6
    file_ready_backoff_min: float = 1.0
    file_ready_backoff_max: float = 8.0

    # -------------------------------------------------------------------------
    # Maintenance Settings
    # -------------------------------------------------------------------------
    cleanup_hour: int = 8
    status_event_retention_days: int = 30


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
