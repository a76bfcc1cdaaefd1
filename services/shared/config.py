"""Shared configuration management for the platform.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="financial-document-ingestion",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Azure Document Intelligence (OCR provider)
    azure_endpoint: str = Field(
        default="",
        description="Azure Document Intelligence endpoint (use env var APP_AZURE_ENDPOINT)",
    )
    azure_key: str = Field(
        default="",
        description="Azure Document Intelligence key (use env var APP_AZURE_KEY)",
    )
    azure_invoice_model: str = Field(
        default="prebuilt-invoice",
        description="Model used to analyze invoices",
    )
    azure_purchase_order_model: str = Field(
        default="prebuilt-invoice",
        description="Model used to analyze purchase orders",
    )
    azure_api_version: str = Field(
        default="2024-11-30",
        description="Document Intelligence REST API version",
    )
    azure_poll_interval: float = Field(
        default=1.0,
        description="Seconds between analyze operation polls",
        gt=0,
    )
    azure_timeout: float = Field(
        default=60.0,
        description="HTTP timeout for a single OCR request in seconds",
        gt=0,
    )

    # Storage configuration (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=False,
        description="Enable document storage in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="documents",
        description="Default bucket name for document storage",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )
    storage_public_url: str | None = Field(
        default=None,
        description="Base URL used to build object URLs (defaults to the storage endpoint)",
    )

    # Background queue configuration (arq + Redis)
    queue_enabled: bool = Field(
        default=False,
        description="Dispatch processing runs to the arq worker instead of in-process tasks",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the arq queue",
    )
    queue_max_jobs: int = Field(
        default=10,
        description="Maximum concurrent jobs per worker",
    )
    queue_job_timeout: int = Field(
        default=300,
        description="Job timeout in seconds",
    )

    # Persistence
    repository_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Where document, party and item records live (redis is required with the queue)",
    )
    repository_key_prefix: str = Field(
        default="ingestion",
        description="Key prefix for records in the Redis repository backend",
    )

    # Document intake
    max_upload_size_bytes: int = Field(
        default=20 * 1024 * 1024,
        description="Maximum accepted upload size in bytes",
    )
    default_payment_days: int = Field(
        default=30,
        description="Payment term applied when a document carries no usable due date or terms",
        gt=0,
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
