"""Application configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackendSetting(str, Enum):
    """Supported blob storage backends."""
    LOCAL = "local"
    GRIDFS = "gridfs"
    S3 = "s3"


class RepositoryBackend(str, Enum):
    """Where image, provider and analysis records are persisted."""
    MONGODB = "mongodb"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "snapmeal_db"
    repository_backend: RepositoryBackend = RepositoryBackend.MONGODB

    # Blob storage
    storage_backend: StorageBackendSetting = StorageBackendSetting.LOCAL
    storage_local_path: str = "./uploads"
    storage_timeout_seconds: float = 10.0
    gridfs_bucket_name: str = "image_blobs_fs"
    s3_bucket: str = ""
    s3_region: str = ""
    s3_endpoint_url: str = ""
    s3_key_prefix: str = ""
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""

    # Upload validation
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_mime_types: list[str] = ["image/jpeg", "image/png", "image/webp"]
    max_image_pixels: int = 64_000_000  # 8000x8000

    # Derivatives
    optimized_max_width: int = 1920
    optimized_max_height: int = 1080
    optimized_quality: int = 80
    thumbnail_max_dimension: int = 300

    # Quotas and retention
    owner_quota_bytes: int = 5 * 1024 * 1024 * 1024  # 5GB per owner
    image_retention_days: int = 30
    image_cleanup_enabled: bool = True
    image_cleanup_hour: int = 3  # Daily sweep at 03:00

    # Analysis cache
    analysis_cache_ttl_seconds: int = 30 * 60
    analysis_cache_max_entries: int = 10_000
    analysis_cache_sweep_seconds: int = 300  # 0 disables the background sweep

    # Inference
    provider_timeout_seconds: float = 30.0
    single_flight_enabled: bool = True
    encryption_key: str = "change-me-in-production"

    # Provider defaults (used when seeding configs)
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_model: str = "gemini-2.5-flash"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llava:7b"
    default_temperature: float = 0.2
    default_max_output_tokens: int = 500

    # App
    debug: bool = False
    log_level: str = "INFO"
    app_name: str = "SnapMeal API"
    api_version: str = "1.0.0"

    @property
    def is_remote_storage(self) -> bool:
        """Whether blobs live outside the local filesystem."""
        return self.storage_backend != StorageBackendSetting.LOCAL

    @property
    def is_s3_configured(self) -> bool:
        """Check if an S3 bucket is configured."""
        return bool(self.s3_bucket)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
