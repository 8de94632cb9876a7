"""Application configuration using Pydantic Settings.

This module provides type-safe environment variable management
for the storage buckets, thumbnail renditions and the background
worker pool.
"""

from functools import lru_cache
from typing import Dict, FrozenSet, List

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        APP_ENV: Application environment (development, staging, production).
        DEBUG: Enable debug mode.
        API_PREFIX: Prefix for all API routes.
        CORS_ORIGINS: Comma-separated list of allowed CORS origins.
        DATABASE_URL: SQLAlchemy URL of the photo directory database.
        STORAGE_ROOT: Root directory of the blob store.
        ORIGINALS_BUCKET: Bucket holding uploaded originals.
        THUMBNAILS_BUCKET: Bucket holding derived JPEG renditions.
        PRESIGN_SECRET: HMAC secret used to sign blob URLs.
        PRESIGN_BASE_URL: Public base URL that presigned links point to.
        PRESIGN_TTL_SECONDS: Lifetime of presigned links.
        ALLOWED_EXTENSIONS: Comma-separated image extensions accepted on upload.
        MAX_UPLOAD_BYTES: Largest single image payload accepted.
        THUMBNAIL_SMALL: Max dimension of the SMALL rendition.
        THUMBNAIL_MEDIUM: Max dimension of the MEDIUM rendition.
        THUMBNAIL_LARGE: Max dimension of the LARGE rendition.
        THUMBNAIL_QUALITY: JPEG quality as a fraction in (0, 1].
        WORKER_MAX_THREADS: Concurrent derivation jobs.
        WORKER_QUEUE_SIZE: Jobs allowed to wait for a free thread.
        WORKER_SUBMIT_TIMEOUT: Seconds a submitter waits for a free slot.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Database
    DATABASE_URL: str = "sqlite:///./photobook.sqlite"

    # Blob storage
    STORAGE_ROOT: str = "./storage"
    ORIGINALS_BUCKET: str = "originals"
    THUMBNAILS_BUCKET: str = "thumbnails"
    PRESIGN_SECRET: str = "change-me"
    PRESIGN_BASE_URL: str = "http://localhost:8000/blobs"
    PRESIGN_TTL_SECONDS: int = 3600

    # Upload
    ALLOWED_EXTENSIONS: str = "jpg,jpeg,png,gif,webp,heic,heif"
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # Thumbnails
    THUMBNAIL_SMALL: int = 300
    THUMBNAIL_MEDIUM: int = 800
    THUMBNAIL_LARGE: int = 1600
    THUMBNAIL_QUALITY: float = 0.85

    # Background worker
    WORKER_MAX_THREADS: int = 4
    WORKER_QUEUE_SIZE: int = 100
    WORKER_SUBMIT_TIMEOUT: float = 30.0

    @field_validator(
        "THUMBNAIL_SMALL",
        "THUMBNAIL_MEDIUM",
        "THUMBNAIL_LARGE",
        "MAX_UPLOAD_BYTES",
        "PRESIGN_TTL_SECONDS",
        "WORKER_MAX_THREADS",
    )
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("WORKER_QUEUE_SIZE")
    @classmethod
    def _must_not_be_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("THUMBNAIL_QUALITY")
    @classmethod
    def _quality_in_range(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("must be in the range (0, 1]")
        return value

    @computed_field  # type: ignore[misc]
    @property
    def allowed_extensions(self) -> FrozenSet[str]:
        """Parse allowed image extensions from the comma-separated string.

        Returns:
            Lower-cased extensions without leading dots.
        """
        return frozenset(
            ext.strip().lower().lstrip(".")
            for ext in self.ALLOWED_EXTENSIONS.split(",")
            if ext.strip()
        )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string.

        Returns:
            List of allowed origin URLs.
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def thumbnail_sizes(self) -> Dict[str, int]:
        """Map each thumbnail size class name to its max dimension."""
        return {
            "SMALL": self.THUMBNAIL_SMALL,
            "MEDIUM": self.THUMBNAIL_MEDIUM,
            "LARGE": self.THUMBNAIL_LARGE,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance.
    """
    return Settings()

