"""
Configuration module for the Property Sync Service.
"""

from enum import Enum
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Settings for the Property Sync Service.
    Loads environment variables, with fallbacks to default values where appropriate.
    All environment variables are prefixed with PROPERTY_SYNC_SERVICE_.
    """

    # Core service settings
    ENVIRONMENT: Environment = Field(
        Environment.DEVELOPMENT,
        alias="PROPERTY_SYNC_SERVICE_ENVIRONMENT",
        description="Application environment",
    )
    ROOT_PATH: str = Field(
        "/api/v1",
        alias="PROPERTY_SYNC_SERVICE_ROOT_PATH",
        description="API root path for reverse proxies",
    )
    LOGGING_LEVEL: str = Field(
        "INFO",
        alias="PROPERTY_SYNC_SERVICE_LOGGING_LEVEL",
        description="Logging level",
    )

    # Database configuration
    DATABASE_URL: str = Field(
        "sqlite+aiosqlite:///./inmuebles_db.sqlite",
        alias="PROPERTY_SYNC_SERVICE_DATABASE_URL",
        description="SQLAlchemy async connection string (SQLite or MySQL)",
    )

    # Source listing API
    SOURCE_API_URL: str = Field(
        "https://ahoinmobiliaria.webdgi.site/api/inmueble/restful/list/0c353a42-0bf1-432e-a7f8-6f87bab5f5fe/",
        alias="PROPERTY_SYNC_SERVICE_SOURCE_API_URL",
        description="Endpoint returning the JSON listing feed",
    )
    SOURCE_API_TIMEOUT_SECONDS: float = Field(
        30.0,
        alias="PROPERTY_SYNC_SERVICE_SOURCE_API_TIMEOUT_SECONDS",
        description="Timeout for the listing feed request",
    )

    # Image storage and processing
    IMAGES_FOLDER: str = Field(
        "imagenes_inmuebles",
        alias="PROPERTY_SYNC_SERVICE_IMAGES_FOLDER",
        description="Root folder for downloaded listing images",
    )
    IMAGE_MAX_WIDTH: int = Field(
        1200,
        alias="PROPERTY_SYNC_SERVICE_IMAGE_MAX_WIDTH",
        description="Images wider than this are scaled down",
    )
    IMAGE_QUALITY: int = Field(
        80,
        alias="PROPERTY_SYNC_SERVICE_IMAGE_QUALITY",
        description="JPEG quality used when re-encoding images",
    )
    IMAGE_CONCURRENCY: int = Field(
        3,
        alias="PROPERTY_SYNC_SERVICE_IMAGE_CONCURRENCY",
        description="Simultaneous image downloads per listing",
    )
    IMAGE_DOWNLOAD_TIMEOUT_SECONDS: float = Field(
        30.0,
        alias="PROPERTY_SYNC_SERVICE_IMAGE_DOWNLOAD_TIMEOUT_SECONDS",
        description="Timeout for a single image download",
    )

    # Synchronization defaults
    BATCH_SIZE: int = Field(
        5,
        alias="PROPERTY_SYNC_SERVICE_BATCH_SIZE",
        description="Number of listings processed concurrently",
    )
    DOWNLOAD_IMAGES: bool = Field(
        True,
        alias="PROPERTY_SYNC_SERVICE_DOWNLOAD_IMAGES",
        description="Download and reconcile listing images",
    )
    TRACK_CHANGES: bool = Field(
        True,
        alias="PROPERTY_SYNC_SERVICE_TRACK_CHANGES",
        description="Record field-level change history",
    )
    MARK_INACTIVE: bool = Field(
        False,
        alias="PROPERTY_SYNC_SERVICE_MARK_INACTIVE",
        description="Deactivate listings missing from the feed",
    )
    SYNC_ORPHAN_TIMEOUT_MINUTES: int = Field(
        30,
        alias="PROPERTY_SYNC_SERVICE_SYNC_ORPHAN_TIMEOUT_MINUTES",
        description="Running executions older than this are marked as error",
    )
    SYNC_START_TIMEOUT_MINUTES: int = Field(
        5,
        alias="PROPERTY_SYNC_SERVICE_SYNC_START_TIMEOUT_MINUTES",
        description="A running execution younger than this blocks a new run",
    )

    # Rate limiting
    RATE_LIMIT_SYNC_PER_MINUTE: int = Field(
        6,
        alias="PROPERTY_SYNC_SERVICE_RATE_LIMIT_SYNC_PER_MINUTE",
        description="Rate limit for sync trigger requests per minute",
    )

    # CORS settings
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        alias="PROPERTY_SYNC_SERVICE_CORS_ALLOW_ORIGINS",
        description="List of origins that are allowed to make cross-origin requests",
    )

    @field_validator("DATABASE_URL")
    def validate_database_url(cls, v: str, info: Any) -> str:
        # Plain driver URLs are upgraded to their async counterparts
        if v.startswith("sqlite:///"):
            return v.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if v.startswith("mysql://"):
            return v.replace("mysql://", "mysql+aiomysql://", 1)
        return v

    @field_validator("BATCH_SIZE", "IMAGE_CONCURRENCY")
    def validate_positive(cls, v: int, info: Any) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    def is_development(self) -> bool:
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    def is_testing(self) -> bool:
        return self.ENVIRONMENT == Environment.TESTING

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Create a global instance of the settings
settings = Settings()
