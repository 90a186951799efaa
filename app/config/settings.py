import logging
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.env import get_env_var

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    MONGO_URI: str = Field(description="MongoDB connection URI")
    MONGO_DB: str = Field(description="MongoDB database name")
    SECRET_KEY: str = Field(description="Secret key for JWT encoding")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(1440, ge=1, description="Access token expiration time in minutes")
    RESET_TOKEN_EXPIRE_MINUTES: int = Field(60, ge=1, description="Password reset token lifetime in minutes")

    STORAGE_BACKEND: Literal["local", "s3", "cloudinary"] = Field("local", description="Where uploaded files are persisted")
    UPLOAD_DIR: str = Field("uploads", description="Root directory of the local storage backend")
    S3_BUCKET: Optional[str] = Field(None, description="Bucket used by the s3 storage backend")
    S3_REGION: str = Field("us-east-1", description="Region of the s3 bucket")
    S3_ENDPOINT_URL: Optional[str] = Field(None, description="Custom endpoint for S3-compatible providers")
    S3_ACCESS_KEY_ID: Optional[str] = Field(None, description="Explicit access key, IAM role is used when empty")
    S3_SECRET_ACCESS_KEY: Optional[str] = Field(None, description="Explicit secret key")
    S3_PUBLIC_BASE_URL: Optional[str] = Field(None, description="CDN base URL that serves the bucket")
    S3_FOLDER: str = Field("vitrine", description="Key prefix under which media is namespaced")
    CLOUDINARY_CLOUD_NAME: Optional[str] = Field(None, description="Cloud used by the cloudinary storage backend")
    CLOUDINARY_API_KEY: Optional[str] = Field(None, description="Cloudinary API key")
    CLOUDINARY_API_SECRET: Optional[str] = Field(None, description="Cloudinary API secret")
    CLOUDINARY_FOLDER: str = Field("vitrine", description="Folder under which media is namespaced")

    IMAGE_MAX_MB: int = Field(10, ge=1, description="Size ceiling for image uploads in MB")
    VIDEO_MAX_MB: int = Field(100, ge=1, description="Size ceiling for video uploads in MB")
    IMAGE_UPLOAD_TIMEOUT_SECONDS: float = Field(60.0, gt=0, description="Upload window for images")
    VIDEO_UPLOAD_TIMEOUT_SECONDS: float = Field(300.0, gt=0, description="Upload window for videos")

    SMTP_HOST: str = Field("localhost", description="SMTP server hostname")
    SMTP_PORT: int = Field(587, description="SMTP server port")
    SMTP_USERNAME: Optional[str] = Field(None, description="SMTP username")
    SMTP_PASSWORD: Optional[str] = Field(None, description="SMTP password")
    SMTP_USE_TLS: bool = Field(True, description="Issue STARTTLS before authenticating")
    MAIL_FROM: str = Field("no-reply@vitrine.local", description="Sender address of notification emails")
    PUBLIC_BASE_URL: str = Field("http://localhost:8000", description="Base URL used in emailed links")

    ORPHAN_GRACE_MINUTES: int = Field(60, ge=0, description="Minimum age before an unreferenced file is swept")
    ORPHAN_SWEEP_HOURS: int = Field(24, ge=1, description="Interval of the orphaned file sweep")
    RATE_LIMIT_ENABLED: bool = Field(True, description="Toggle per-route rate limiting")
    LOG_FILE: str = Field("app.log", description="File the application log is written to")
    ENV: str = Field("production", description="Deployment environment name")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid"
    )

    def __init__(self, **values):
        """Initialize settings and log the loaded values."""
        super().__init__(**values)
        logger.info("Settings initialized successfully")
        logger.debug(f"Loaded settings: MONGO_DB={self.MONGO_DB}, STORAGE_BACKEND={self.STORAGE_BACKEND}, "
                     f"UPLOAD_DIR={self.UPLOAD_DIR}, IMAGE_MAX_MB={self.IMAGE_MAX_MB}, "
                     f"VIDEO_MAX_MB={self.VIDEO_MAX_MB}, "
                     f"ACCESS_TOKEN_EXPIRE_MINUTES={self.ACCESS_TOKEN_EXPIRE_MINUTES}")

    @property
    def image_max_bytes(self) -> int:
        return self.IMAGE_MAX_MB * 1024 * 1024

    @property
    def video_max_bytes(self) -> int:
        return self.VIDEO_MAX_MB * 1024 * 1024


def load_settings() -> Settings:
    """Load settings with environment variable validation."""
    try:
        settings = Settings(
            MONGO_URI=get_env_var("MONGO_URI"),
            MONGO_DB=get_env_var("MONGO_DB"),
            SECRET_KEY=get_env_var("SECRET_KEY")
        )
        return settings
    except ValueError as ve:
        logger.error(f"Validation error loading settings: {str(ve)}", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error loading settings: {str(e)}", exc_info=True)
        raise RuntimeError(f"Failed to load settings: {str(e)}")


settings = load_settings()
