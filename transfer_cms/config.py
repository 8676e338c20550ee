"""
Configuration management for the transfer CMS API.
Uses Pydantic Settings for environment variable management.
"""
from pydantic_settings import BaseSettings
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Transfer CMS API"
    API_VERSION: str = "0.1.0"
    API_DESCRIPTION: str = "Backend API for the car-transfer site galleries and admin panel"
    LOG_LEVEL: str = "INFO"

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    # Empty value falls back to an in-memory SQLite database
    DATABASE_URL: str = ""
    AUTO_CREATE_TABLES: bool = False

    # Admin Password (bcrypt hash, see generate_password_hash.py)
    ADMIN_PASSWORD_HASH: str = ""

    # Local upload storage
    # Files land in UPLOAD_ROOT/<folder>/ and are served under /uploads
    UPLOAD_ROOT: str = "public"
    UPLOAD_CONVERT_TO_WEBP: bool = False
    UPLOAD_RATE_LIMIT: str = "60/hour"

    # Remote image hosting
    REMOTE_IMAGE_HOST: Literal["postimage", "cloudinary", "none"] = "postimage"
    POSTIMAGE_API_URL: str = "https://postimage.me/api/1/upload"
    POSTIMAGE_API_KEY: str = ""
    REMOTE_UPLOAD_TIMEOUT: float = 30.0

    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""

    # Frontend page-cache revalidation webhook (optional)
    REVALIDATE_WEBHOOK_URL: str = ""
    REVALIDATE_SECRET: str = ""

    # Slug allocation bounds
    SLUG_MAX_SUFFIX: int = 1000
    SLUG_INSERT_RETRIES: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Global settings instance
settings = Settings()
