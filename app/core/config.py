"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, LINE / Cloudinary credentials, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="memberpass",
        description="MongoDB database name"
    )

    # LINE Messaging API
    LINE_CHANNEL_SECRET: Optional[str] = Field(
        default=None,
        description="Channel secret used to verify webhook signatures"
    )
    LINE_CHANNEL_ACCESS_TOKEN: Optional[str] = Field(
        default=None,
        description="Long-lived channel access token"
    )
    LINE_API_BASE_URL: str = Field(
        default="https://api.line.me",
        description="LINE Messaging API base URL"
    )
    LINE_DATA_API_BASE_URL: str = Field(
        default="https://api-data.line.me",
        description="LINE content API base URL (user-submitted media)"
    )

    # Cloudinary (QR codes and member photos)
    CLOUDINARY_CLOUD_NAME: Optional[str] = Field(default=None)
    CLOUDINARY_API_KEY: Optional[str] = Field(default=None)
    CLOUDINARY_API_SECRET: Optional[str] = Field(default=None)
    CLOUDINARY_API_BASE_URL: str = Field(
        default="https://api.cloudinary.com/v1_1",
        description="Cloudinary upload API base URL"
    )
    QR_CODE_FOLDER: str = Field(default="line_qrcodes")
    PHOTO_FOLDER: str = Field(default="member_photos")
    QR_CODE_SIZE: int = Field(default=300, description="QR code image width in pixels")
    QR_CODE_MARGIN: int = Field(default=2, description="Quiet zone around the QR code, in modules")

    # Public links
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL encoded into member QR codes"
    )
    COMMUNITY_URL: Optional[str] = Field(
        default=None,
        description="Optional community link shown in the member menu"
    )

    # Outbound calls
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for LINE and Cloudinary requests"
    )

    # Onboarding flow
    REQUIRE_PHOTO_STEP: bool = Field(
        default=True,
        description="Ask for a member photo before issuing the QR code"
    )
    CONFIRM_PHONE_CHANGE: bool = Field(
        default=True,
        description="Ask for yes/no confirmation before replacing a phone on file"
    )
    STALE_REGISTRATION_HOURS: int = Field(
        default=24,
        description="Unfinished registrations idle for this long are reset"
    )
    STALE_SWEEP_INTERVAL_MINUTES: int = Field(
        default=60,
        description="How often the stale registration sweep runs"
    )

    # Admin
    ADMIN_API_KEY: Optional[str] = Field(
        default=None,
        description="Shared key for admin endpoints (X-Admin-Key header); required in production"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @validator("LINE_CHANNEL_SECRET")
    def validate_channel_secret(cls, v, values):
        """Ensure the webhook secret is set in production."""
        if values.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("LINE_CHANNEL_SECRET is required in production environment")
        return v

    @validator("LINE_CHANNEL_ACCESS_TOKEN")
    def validate_access_token(cls, v, values):
        """Ensure the channel access token is set in production."""
        if values.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("LINE_CHANNEL_ACCESS_TOKEN is required in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.CLOUDINARY_CLOUD_NAME
            and self.CLOUDINARY_API_KEY
            and self.CLOUDINARY_API_SECRET
        )

    def member_url(self, member_id: int) -> str:
        """Public resolution URL for a member (the QR code payload)."""
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}/member/{member_id}"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not settings.PUBLIC_BASE_URL:
        errors.append("PUBLIC_BASE_URL is required")

    if settings.QR_CODE_SIZE <= 0:
        errors.append("QR_CODE_SIZE must be positive")

    if settings.STALE_REGISTRATION_HOURS <= 0:
        errors.append("STALE_REGISTRATION_HOURS must be positive")

    # Production-specific validations
    if settings.is_production:
        if not settings.LINE_CHANNEL_SECRET:
            errors.append("LINE_CHANNEL_SECRET is required in production")
        if not settings.LINE_CHANNEL_ACCESS_TOKEN:
            errors.append("LINE_CHANNEL_ACCESS_TOKEN is required in production")
        if not settings.cloudinary_configured:
            errors.append("CLOUDINARY_* credentials are required in production")
        if "localhost" in settings.PUBLIC_BASE_URL:
            errors.append("PUBLIC_BASE_URL must be a public URL in production")
        if not settings.ADMIN_API_KEY:
            errors.append("ADMIN_API_KEY is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
