"""
Application Configuration Module

Centralizes all application settings using Pydantic Settings.
Environment variables are loaded from .env file automatically.

Usage:
    from config.settings import settings

    print(settings.DATABASE_URL)
    print(settings.AIRTABLE_CLIENT_ID)
"""

from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Variable names are case-insensitive.
    """

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    DATABASE_URL: str = Field(
        default="postgresql://localhost/airform",
        description="PostgreSQL connection string"
    )
    DATABASE_ECHO: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )

    # ==========================================================================
    # Session Tokens
    # ==========================================================================
    SECRET_KEY: str = Field(
        default="your_super_secret_key_change_this_in_production",
        description="JWT signing secret key"
    )
    ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    SESSION_TOKEN_EXPIRE_DAYS: int = Field(
        default=7,
        description="Application session token lifetime in days"
    )
    SESSION_COOKIE_NAME: str = Field(
        default="airform_session",
        description="Cookie correlating the browser with server-side OAuth state"
    )
    SESSION_COOKIE_SECURE: bool = Field(
        default=False,
        description="Only send the session cookie over HTTPS"
    )

    # ==========================================================================
    # Airtable OAuth & API
    # ==========================================================================
    AIRTABLE_CLIENT_ID: str = Field(
        default="",
        description="Airtable OAuth integration client id"
    )
    AIRTABLE_CLIENT_SECRET: Optional[str] = Field(
        default=None,
        description="Airtable OAuth client secret (confidential clients only)"
    )
    AIRTABLE_REDIRECT_URI: str = Field(
        default="http://localhost:8000/api/auth/airtable/callback",
        description="Redirect URI registered with the Airtable integration"
    )
    AIRTABLE_AUTH_URL: str = Field(
        default="https://airtable.com/oauth2/v1/authorize",
        description="Airtable authorization endpoint"
    )
    AIRTABLE_TOKEN_URL: str = Field(
        default="https://airtable.com/oauth2/v1/token",
        description="Airtable token endpoint"
    )
    AIRTABLE_API_URL: str = Field(
        default="https://api.airtable.com/v0",
        description="Airtable REST API base URL"
    )
    AIRTABLE_USE_PKCE: bool = Field(
        default=True,
        description="Send a PKCE code challenge with the authorization request"
    )
    AIRTABLE_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout for calls to Airtable"
    )
    OAUTH_STATE_TTL_SECONDS: int = Field(
        default=600,
        description="How long a pending OAuth state/verifier pair is kept"
    )

    # ==========================================================================
    # Response Sync
    # ==========================================================================
    MAX_SYNC_ATTEMPTS: int = Field(
        default=3,
        description="Automatic sync attempts before a response needs manual action"
    )
    SYNC_SWEEP_INTERVAL_SECONDS: int = Field(
        default=0,
        description="Interval of the background retry/orphan sweep (0 disables it)"
    )

    # ==========================================================================
    # Redis Configuration (OAuth session storage and rate limiting)
    # ==========================================================================
    REDIS_URL: Optional[str] = Field(
        default=None,
        description="Redis connection URL for session storage and rate limiting"
    )

    # ==========================================================================
    # CORS / Client
    # ==========================================================================
    CLIENT_URL: str = Field(
        default="http://localhost:3000",
        description="Public URL of the single-page frontend"
    )
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Allowed CORS origins (comma-separated)"
    )

    @property
    def cors_origins_list(self) -> list:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )
    LOG_JSON: bool = Field(
        default=False,
        description="Emit structured JSON logs"
    )
    APP_NAME: str = Field(
        default="Airform",
        description="Application name for OpenAPI docs"
    )
    APP_VERSION: str = Field(
        default="1.0.0",
        description="Application version"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Singleton instance for easy import
settings = get_settings()
