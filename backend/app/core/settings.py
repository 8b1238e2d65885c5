"""
Application settings with validation using pydantic-settings.
Validates all required environment variables at startup.
"""
import socket
from decimal import Decimal
from urllib.parse import quote_plus
from typing import Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_db_host(host: str) -> str:
    """Resolve DB host to IP so asyncpg avoids getaddrinfo in asyncio context (e.g. in Docker)."""
    if not host or host in ("localhost", "127.0.0.1"):
        return host
    try:
        return socket.gethostbyname(host)
    except socket.gaierror:
        return host


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    DATABASE_URL: Optional[str] = Field(default=None, description="Full async database URL (overrides DB_* parts)")
    DB_USER: str = Field(default="postgres", description="PostgreSQL username")
    DB_PASSWORD: str = Field(default="", description="PostgreSQL password")
    DB_NAME: str = Field(default="marketplace", description="PostgreSQL database name")
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: str = Field(default="5432", description="PostgreSQL port")

    # Security configuration
    JWT_SECRET: Optional[str] = Field(default=None, description="JWT signing secret (required in production)")
    JWT_EXPIRY_HOURS: int = Field(default=24 * 7, description="Access token lifetime in hours")

    # CORS configuration
    ALLOWED_ORIGINS: str = Field(default="", description="Comma-separated list of allowed CORS origins")

    # Environment
    ENVIRONMENT: str = Field(default="production", description="Environment: development or production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable slowapi rate limiting")
    WALLET_RATE_LIMIT: str = Field(default="30/minute", description="Rate limit for money-moving wallet endpoints")

    # Order fees (XOF)
    PLATFORM_FEE: Decimal = Field(default=Decimal("1200"), description="Platform fee added to every order")
    DELIVERY_FEE: Decimal = Field(default=Decimal("1000"), description="Delivery agent commission per order")
    ADMIN_FEE: Decimal = Field(default=Decimal("200"), description="Platform admin fee per order")
    FEE_MODE: str = Field(default="carved_out", description="carved_out or additive")
    ESTIMATED_DELIVERY_DAYS: int = Field(default=2, description="Days added to checkout for the delivery estimate")
    PLATFORM_ADMIN_ID: Optional[int] = Field(default=None, description="User id receiving admin fees (defaults to first admin)")

    # Subscription configuration (XOF)
    SUBSCRIPTION_PRICE_WEEKLY: Decimal = Field(default=Decimal("2000"), description="Weekly plan price")
    SUBSCRIPTION_PRICE_MONTHLY: Decimal = Field(default=Decimal("7500"), description="Monthly plan price")
    SUBSCRIPTION_PRICE_YEARLY: Decimal = Field(default=Decimal("75000"), description="Yearly plan price")
    FREE_TRIAL_MONTHS: int = Field(default=2, description="Free trial length in months")

    # Database pool configuration
    DB_POOL_SIZE: int = Field(default=50, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=100, description="Database max overflow connections")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database connection recycle time (seconds)")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        if v not in ("development", "production"):
            raise ValueError("ENVIRONMENT must be 'development' or 'production'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("FEE_MODE")
    @classmethod
    def validate_fee_mode(cls, v: str) -> str:
        if v not in ("carved_out", "additive"):
            raise ValueError("FEE_MODE must be 'carved_out' or 'additive'")
        return v

    @field_validator("PLATFORM_FEE", "DELIVERY_FEE", "ADMIN_FEE")
    @classmethod
    def validate_fee_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("fees must be non-negative")
        return v

    @model_validator(mode="after")
    def validate_fee_split(self) -> "Settings":
        """In carved_out mode delivery and admin fees are paid out of the platform fee."""
        if self.FEE_MODE == "carved_out" and self.DELIVERY_FEE + self.ADMIN_FEE > self.PLATFORM_FEE:
            raise ValueError("DELIVERY_FEE + ADMIN_FEE must not exceed PLATFORM_FEE in carved_out mode")
        return self

    def validate_production_settings(self) -> list[str]:
        """
        Validate that all required settings are present in production.
        Returns list of missing settings.
        """
        errors = []

        if self.ENVIRONMENT == "production":
            if not self.JWT_SECRET:
                errors.append("JWT_SECRET is required in production")
            if not self.ALLOWED_ORIGINS:
                errors.append("ALLOWED_ORIGINS is required in production")
            if not self.DATABASE_URL and not self.DB_PASSWORD:
                errors.append("DB_PASSWORD or DATABASE_URL is required in production")

        return errors

    @property
    def db_url(self) -> str:
        """Get database URL. Resolve host to IP so connections work in Docker/async context."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        host = _resolve_db_host(self.DB_HOST)
        password = quote_plus(self.DB_PASSWORD)
        return f"postgresql+asyncpg://{self.DB_USER}:{password}@{host}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if not self.ALLOWED_ORIGINS:
            return []
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def jwt_secret(self) -> str:
        """Signing secret; development falls back to a fixed key."""
        return self.JWT_SECRET or "dev-insecure-secret"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()
        # Validate production settings
        errors = _settings.validate_production_settings()
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)
    return _settings
