"""
Configuration and settings for the contest backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ORIGINS = ("http://localhost:3000", "http://localhost:5173")

CONSTRAINED_MAX_UPLOAD_BYTES = 4 * 1024 * 1024
DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024

# Anything else (live or unknown keys) is refused outside production.
TEST_KEY_PREFIXES = ("sk_test_", "rk_test_")


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or unsafe."""


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    environment: Literal["development", "test", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENV", "ENVIRONMENT"),
    )
    # Set by the hosting platform on serverless deployments.
    serverless: bool = Field(
        default=False, validation_alias=AliasChoices("SERVERLESS", "VERCEL")
    )

    # Stripe
    stripe_secret_key: Optional[str] = Field(
        default=None, validation_alias="STRIPE_SECRET_KEY"
    )
    stripe_webhook_secret: Optional[str] = Field(
        default=None, validation_alias="STRIPE_WEBHOOK_SECRET"
    )
    stripe_currency: str = Field(default="usd", validation_alias="STRIPE_CURRENCY")
    gateway_timeout_seconds: float = Field(
        default=10.0, validation_alias="GATEWAY_TIMEOUT_SECONDS"
    )

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    database_timeout_seconds: int = Field(
        default=5, validation_alias="DATABASE_TIMEOUT_SECONDS"
    )

    # CORS
    frontend_url: Optional[str] = Field(default=None, validation_alias="FRONTEND_URL")
    allowed_origins: str = Field(default="", validation_alias="ALLOWED_ORIGINS")

    # File handling
    file_storage: Optional[Literal["inline", "object-store"]] = Field(
        default=None, validation_alias="FILE_STORAGE"
    )
    max_upload_bytes_override: Optional[int] = Field(
        default=None, validation_alias="MAX_UPLOAD_BYTES"
    )

    # S3-compatible storage
    s3_endpoint: Optional[str] = Field(default=None, validation_alias="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, validation_alias="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, validation_alias="S3_BUCKET")
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="CONTEST_USE_IN_MEMORY_BACKENDS"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_constrained(self) -> bool:
        """Serverless and production deployments get the tighter limits."""
        return self.serverless or self.is_production

    @property
    def deployment_label(self) -> str:
        return "serverless" if self.is_constrained else "local"

    @property
    def max_upload_bytes(self) -> int:
        if self.max_upload_bytes_override:
            return self.max_upload_bytes_override
        if self.is_constrained:
            return CONSTRAINED_MAX_UPLOAD_BYTES
        return DEFAULT_MAX_UPLOAD_BYTES

    @property
    def file_storage_strategy(self) -> str:
        if self.file_storage:
            return self.file_storage
        return "object-store" if self.s3_bucket else "inline"

    @property
    def cors_origins(self) -> list[str]:
        origins = list(DEFAULT_ORIGINS)
        extras = [self.frontend_url or ""]
        extras.extend(self.allowed_origins.split(","))
        for origin in extras:
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins


def check_startup(settings: Settings) -> None:
    """
    Refuse to start with missing or unsafe payment credentials.
    """
    key = settings.stripe_secret_key
    if not key:
        if settings.use_in_memory_backends:
            return
        raise ConfigurationError("STRIPE_SECRET_KEY is not set")
    if not settings.is_production and not key.startswith(TEST_KEY_PREFIXES):
        raise ConfigurationError(
            "STRIPE_SECRET_KEY is not a test key; use sk_test_ or rk_test_ outside production"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
