"""
Configuration and settings for the agency API.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agency_api.errors import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("MONGODB_URI", "FIREBASE_API_KEY", "JWT_SECRET", "ADMIN_SECRET")

_PLACEHOLDER_JWT_SECRETS = {"dev-secret", "super-secret-jwt"}
_PLACEHOLDER_ADMIN_SECRETS = {"super-admin-secret"}


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000)
    log_level: str = Field(default="INFO")

    # MongoDB
    mongodb_uri: Optional[str] = Field(default=None)
    mongodb_uri_fallback: Optional[str] = Field(default=None)
    mongodb_db_name: Optional[str] = Field(default=None)
    mongodb_server_selection_timeout_ms: int = Field(default=10000)

    # Firebase
    firebase_api_key: Optional[str] = Field(default=None)
    firebase_service_account: Optional[str] = Field(default=None)
    firebase_service_account_path: str = Field(
        default="config/firebase-service-account.json"
    )
    firebase_project_id: Optional[str] = Field(default=None)

    # Sessions and admin access
    jwt_secret: str = Field(default="dev-secret")
    admin_secret: Optional[str] = Field(default=None)
    session_cookie_name: str = Field(default="session")
    session_ttl_days: int = Field(default=7)
    session_cookie_secure: bool = Field(default=False)

    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )

    # Order lifecycle
    strict_order_transitions: bool = Field(default=False)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


def validate_environment(settings: Settings) -> None:
    """
    Fail fast when required configuration is missing or malformed.

    Raises:
        ConfigurationError: listing every missing variable, or describing the
            first malformed one.
    """
    if settings.use_in_memory_backends:
        return

    values = {
        "MONGODB_URI": settings.mongodb_uri,
        "FIREBASE_API_KEY": settings.firebase_api_key,
        "JWT_SECRET": settings.jwt_secret,
        "ADMIN_SECRET": settings.admin_secret,
    }
    missing = [name for name in REQUIRED_ENV_VARS if not values[name]]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Please check your .env file."
        )

    if not settings.mongodb_uri.startswith("mongodb"):
        raise ConfigurationError(
            "Invalid MONGODB_URI format. Must start with mongodb:// or mongodb+srv://"
        )

    if settings.jwt_secret in _PLACEHOLDER_JWT_SECRETS or "your-" in settings.jwt_secret:
        logger.warning(
            "Using default or example JWT_SECRET. Change this in production!"
        )
    if (
        settings.admin_secret in _PLACEHOLDER_ADMIN_SECRETS
        or "your-" in settings.admin_secret
    ):
        logger.warning(
            "Using default or example ADMIN_SECRET. Change this in production!"
        )
