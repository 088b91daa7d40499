"""
Configuration and settings for the Bambiland backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Database (Supabase Postgres expected)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3-compatible storage (Supabase storage buckets)
    storage_endpoint: Optional[str] = Field(default=None, env="STORAGE_ENDPOINT")
    storage_region: Optional[str] = Field(default=None, env="STORAGE_REGION")
    storage_bucket: str = Field(default="story-images", env="STORAGE_BUCKET")
    storage_public_base_url: Optional[str] = Field(
        default=None, env="STORAGE_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Auth
    auth_secret: str = Field(default="dev-secret-change-me", env="AUTH_SECRET")
    auth_algorithm: str = Field(default="HS256")
    auth_token_ttl_minutes: int = Field(default=60 * 24 * 30)
    bcrypt_rounds: int = Field(default=12)
    session_cookie_name: str = Field(default="bambiland_session")
    secure_cookies: bool = Field(default=False, env="SECURE_COOKIES")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )
    dev_fallback_enabled: bool = Field(
        default=True, env="DEV_FALLBACK_ENABLED"
    )
    dev_fallback_dir: str = Field(
        default="supabase/.temp", env="DEV_FALLBACK_DIR"
    )
    # Acts as the session user for unauthenticated requests when set.
    dev_user_id: Optional[str] = Field(default=None, env="DEV_USER_ID")

    # Default story seeded into new accounts
    story_file_path: str = Field(default="story.md", env="STORY_FILE_PATH")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
