"""
Configuration and settings for the restaurant tracker backend.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the API and the auth triggers."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")

    # DynamoDB single table
    table_name: Optional[str] = Field(default=None)
    aws_region: str = Field(default="us-east-1")
    dynamodb_endpoint_url: Optional[str] = Field(default=None)

    # Cognito user pool driving the custom auth flow
    user_pool_id: Optional[str] = Field(default=None)
    user_pool_client_id: Optional[str] = Field(default=None)

    # SES sender for login codes; must be a verified identity
    ses_source_email: str = Field(default="noreply@example.com")

    # Header carrying the verified subject, set by the fronting identity layer
    identity_header: str = Field(default="x-amzn-oidc-identity")

    max_page_size: int = Field(default=100, ge=1)

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
