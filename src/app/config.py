"""Application configuration helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized application settings sourced from environment variables."""

    app_env: str = Field(default="local", alias="APP_ENV")
    dropbox_client_id: Optional[str] = Field(default=None, alias="DROPBOX_CLIENT_ID")
    dropbox_client_secret: Optional[str] = Field(default=None, alias="DROPBOX_CLIENT_SECRET")
    dropbox_redirect_uri: Optional[str] = Field(default=None, alias="DROPBOX_REDIRECT_URI")
    dropbox_scopes: str = Field(default="", alias="DROPBOX_SCOPES")
    dropbox_access_type: str = Field(default="offline", alias="DROPBOX_ACCESS_TYPE")
    dropbox_landing_uri: str = Field(default="/", alias="DROPBOX_LANDING_URI")
    # Single-tenant deployments can pin one token and skip the per-user store.
    dropbox_access_token: Optional[str] = Field(default=None, alias="DROPBOX_ACCESS_TOKEN")
    dropbox_api_url: str = Field(default="https://api.dropboxapi.com/2/", alias="DROPBOX_API_URL")
    dropbox_content_url: str = Field(default="https://content.dropboxapi.com/2/", alias="DROPBOX_CONTENT_URL")
    dropbox_authorize_url: str = Field(
        default="https://www.dropbox.com/oauth2/authorize",
        alias="DROPBOX_AUTHORIZE_URL",
    )
    dropbox_token_url: str = Field(default="https://api.dropbox.com/oauth2/token", alias="DROPBOX_TOKEN_URL")
    dropbox_refresh_margin_seconds: int = Field(default=300, alias="DROPBOX_REFRESH_MARGIN_SECONDS")
    dropbox_refresh_retries: int = Field(default=0, ge=0, alias="DROPBOX_REFRESH_RETRIES")
    dropbox_refresh_backoff_seconds: float = Field(default=1.0, ge=0, alias="DROPBOX_REFRESH_BACKOFF_SECONDS")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: str = Field(default="sqlite+aiosqlite:///./data/dropbox.db", alias="DATABASE_URL")
    oauth_state_ttl_seconds: int = Field(default=600, alias="OAUTH_STATE_TTL_SECONDS")
    user_id_header: str = Field(default="X-User-Id", alias="USER_ID_HEADER")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        frozen=True,
    )

    @property
    def static_access_token(self) -> Optional[str]:
        """Override token, treating an empty string as unset."""

        return self.dropbox_access_token or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid repeated parsing."""
    return Settings()
