"""Application container wiring configuration."""
from __future__ import annotations

from typing import Optional

import httpx

from app.config import Settings
from services.access_tokens import AccessTokenResolver
from services.cache import CacheService
from services.dropbox_api import DropboxGateway
from services.dropbox_connect import DropboxConnectService
from services.dropbox_oauth import DropboxOAuthService
from services.oauth_tokens import DropboxTokenStore
from services.storage import StorageService


class AppContainer:
    """Simple service locator for FastAPI dependency injection."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.cache = CacheService(settings.redis_url)
        self.storage = StorageService(settings.database_url)
        self.token_store = DropboxTokenStore(self.storage)
        self.oauth: Optional[DropboxOAuthService] = None
        if settings.dropbox_client_id and settings.dropbox_client_secret and settings.dropbox_redirect_uri:
            self.oauth = DropboxOAuthService(
                client_id=settings.dropbox_client_id,
                client_secret=settings.dropbox_client_secret,
                redirect_uri=settings.dropbox_redirect_uri,
                scopes=settings.dropbox_scopes,
                access_type=settings.dropbox_access_type or None,
                authorize_url=settings.dropbox_authorize_url,
                token_url=settings.dropbox_token_url,
                timeout=settings.http_timeout_seconds,
                transport=transport,
            )
        self.resolver = AccessTokenResolver(
            self.token_store,
            self.oauth,
            static_access_token=settings.static_access_token,
            auth_location=settings.dropbox_redirect_uri,
            refresh_margin_seconds=settings.dropbox_refresh_margin_seconds,
            refresh_retries=settings.dropbox_refresh_retries,
            refresh_backoff_seconds=settings.dropbox_refresh_backoff_seconds,
        )
        self.gateway = DropboxGateway(
            self.resolver,
            api_url=settings.dropbox_api_url,
            content_url=settings.dropbox_content_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )
        self.connect: Optional[DropboxConnectService] = None
        if self.oauth:
            self.connect = DropboxConnectService(
                oauth=self.oauth,
                token_store=self.token_store,
                resolver=self.resolver,
                gateway=self.gateway,
                landing_uri=settings.dropbox_landing_uri,
            )

    async def startup(self) -> None:
        """Initialize resources like the database."""

        await self.storage.initialize()
