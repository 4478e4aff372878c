"""Access token resolution: reuse, refresh or report a missing Dropbox token.

``AccessTokenResolver.resolve`` never redirects. It returns one of three results
and leaves the HTTP decision to the caller:

* ``Found`` - a usable bearer token (possibly freshly refreshed),
* ``Missing`` - no token stored and the caller asked not to be redirected,
* ``RequiresInteractiveAuth`` - no token stored; send the user to ``location``.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from services.dropbox_oauth import DropboxOAuthService
from services.exceptions import AuthorizationRequiredError, ProviderError, TransportError
from services.oauth_tokens import DropboxTokenStore
from services.storage import TokenRecord

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN_SECONDS = 300


@dataclass(frozen=True)
class Found:
    access_token: str


@dataclass(frozen=True)
class Missing:
    user_id: str


@dataclass(frozen=True)
class RequiresInteractiveAuth:
    user_id: str
    location: Optional[str]


TokenResolution = Union[Found, Missing, RequiresInteractiveAuth]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _pause(seconds: float) -> None:
    await asyncio.sleep(seconds)


class AccessTokenResolver:
    """Returns a valid access token per user, refreshing shortly before expiry."""

    def __init__(
        self,
        token_store: DropboxTokenStore,
        oauth: Optional[DropboxOAuthService],
        *,
        static_access_token: Optional[str] = None,
        auth_location: Optional[str] = None,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        refresh_retries: int = 0,
        refresh_backoff_seconds: float = 1.0,
    ) -> None:
        self._store = token_store
        self._oauth = oauth
        self._static_access_token = static_access_token or None
        self._auth_location = auth_location
        self._margin = refresh_margin_seconds
        self._retries = max(0, refresh_retries)
        self._backoff = refresh_backoff_seconds
        # Locks live only while a refresh holds or awaits them.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def uses_static_token(self) -> bool:
        return self._static_access_token is not None

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def resolve(self, user_id: str, *, none_on_missing: bool = False) -> TokenResolution:
        """Resolve the bearer token for ``user_id``."""

        if self._static_access_token is not None:
            return Found(self._static_access_token)

        record = await self._store.get(user_id)
        if record is None:
            if none_on_missing:
                return Missing(user_id)
            return RequiresInteractiveAuth(user_id, self._auth_location)
        if not self._needs_refresh(record):
            return Found(record.access_token)

        # Check-refresh-persist must not interleave for one user.
        async with self._lock_for(user_id):
            record = await self._store.get(user_id)
            if record is None:
                if none_on_missing:
                    return Missing(user_id)
                return RequiresInteractiveAuth(user_id, self._auth_location)
            if not self._needs_refresh(record):
                return Found(record.access_token)
            return Found(await self._refresh(record))

    async def access_token(self, user_id: str, *, none_on_missing: bool = False) -> Optional[str]:
        """Return the token string, ``None`` for Missing, or raise when sign-in is required."""

        resolution = await self.resolve(user_id, none_on_missing=none_on_missing)
        if isinstance(resolution, Found):
            return resolution.access_token
        if isinstance(resolution, Missing):
            return None
        raise AuthorizationRequiredError(user_id, resolution.location)

    def _needs_refresh(self, record: TokenRecord) -> bool:
        return bool(record.refresh_token) and record.expires_within(self._margin, _utcnow())

    async def _refresh(self, record: TokenRecord) -> str:
        if self._oauth is None:
            raise AuthorizationRequiredError(record.user_id, self._auth_location)
        delay = self._backoff
        attempt = 0
        while True:
            try:
                issued_at = _utcnow()
                fields = await self._oauth.refresh(record.refresh_token)
                break
            except (TransportError, ProviderError) as exc:
                retryable = not isinstance(exc, ProviderError) or exc.retryable
                if not retryable or attempt >= self._retries:
                    logger.error("Dropbox token refresh failed for user %s: %s", record.user_id, exc)
                    raise
                attempt += 1
                logger.warning(
                    "Dropbox token refresh failed for user %s (attempt %s/%s). retrying in %ss",
                    record.user_id,
                    attempt,
                    self._retries + 1,
                    delay,
                )
                await _pause(delay)
                delay *= 2

        await self._store.save_refresh(record.user_id, fields, issued_at)
        logger.info("Refreshed Dropbox token for user %s", record.user_id)
        return fields["access_token"]
