"""Connect, callback and disconnect orchestration for a user's Dropbox account."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from services.access_tokens import AccessTokenResolver
from services.dropbox_api import DropboxGateway
from services.dropbox_oauth import DropboxOAuthService
from services.exceptions import ConfigurationError, DropboxError
from services.oauth_tokens import DropboxTokenStore
from services.storage import TokenRecord

STATE_PLACEHOLDER = "{state}"
logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Where a user stands in the OAuth lifecycle."""

    UNAUTHENTICATED = "unauthenticated"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class ConnectOutcome:
    """Where the caller should send the browser next."""

    state: ConnectionState
    location: str


class DropboxConnectService:
    """Runs the authorization-code flow and keeps the token store in step with it."""

    def __init__(
        self,
        oauth: DropboxOAuthService,
        token_store: DropboxTokenStore,
        resolver: AccessTokenResolver,
        gateway: DropboxGateway,
        landing_uri: str = "/",
    ) -> None:
        self._oauth = oauth
        self._store = token_store
        self._resolver = resolver
        self._gateway = gateway
        self._landing_uri = landing_uri

    def landing_location(self, state: Optional[str]) -> str:
        """Return the landing URI, substituting ``{state}`` when it is templated."""

        if STATE_PLACEHOLDER not in self._landing_uri:
            return self._landing_uri
        if not state:
            raise ConfigurationError(
                "Must use the state parameter method to connect when your landing URL "
                "includes the magic {state} parameter."
            )
        return self._landing_uri.replace(STATE_PLACEHOLDER, state)

    async def connect(
        self,
        user_id: Optional[str],
        code: Optional[str] = None,
        state: Optional[str] = None,
    ) -> ConnectOutcome:
        """Start the flow when no ``code`` is given, otherwise finish it."""

        if not code:
            return ConnectOutcome(ConnectionState.AWAITING_CALLBACK, self._oauth.authorize_url(state))
        if not user_id:
            raise ConfigurationError("A user identity is required to complete the Dropbox callback")

        landing = self.landing_location(state)
        token = await self._oauth.exchange_code(code)
        await self._store.upsert(user_id, token)
        await self._enrich_email(user_id)
        return ConnectOutcome(ConnectionState.AUTHENTICATED, landing)

    async def _enrich_email(self, user_id: str) -> None:
        try:
            account = await self._gateway.get_current_account(user_id)
        except DropboxError as exc:
            logger.warning("Could not fetch Dropbox account email for user %s: %s", user_id, exc)
            return
        email = account.get("email")
        if not email:
            logger.warning("Dropbox account for user %s has no email", user_id)
            return
        await self._store.attach_email(user_id, email)

    async def disconnect(self, user_id: str, redirect_path: str = "/") -> ConnectOutcome:
        """Revoke at Dropbox first, then forget the token locally.

        A failed revoke propagates and leaves the local record untouched.
        """

        await self._gateway.revoke_token(user_id)
        await self._store.delete(user_id)
        logger.info("Disconnected Dropbox for user %s", user_id)
        return ConnectOutcome(ConnectionState.UNAUTHENTICATED, redirect_path)

    async def get_token_data(self, user_id: str) -> Optional[TokenRecord]:
        """Stored token record; always None while a static override token is configured."""

        if self._resolver.uses_static_token:
            return None
        return await self._store.get(user_id)

    async def is_connected(self, user_id: str) -> bool:
        # A pinned override token counts as connected even though no record is stored.
        if self._resolver.uses_static_token:
            return True
        return await self._store.get(user_id) is not None

    async def connection_state(self, user_id: str) -> ConnectionState:
        if await self.is_connected(user_id):
            return ConnectionState.AUTHENTICATED
        return ConnectionState.UNAUTHENTICATED
