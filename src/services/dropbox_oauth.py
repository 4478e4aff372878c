"""Helpers for the Dropbox OAuth2 authorization-code and refresh grants."""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from services.exceptions import ConfigurationError, ProviderError, ResponseDecodeError, TransportError

logger = logging.getLogger(__name__)

DROPBOX_AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
DROPBOX_TOKEN_URL = "https://api.dropbox.com/oauth2/token"


class DropboxOAuthService:
    """Builds consent URLs and talks to the Dropbox token endpoint."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: Optional[str],
        scopes: str = "",
        access_type: Optional[str] = "offline",
        authorize_url: str = DROPBOX_AUTHORIZE_URL,
        token_url: str = DROPBOX_TOKEN_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not client_id or not client_secret or not redirect_uri:
            raise ConfigurationError("Dropbox OAuth client is not fully configured")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scopes = scopes
        self._access_type = access_type
        self._authorize_url = authorize_url
        self._token_url = token_url
        self._timeout = timeout
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    def authorize_url(self, state: Optional[str] = None) -> str:
        """Return the Dropbox consent screen URL; ``None`` parameters are left out."""

        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "scope": self._scopes or None,
            "token_access_type": self._access_type,
            "state": state,
        }
        query = urlencode({key: value for key, value in params.items() if value is not None})
        return f"{self._authorize_url}?{query}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Swap an authorization code for an access (and usually refresh) token."""

        return await self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            }
        )

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        """Mint a new access token from a stored refresh token."""

        return await self._post_form(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            }
        )

    async def _post_form(self, params: dict[str, str]) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._token_url, data=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Dropbox token endpoint unreachable (%s)", params["grant_type"])
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        if not response.is_success:
            raise ProviderError(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResponseDecodeError(response.text) from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ResponseDecodeError(response.text, "Dropbox token response has no access_token")
        return payload
