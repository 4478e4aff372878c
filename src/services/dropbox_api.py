"""Generic authenticated pass-through to the Dropbox HTTP API."""
from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Mapping, Optional, Union

import httpx

from services.access_tokens import AccessTokenResolver
from services.exceptions import (
    AuthorizationRequiredError,
    ProviderError,
    ResponseDecodeError,
    TransportError,
    UnsupportedVerbError,
)

DROPBOX_API_URL = "https://api.dropboxapi.com/2/"
DROPBOX_CONTENT_URL = "https://content.dropboxapi.com/2/"
logger = logging.getLogger(__name__)


class HttpVerb(str, Enum):
    """The closed set of verbs the gateway forwards."""

    GET = "get"
    POST = "post"
    PATCH = "patch"
    PUT = "put"
    DELETE = "delete"

    @classmethod
    def parse(cls, verb: Union[str, "HttpVerb"]) -> "HttpVerb":
        try:
            return cls(verb)
        except ValueError as exc:
            raise UnsupportedVerbError(verb) from exc


class DropboxGateway:
    """Dispatches verb/path/body calls with the user's bearer token injected."""

    def __init__(
        self,
        resolver: Optional[AccessTokenResolver],
        *,
        api_url: str = DROPBOX_API_URL,
        content_url: str = DROPBOX_CONTENT_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._resolver = resolver
        self._api_url = api_url
        self._content_url = content_url
        self._timeout = timeout
        self._transport = transport

    async def request(
        self,
        verb: Union[str, HttpVerb],
        path: str,
        *,
        user_id: Optional[str] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        use_auth: bool = True,
    ) -> dict[str, Any]:
        """Call a metadata (RPC) endpoint and return its decoded JSON body."""

        return await self._dispatch(self._api_url, verb, path, user_id, body, headers, use_auth)

    async def content_request(
        self,
        verb: Union[str, HttpVerb],
        path: str,
        *,
        user_id: Optional[str] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        use_auth: bool = True,
    ) -> dict[str, Any]:
        """Same contract as ``request`` against the content host."""

        return await self._dispatch(self._content_url, verb, path, user_id, body, headers, use_auth)

    async def get_current_account(self, user_id: str) -> dict[str, Any]:
        return await self.request(HttpVerb.POST, "users/get_current_account", user_id=user_id)

    async def revoke_token(self, user_id: str) -> None:
        """Disable the user's current access token at Dropbox."""

        auth = await self._auth_header(user_id)
        await self._send(HttpVerb.POST, self._api_url + "auth/token/revoke", httpx.Headers(auth), None)
        logger.info("Revoked Dropbox token for user %s", user_id)

    async def _dispatch(
        self,
        base_url: str,
        verb: Union[str, HttpVerb],
        path: str,
        user_id: Optional[str],
        body: Any,
        headers: Optional[Mapping[str, str]],
        use_auth: bool,
    ) -> dict[str, Any]:
        method = HttpVerb.parse(verb)
        merged = httpx.Headers({"content-type": "application/json"})
        if use_auth:
            merged.update(await self._auth_header(user_id))
        if headers:
            merged.update(headers)
        response = await self._send(method, base_url + path, merged, json.dumps(body))
        try:
            return json.loads(response.text)
        except ValueError as exc:
            raise ResponseDecodeError(response.text) from exc

    async def _auth_header(self, user_id: Optional[str]) -> dict[str, str]:
        if self._resolver is None:
            raise AuthorizationRequiredError(user_id)
        token = await self._resolver.access_token(user_id)
        return {"Authorization": f"Bearer {token}"}

    async def _send(
        self,
        method: HttpVerb,
        url: str,
        headers: httpx.Headers,
        content: Optional[str],
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method.value.upper(), url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        if not response.is_success:
            raise ProviderError(response.status_code, response.text)
        return response
