"""Reusable test fixtures."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union
from urllib.parse import parse_qs

import httpx

from services.storage import TokenRecord

TOKEN_URL = "https://api.dropbox.test/oauth2/token"
AUTHORIZE_URL = "https://www.dropbox.test/oauth2/authorize"
API_URL = "https://api.dropboxapi.test/2/"
CONTENT_URL = "https://content.dropboxapi.test/2/"

SAMPLE_TOKEN_RESPONSE = {
    "access_token": "sl.access-1",
    "refresh_token": "refresh-1",
    "expires_in": 14400,
    "token_type": "bearer",
    "scope": "account_info.read files.metadata.read",
    "uid": "12345",
    "account_id": "dbid:AAH4f99T0taONIb-OurWxbNQ6ywGRopQngc",
}

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that records every request and replays queued replies per URL.

    Replies are consumed in order; once a URL runs dry its last reply repeats."""

    def __init__(self, routes: Optional[dict[str, list[Reply]]] = None) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[Reply]] = routes or {}
        self._last: dict[str, Reply] = {}
        super().__init__(self._handle)

    def add(self, url: str, *replies: Reply) -> None:
        self.routes.setdefault(url, []).extend(replies)

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [request for request in self.requests if str(request.url) == url]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        queue = self.routes.get(url)
        if queue:
            reply = self._last[url] = queue.pop(0)
        elif url in self._last:
            reply = self._last[url]
        else:
            return httpx.Response(404, text=f"no route for {url}")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        # Responses may be replayed, so hand out a fresh copy each time.
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)


def json_reply(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def form_of(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body into a flat dict."""

    parsed = parse_qs(request.content.decode())
    return {key: values[0] for key, values in parsed.items()}


def json_of(request: httpx.Request) -> Any:
    return json.loads(request.content.decode())


def make_record(
    user_id: str = "42",
    *,
    access_token: str = "a1",
    refresh_token: Optional[str] = "r1",
    expires_in: Optional[float] = 3600,
    email: Optional[str] = None,
) -> TokenRecord:
    now = datetime.now(timezone.utc)
    return TokenRecord(
        user_id=user_id,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=None if expires_in is None else now + timedelta(seconds=expires_in),
        token_type="bearer",
        scope="account_info.read",
        uid="12345",
        account_id="dbid:abc",
        email=email,
        created_at=now,
        updated_at=now,
    )


class FakeTokenStore:
    """In-memory stand-in for DropboxTokenStore keyed by user id."""

    def __init__(self, *records: TokenRecord) -> None:
        self.records: dict[str, TokenRecord] = {record.user_id: record for record in records}
        self.refreshes: list[tuple[str, dict[str, Any]]] = []
        self.upserts: list[tuple[str, dict[str, Any]]] = []
        self.deleted: list[str] = []
        self.events: list[str] = []

    async def get(self, user_id):
        return self.records.get(user_id)

    async def upsert(self, user_id, token_fields, issued_at=None):
        self.upserts.append((user_id, dict(token_fields)))
        record = make_record(
            user_id,
            access_token=token_fields["access_token"],
            refresh_token=token_fields.get("refresh_token"),
            expires_in=token_fields.get("expires_in"),
        )
        self.records[user_id] = record
        return record

    async def save_refresh(self, user_id, token_fields, issued_at=None):
        self.refreshes.append((user_id, dict(token_fields)))
        record = self.records[user_id]
        issued_at = issued_at or datetime.now(timezone.utc)
        record.access_token = token_fields["access_token"]
        record.expires_at = issued_at + timedelta(seconds=token_fields["expires_in"])
        if token_fields.get("refresh_token"):
            record.refresh_token = token_fields["refresh_token"]
        return record

    async def attach_email(self, user_id, email):
        self.records[user_id].email = email

    async def delete(self, user_id):
        self.events.append("delete")
        self.deleted.append(user_id)
        return self.records.pop(user_id, None) is not None
